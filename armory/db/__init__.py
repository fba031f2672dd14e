from armory.db.catalog import (
    CardCatalog,
    definition_to_model,
    instance_to_model,
)
from armory.db.database import async_session_factory, drop_db, init_db, session_scope

__all__ = [
    "CardCatalog",
    "async_session_factory",
    "definition_to_model",
    "drop_db",
    "init_db",
    "instance_to_model",
    "session_scope",
]
