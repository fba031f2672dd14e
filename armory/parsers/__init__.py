from armory.parsers.catalog_document import (
    CatalogDocument,
    CatalogEntry,
    compare_versions,
    load_bundled_catalog,
    parse_catalog_document,
    parse_version,
)
from armory.parsers.legacy_inventory import (
    LegacyEntry,
    LegacyParseResult,
    parse_inventory_entry,
    parse_inventory_text,
)

__all__ = [
    "CatalogDocument",
    "CatalogEntry",
    "LegacyEntry",
    "LegacyParseResult",
    "compare_versions",
    "load_bundled_catalog",
    "parse_catalog_document",
    "parse_inventory_entry",
    "parse_inventory_text",
    "parse_version",
]
