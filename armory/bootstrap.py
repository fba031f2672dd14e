"""
Composition root.

Builds one CardCatalog per database session and hands it to every service
that needs it. Nothing in the package holds a process-wide catalog.
"""

import logging
import random
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from armory.db.catalog import CardCatalog
from armory.db.database import async_session_factory
from armory.models.weapon import DeckType
from armory.parsers.catalog_document import CatalogDocument, load_bundled_catalog
from armory.services.catalog_importer import CatalogImporter
from armory.services.customization_store import CustomizationStore
from armory.services.deck_runtime import DeckRuntime
from armory.services.inventory_migrator import InventoryMigrator, MigrationReport

logger = logging.getLogger(__name__)


@dataclass
class Armory:
    """Every engine component wired to one database session."""

    session: AsyncSession
    catalog: CardCatalog
    customizations: CustomizationStore
    importer: CatalogImporter
    migrator: InventoryMigrator
    decks: dict[DeckType, DeckRuntime]

    def deck(self, deck_type: DeckType) -> DeckRuntime:
        return self.decks[deck_type]


@dataclass
class StartupResult:
    catalog_imported: bool
    migration: MigrationReport


def build_armory(session: AsyncSession, rng: random.Random | None = None) -> Armory:
    catalog = CardCatalog(session)
    customizations = CustomizationStore(session)
    return Armory(
        session=session,
        catalog=catalog,
        customizations=customizations,
        importer=CatalogImporter(catalog, customizations),
        migrator=InventoryMigrator(catalog),
        decks={deck_type: DeckRuntime(deck_type, catalog, rng=rng) for deck_type in DeckType},
    )


async def run_startup(
    session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
    catalog_source: CatalogDocument | Mapping[str, Any] | str | bytes | Path | None = None,
) -> StartupResult:
    """
    Import the catalog, then migrate legacy inventories.

    Tables must already exist (see armory.db.init_db). The catalog import
    runs first so legacy entries resolve against the newest definitions.
    Without a source the bundled catalog (or the configured override) is used.
    """
    if catalog_source is None:
        catalog_source = load_bundled_catalog()

    async with session_factory() as session:
        armory = build_armory(session)
        imported = await armory.importer.ingest_catalog(catalog_source)
        report = await armory.migrator.migrate_all()

    logger.info(
        "Startup complete: catalog %s, %d sessions migrated",
        "imported" if imported else "unchanged",
        len(report.migrated),
    )
    return StartupResult(catalog_imported=imported, migration=report)
