"""
Catalog import service.

Reconciles a versioned catalog document into the card catalog.

INVARIANTS:
- An import either commits completely or leaves the catalog exactly as it was.
- Re-importing the same (or an older) version performs no writes.
- Definitions missing from a newer document are deprecated, never deleted.
- After a successful import every live definition has exactly its effective
  count of live catalog instances (global override, else default count).
- An instance referenced by inventory is never deleted; if it falls outside
  the new count it is retired instead and deleted by a later import once
  nothing refers to it.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sqlalchemy import select

from armory.db.catalog import CardCatalog
from armory.models.db import CardInstanceDB, WeaponDefinitionDB
from armory.models.failure import CatalogValidationError
from armory.models.weapon import InstanceOrigin
from armory.parsers.catalog_document import CatalogDocument, parse_catalog_document, parse_version
from armory.services.customization_store import CustomizationSnapshot, CustomizationStore

logger = logging.getLogger(__name__)


@dataclass
class ImportSummary:
    """Counts of what one import changed."""

    version: str
    definitions_added: int = 0
    definitions_updated: int = 0
    definitions_deprecated: int = 0
    instances_added: int = 0
    instances_revived: int = 0
    instances_removed: int = 0
    instances_retired: int = 0

    def describe(self) -> str:
        return (
            f"{self.definitions_added} added, {self.definitions_updated} updated, "
            f"{self.definitions_deprecated} deprecated; instances "
            f"+{self.instances_added} / revived {self.instances_revived} / "
            f"-{self.instances_removed} / retired {self.instances_retired}"
        )


class CatalogImporter:
    """Versioned, all-or-nothing catalog reconciliation."""

    def __init__(
        self,
        catalog: CardCatalog,
        customizations: CustomizationStore | None = None,
    ) -> None:
        self._catalog = catalog
        self._session = catalog.session
        self._customizations = customizations or CustomizationStore(catalog.session)
        self.last_summary: ImportSummary | None = None

    async def ingest_catalog(
        self, source: CatalogDocument | Mapping[str, Any] | str | bytes | Path
    ) -> bool:
        """
        Import a catalog document if it is newer than the stored version.

        Args:
            source: A parsed document, a decoded mapping, JSON text or bytes,
                or a path to a JSON file

        Returns:
            True if the document was imported, False if the version gate
            rejected it (nothing was written).

        Raises:
            CatalogParseError: Malformed document; nothing was written
            VersionFormatError: Unparsable declared version; nothing was written
            CatalogValidationError: Reconciled state is inconsistent; rolled back
        """
        if isinstance(source, CatalogDocument):
            document = source
        else:
            document = parse_catalog_document(source)

        stored = await self._catalog.get_catalog_version()
        if stored is not None and document.version_key <= parse_version(stored.latest_imported):
            logger.info(
                "Catalog version %s is not newer than imported %s; skipping",
                document.version,
                stored.latest_imported,
            )
            self.last_summary = None
            return False

        try:
            summary = await self._reconcile(document)
            await self._catalog.set_catalog_version(document.version)
            await self.validate_catalog()
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            logger.error("Catalog import of version %s failed; rolled back", document.version)
            raise

        self.last_summary = summary
        logger.info("Imported catalog version %s: %s", document.version, summary.describe())
        return True

    async def _reconcile(self, document: CatalogDocument) -> ImportSummary:
        summary = ImportSummary(version=document.version)
        snapshot = await self._customizations.snapshot()

        incoming = document.definitions()
        incoming_ids = {definition.id for definition in incoming}

        for definition in incoming:
            if await self._catalog.get_definition(definition.id) is None:
                await self._catalog.add_definition(definition)
                summary.definitions_added += 1
            else:
                await self._catalog.update_definition(definition)
                summary.definitions_updated += 1
            await self._reconcile_instances(definition.id, snapshot, summary)

        for existing in await self._catalog.list_definitions(include_deprecated=False):
            if existing.id not in incoming_ids:
                await self._catalog.deprecate_definition(existing.id)
                summary.definitions_deprecated += 1
                logger.info("Deprecated %s (absent from catalog %s)", existing.id, document.version)

        return summary

    async def _reconcile_instances(
        self,
        definition_id: str,
        snapshot: CustomizationSnapshot,
        summary: ImportSummary,
    ) -> None:
        """Bring the live catalog instances of one definition to its effective count."""
        definition = await self._catalog.get_definition(definition_id)
        if definition is None:
            return
        target = snapshot.effective_count(definition)

        live = await self._catalog.list_instances(definition_id, origin=InstanceOrigin.CATALOG)
        live_ids = {instance.id for instance in live}
        retired = [
            instance
            for instance in await self._catalog.list_instances(
                definition_id, include_retired=True, origin=InstanceOrigin.CATALOG
            )
            if instance.id not in live_ids
        ]
        referenced = await self._catalog.referenced_instance_ids(definition_id)

        shortfall = target - len(live)
        if shortfall > 0:
            revived = retired[:shortfall]
            for instance in revived:
                await self._catalog.revive_instance(instance.id)
                summary.instances_revived += 1
            retired = retired[shortfall:]
            remaining = shortfall - len(revived)
            if remaining > 0:
                created = await self._catalog.add_instances(definition_id, remaining)
                summary.instances_added += len(created)

        elif shortfall < 0:
            # Unreferenced copies are removed before held ones
            candidates = sorted(
                live, key=lambda instance: (instance.id in referenced, -instance.copy_index)
            )
            for instance in candidates[:-shortfall]:
                if instance.id in referenced:
                    await self._catalog.retire_instance(instance.id)
                    summary.instances_retired += 1
                    logger.warning(
                        "Retired %s: above new count %d but still in inventory",
                        instance.serial,
                        target,
                    )
                else:
                    await self._catalog.delete_instance(instance.id)
                    summary.instances_removed += 1

        for instance in retired:
            if instance.id not in referenced:
                await self._catalog.delete_instance(instance.id)
                summary.instances_removed += 1

    async def validate_catalog(self) -> None:
        """
        Check catalog consistency.

        Every instance must have a definition, and every live definition must
        have exactly its effective count of live catalog instances.

        Raises:
            CatalogValidationError: Listing every violation found
        """
        violations: list[str] = []

        orphans = await self._session.execute(
            select(CardInstanceDB.serial)
            .outerjoin(WeaponDefinitionDB, WeaponDefinitionDB.id == CardInstanceDB.definition_id)
            .where(WeaponDefinitionDB.id.is_(None))
        )
        for serial in orphans.scalars().all():
            violations.append(f"instance {serial} has no definition")

        snapshot = await self._customizations.snapshot()
        for definition in await self._catalog.list_definitions(include_deprecated=False):
            expected = snapshot.effective_count(definition)
            actual = len(
                await self._catalog.list_instances(definition.id, origin=InstanceOrigin.CATALOG)
            )
            if actual != expected:
                violations.append(f"{definition.id} has {actual} instances, expected {expected}")

        if violations:
            raise CatalogValidationError(violations)
