"""
Legacy inventory migration.

Game sessions used to store inventory as two free-text fields
("Pistol|Core; Crowbar|Core"). This service turns them into structured
inventory items pointing at card instances, validates the result and either
commits it or removes everything it created.

INVARIANTS:
- A session that already owns inventory items is never migrated again.
- Legacy text fields are never modified.
- A failed migration leaves the session with no new items and no instance
  that was created only for it.
- One session's failure never stops migrate_all().
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from sqlalchemy import func, select

from armory.db.catalog import CardCatalog
from armory.models.db import CardInstanceDB, GameSessionDB, InventoryItemDB, WeaponDefinitionDB
from armory.models.failure import CatalogLookupError, MigrationValidationError
from armory.models.weapon import SlotType, WeaponDefinition
from armory.parsers.legacy_inventory import LegacyEntry, parse_inventory_text

logger = logging.getLogger(__name__)


class MigrationStatus(str, Enum):
    MIGRATED = "migrated"
    SKIPPED = "skipped"  # session already had inventory items
    EMPTY = "empty"  # nothing in the legacy text resolved to a weapon


@dataclass(frozen=True)
class MigrationValidation:
    is_valid: bool
    violations: list[str] = field(default_factory=list)


@dataclass
class MigrationOutcome:
    session_id: int
    status: MigrationStatus
    items_created: int = 0
    instances_created: int = 0
    skipped_entries: list[str] = field(default_factory=list)


@dataclass
class MigrationReport:
    """Result of migrating every session."""

    migrated: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.migrated) + len(self.skipped) + len(self.failed)


def _legacy_fields(game_session: GameSessionDB) -> list[tuple[SlotType, str]]:
    return [
        (SlotType.ACTIVE, game_session.active_weapons),
        (SlotType.BACKPACK, game_session.inactive_weapons),
    ]


class InventoryMigrator:
    """Moves legacy inventory text into inventory items, one session at a time."""

    def __init__(self, catalog: CardCatalog) -> None:
        self._catalog = catalog
        self._session = catalog.session

    async def _item_count(self, session_id: int) -> int:
        result = await self._session.execute(
            select(func.count(InventoryItemDB.id)).where(InventoryItemDB.session_id == session_id)
        )
        return result.scalar_one()

    async def _resolve(self, entry: LegacyEntry) -> WeaponDefinition:
        definition = await self._catalog.find_definition(entry.name, entry.set_name)
        if definition is None:
            raise CatalogLookupError(entry.name, entry.set_name)
        return definition

    async def migrate(self, game_session: GameSessionDB) -> MigrationOutcome:
        """
        Migrate one session's legacy inventory.

        Returns:
            The outcome; SKIPPED if the session already owns items.

        Raises:
            MigrationValidationError: If the created items fail validation.
                They have been removed again before this is raised.
            Exception: Anything else raised while creating items propagates
                after the session's uncommitted work is rolled back.
        """
        session_id = game_session.id
        if await self._item_count(session_id) > 0:
            logger.debug("Session %d already has inventory items; skipping", session_id)
            return MigrationOutcome(session_id=session_id, status=MigrationStatus.SKIPPED)

        outcome = MigrationOutcome(session_id=session_id, status=MigrationStatus.MIGRATED)
        created_items: list[InventoryItemDB] = []
        created_instances: list[int] = []

        try:
            for slot_type, text in _legacy_fields(game_session):
                parsed = parse_inventory_text(text)
                for error in parsed.malformed:
                    logger.warning("Session %d: %s", session_id, error)
                    outcome.skipped_entries.append(error.raw_entry)

                position = 0
                for entry in parsed.entries:
                    try:
                        definition = await self._resolve(entry)
                    except CatalogLookupError as e:
                        logger.warning("Session %d: %s", session_id, e)
                        outcome.skipped_entries.append(entry.raw)
                        continue

                    instance, created = await self._catalog.claim_free_instance(definition.id)
                    if created:
                        created_instances.append(instance.id)
                    item = InventoryItemDB(
                        session_id=session_id,
                        card_instance_id=instance.id,
                        slot_type=slot_type.value,
                        slot_index=position,
                    )
                    self._session.add(item)
                    await self._session.flush()
                    created_items.append(item)
                    position += 1
        except Exception:
            # Nothing was committed yet; drops every flushed item and instance
            await self._session.rollback()
            logger.error("Session %d migration aborted; rolled back", session_id)
            raise

        if not created_items:
            outcome.status = MigrationStatus.EMPTY
            return outcome

        validation = await self.validate(game_session)
        if not validation.is_valid:
            await self._discard_attempt(created_items, created_instances)
            logger.error(
                "Session %d migration rolled back: %s", session_id, "; ".join(validation.violations)
            )
            raise MigrationValidationError(validation.violations, session_id=session_id)

        await self._session.commit()
        outcome.items_created = len(created_items)
        outcome.instances_created = len(created_instances)
        logger.info(
            "Session %d migrated: %d items (%d new instances), %d entries skipped",
            session_id,
            outcome.items_created,
            outcome.instances_created,
            len(outcome.skipped_entries),
        )
        return outcome

    async def _discard_attempt(
        self, created_items: list[InventoryItemDB], created_instances: list[int]
    ) -> None:
        """Delete the items of a failed attempt and instances left orphaned by it."""
        for item in created_items:
            await self._session.delete(item)
        await self._session.flush()
        for instance_id in created_instances:
            if not await self._catalog.is_referenced(instance_id):
                await self._catalog.delete_instance(instance_id)
        await self._session.commit()

    async def validate(self, game_session: GameSessionDB) -> MigrationValidation:
        """
        Check a migrated session against its legacy text.

        Rules:
            1. Item count equals the number of legacy entries that resolve,
               in total and per slot type
            2. Slot indices per slot type are exactly 0..N-1
            3. Every item points at an instance that has a definition
        """
        violations: list[str] = []
        result = await self._session.execute(
            select(InventoryItemDB).where(InventoryItemDB.session_id == game_session.id)
        )
        items = list(result.scalars().all())

        expected_total = 0
        for slot_type, text in _legacy_fields(game_session):
            expected = 0
            for entry in parse_inventory_text(text).entries:
                if await self._catalog.find_definition(entry.name, entry.set_name) is not None:
                    expected += 1
            expected_total += expected

            indices = sorted(item.slot_index for item in items if item.slot_type == slot_type.value)
            if len(indices) != expected:
                violations.append(
                    f"{slot_type.value} item count {len(indices)} != {expected} legacy entries"
                )
            if indices != list(range(len(indices))):
                violations.append(f"{slot_type.value} slot indices not sequential: {indices}")

        if len(items) != expected_total:
            violations.append(f"item count {len(items)} != {expected_total} legacy entries")

        known_slots = {slot_type.value for slot_type in SlotType}
        for item in items:
            if item.slot_type not in known_slots:
                violations.append(f"item {item.id} has unknown slot type '{item.slot_type}'")
            instance = await self._session.get(CardInstanceDB, item.card_instance_id)
            if instance is None:
                violations.append(f"item {item.id} missing card instance")
                continue
            if await self._session.get(WeaponDefinitionDB, instance.definition_id) is None:
                violations.append(f"card instance {instance.serial} missing definition")

        return MigrationValidation(is_valid=not violations, violations=violations)

    async def migrate_all(self) -> MigrationReport:
        """Migrate every session; a failing session is recorded and skipped."""
        report = MigrationReport()
        result = await self._session.execute(select(GameSessionDB.id).order_by(GameSessionDB.id))
        session_ids = list(result.scalars().all())

        for session_id in session_ids:
            try:
                game_session = await self._session.get(GameSessionDB, session_id)
                if game_session is None:
                    continue
                outcome = await self.migrate(game_session)
            except Exception as e:
                await self._session.rollback()
                logger.error("Error migrating session %d: %s", session_id, e)
                report.failed[session_id] = str(e)
                continue

            if outcome.status is MigrationStatus.MIGRATED:
                report.migrated.append(session_id)
            else:
                report.skipped.append(session_id)

        logger.info(
            "Inventory migration finished: %d migrated, %d skipped, %d failed",
            len(report.migrated),
            len(report.skipped),
            len(report.failed),
        )
        return report
