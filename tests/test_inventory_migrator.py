"""
Tests for legacy inventory migration.

INVARIANT: A migration either commits items that match the legacy text or
leaves nothing behind; the legacy text itself is never touched.
"""

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from armory.bootstrap import Armory
from armory.models.db import GameSessionDB, InventoryItemDB
from armory.models.failure import MigrationValidationError
from armory.models.weapon import DeckType, InstanceOrigin, SlotType
from armory.services.inventory_migrator import (
    InventoryMigrator,
    MigrationOutcome,
    MigrationStatus,
    MigrationValidation,
)


async def add_game(session: AsyncSession, active: str = "", backpack: str = "") -> GameSessionDB:
    game = GameSessionDB(character_name="Wanda", active_weapons=active, inactive_weapons=backpack)
    session.add(game)
    await session.commit()
    return game


async def items_of(session: AsyncSession, session_id: int) -> list[InventoryItemDB]:
    result = await session.execute(
        select(InventoryItemDB)
        .where(InventoryItemDB.session_id == session_id)
        .order_by(InventoryItemDB.slot_type, InventoryItemDB.slot_index)
    )
    return list(result.scalars().all())


# =============================================================================
# SINGLE SESSION
# =============================================================================


class TestMigrate:
    async def test_counts_and_slots_match_legacy_text(self, seeded_armory: Armory) -> None:
        session = seeded_armory.session
        game = await add_game(session, active="Pistol|Core; Crowbar|Core", backpack="Fire Axe|Core")

        outcome = await seeded_armory.migrator.migrate(game)

        assert outcome.status is MigrationStatus.MIGRATED
        assert outcome.items_created == 3
        assert outcome.instances_created == 0
        items = await items_of(session, game.id)
        assert [(i.slot_type, i.slot_index) for i in items] == [
            (SlotType.ACTIVE.value, 0),
            (SlotType.ACTIVE.value, 1),
            (SlotType.BACKPACK.value, 0),
        ]

    async def test_malformed_entries_skipped(self, seeded_armory: Armory) -> None:
        """One bad entry never blocks the rest of the session."""
        session = seeded_armory.session
        game = await add_game(session, active="Pistol|Core; InvalidFormat; Crowbar")

        outcome = await seeded_armory.migrator.migrate(game)

        assert outcome.status is MigrationStatus.MIGRATED
        assert outcome.items_created == 1
        assert [raw.strip() for raw in outcome.skipped_entries] == ["InvalidFormat", "Crowbar"]
        assert len(await items_of(session, game.id)) == 1

    async def test_unknown_weapon_skipped(self, seeded_armory: Armory) -> None:
        game = await add_game(seeded_armory.session, active="Pistol|Core; Laser Rifle|Core")

        outcome = await seeded_armory.migrator.migrate(game)

        assert outcome.items_created == 1
        assert outcome.skipped_entries == ["Laser Rifle|Core"]

    async def test_second_run_is_noop(self, seeded_armory: Armory) -> None:
        session = seeded_armory.session
        game = await add_game(session, active="Pistol|Core", backpack="Crowbar|Core")
        await seeded_armory.migrator.migrate(game)

        again = await seeded_armory.migrator.migrate(game)

        assert again.status is MigrationStatus.SKIPPED
        assert len(await items_of(session, game.id)) == 2

    async def test_legacy_text_untouched(self, seeded_armory: Armory) -> None:
        session = seeded_armory.session
        game = await add_game(session, active="Pistol|Core; Crowbar|Core", backpack="Fire Axe|Core")

        await seeded_armory.migrator.migrate(game)
        await session.refresh(game)

        assert game.active_weapons == "Pistol|Core; Crowbar|Core"
        assert game.inactive_weapons == "Fire Axe|Core"

    @pytest.mark.parametrize("active", ["", "Laser Rifle|Core", "garbage"])
    async def test_nothing_resolvable_is_empty(self, seeded_armory: Armory, active: str) -> None:
        session = seeded_armory.session
        game = await add_game(session, active=active)

        outcome = await seeded_armory.migrator.migrate(game)

        assert outcome.status is MigrationStatus.EMPTY
        assert await items_of(session, game.id) == []

    async def test_creates_migration_instance_when_copies_run_out(
        self, seeded_armory: Armory
    ) -> None:
        """The catalog has one Fire Axe; a second held copy gets its own instance."""
        game = await add_game(seeded_armory.session, backpack="Fire Axe|Core; Fire Axe|Core")

        outcome = await seeded_armory.migrator.migrate(game)

        assert outcome.items_created == 2
        assert outcome.instances_created == 1
        migrated = await seeded_armory.catalog.list_instances(
            "Starting:Fire Axe:Core", origin=InstanceOrigin.MIGRATION
        )
        assert len(migrated) == 1

    async def test_distinct_sessions_claim_distinct_instances(self, seeded_armory: Armory) -> None:
        session = seeded_armory.session
        first = await add_game(session, active="Crowbar|Core")
        second = await add_game(session, active="Crowbar|Core")

        await seeded_armory.migrator.migrate(first)
        await seeded_armory.migrator.migrate(second)

        (first_item,) = await items_of(session, first.id)
        (second_item,) = await items_of(session, second.id)
        assert first_item.card_instance_id != second_item.card_instance_id


# =============================================================================
# ROLLBACK
# =============================================================================


def reject_validation(migrator: InventoryMigrator, monkeypatch: pytest.MonkeyPatch) -> None:
    """Make every post-migration validation fail with a slot violation."""

    async def rejecting(game_session: GameSessionDB) -> MigrationValidation:
        return MigrationValidation(
            is_valid=False, violations=["active slot indices not sequential: [1, 2]"]
        )

    monkeypatch.setattr(migrator, "validate", rejecting)


class TestRollback:
    async def test_failed_validation_removes_items(
        self, seeded_armory: Armory, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        session = seeded_armory.session
        migrator = seeded_armory.migrator
        reject_validation(migrator, monkeypatch)
        game = await add_game(session, active="Pistol|Core; Crowbar|Core")

        with pytest.raises(MigrationValidationError) as exc_info:
            await migrator.migrate(game)

        assert exc_info.value.session_id == game.id
        assert any("not sequential" in v for v in exc_info.value.violations)
        assert await items_of(session, game.id) == []
        await session.refresh(game)
        assert game.active_weapons == "Pistol|Core; Crowbar|Core"

    async def test_rollback_removes_created_instances(
        self, seeded_armory: Armory, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        migrator = seeded_armory.migrator
        reject_validation(migrator, monkeypatch)
        game = await add_game(seeded_armory.session, backpack="Fire Axe|Core; Fire Axe|Core")

        with pytest.raises(MigrationValidationError):
            await migrator.migrate(game)

        instances = await seeded_armory.catalog.list_instances(
            "Starting:Fire Axe:Core", include_retired=True
        )
        assert [i.origin for i in instances] == [InstanceOrigin.CATALOG]

    async def test_session_can_migrate_after_failed_attempt(
        self, seeded_armory: Armory, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        migrator = seeded_armory.migrator
        game = await add_game(seeded_armory.session, active="Pistol|Core")
        with monkeypatch.context() as patched:
            reject_validation(migrator, patched)
            with pytest.raises(MigrationValidationError):
                await migrator.migrate(game)

        outcome = await migrator.migrate(game)

        assert outcome.status is MigrationStatus.MIGRATED

    async def test_error_mid_session_leaves_no_items(
        self, seeded_armory: Armory, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A non-database error after the first item was flushed rolls it back."""
        session = seeded_armory.session
        catalog = seeded_armory.catalog
        game = await add_game(session, active="Pistol|Core; Boom|Core")
        game_id = game.id
        original_find = catalog.find_definition

        async def exploding_find(name: str, set_name: str, deck_type: DeckType | None = None):
            if name == "Boom":
                raise ValueError("corrupt stat row")
            return await original_find(name, set_name, deck_type)

        monkeypatch.setattr(catalog, "find_definition", exploding_find)

        with pytest.raises(ValueError):
            await seeded_armory.migrator.migrate(game)

        assert await items_of(session, game_id) == []


# =============================================================================
# VALIDATION
# =============================================================================


class TestValidate:
    async def test_migrated_session_is_valid(self, seeded_armory: Armory) -> None:
        game = await add_game(
            seeded_armory.session, active="Pistol|Core; Crowbar|Core", backpack="Fire Axe|Core"
        )
        await seeded_armory.migrator.migrate(game)

        validation = await seeded_armory.migrator.validate(game)

        assert validation.is_valid
        assert validation.violations == []

    async def test_extra_item_is_reported(self, seeded_armory: Armory) -> None:
        session = seeded_armory.session
        game = await add_game(session, active="Pistol|Core")
        await seeded_armory.migrator.migrate(game)
        (item,) = await items_of(session, game.id)
        session.add(
            InventoryItemDB(
                session_id=game.id,
                card_instance_id=item.card_instance_id,
                slot_type=SlotType.BACKPACK.value,
                slot_index=0,
            )
        )
        await session.flush()

        validation = await seeded_armory.migrator.validate(game)

        assert not validation.is_valid
        assert "backpack item count 1 != 0 legacy entries" in validation.violations
        assert "item count 2 != 1 legacy entries" in validation.violations

    async def test_unknown_slot_type_is_reported(self, seeded_armory: Armory) -> None:
        session = seeded_armory.session
        game = await add_game(session, active="Pistol|Core")
        await seeded_armory.migrator.migrate(game)
        (item,) = await items_of(session, game.id)
        item.slot_type = "pocket"
        await session.flush()

        validation = await seeded_armory.migrator.validate(game)

        assert any("unknown slot type 'pocket'" in v for v in validation.violations)


# =============================================================================
# ALL SESSIONS
# =============================================================================




# =============================================================================
# ALL SESSIONS
# =============================================================================


class TestMigrateAll:
    async def test_reports_each_session(self, seeded_armory: Armory) -> None:
        session = seeded_armory.session
        full = await add_game(session, active="Pistol|Core")
        empty = await add_game(session)

        report = await seeded_armory.migrator.migrate_all()

        assert report.migrated == [full.id]
        assert report.skipped == [empty.id]
        assert report.failed == {}
        assert report.total == 2

    async def test_failure_does_not_stop_the_rest(
        self, seeded_armory: Armory, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        session = seeded_armory.session
        migrator = seeded_armory.migrator
        first_id = (await add_game(session, active="Pistol|Core")).id
        broken_id = (await add_game(session, active="Crowbar|Core")).id
        last_id = (await add_game(session, active="Fire Axe|Core")).id
        original = migrator.migrate

        async def flaky(game_session: GameSessionDB) -> MigrationOutcome:
            if game_session.id == broken_id:
                raise RuntimeError("disk on fire")
            return await original(game_session)

        monkeypatch.setattr(migrator, "migrate", flaky)

        report = await migrator.migrate_all()

        assert report.migrated == [first_id, last_id]
        assert report.failed == {broken_id: "disk on fire"}
        assert await items_of(session, broken_id) == []

    async def test_partial_session_not_committed_by_next(
        self, seeded_armory: Armory, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Items flushed before an error must not ride along with the next commit."""
        session = seeded_armory.session
        catalog = seeded_armory.catalog
        broken_id = (await add_game(session, active="Pistol|Core; Boom|Core")).id
        healthy_id = (await add_game(session, active="Crowbar|Core")).id
        original_find = catalog.find_definition

        async def exploding_find(name: str, set_name: str, deck_type: DeckType | None = None):
            if name == "Boom":
                raise ValueError("corrupt stat row")
            return await original_find(name, set_name, deck_type)

        monkeypatch.setattr(catalog, "find_definition", exploding_find)

        report = await seeded_armory.migrator.migrate_all()

        assert report.failed == {broken_id: "corrupt stat row"}
        assert report.migrated == [healthy_id]
        assert await items_of(session, broken_id) == []
        assert len(await items_of(session, healthy_id)) == 1

        monkeypatch.undo()
        retry = await seeded_armory.migrator.migrate_all()
        assert broken_id in retry.migrated
