"""
Deck customization store.

Customization records enable or disable a weapon definition and optionally
override its copy count. A record without a preset is global; a record owned
by a preset only applies while that preset is selected.

Precedence when composing a deck:
    preset-scoped record > global record > definition default

Records reference definitions by their deterministic id, so they survive
catalog re-imports unchanged.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from armory.models.db import DeckCustomizationDB, DeckPresetDB, WeaponDefinitionDB
from armory.models.failure import (
    CannotDeleteLastDefaultError,
    PresetConflictError,
    PresetNotFoundError,
)
from armory.models.weapon import WeaponDefinition

logger = logging.getLogger(__name__)


class CountSource(str, Enum):
    """Which layer supplied an effective copy count."""

    PRESET = "preset"
    GLOBAL = "global"
    DEFAULT = "default"


@dataclass(frozen=True, slots=True)
class CustomizationRecord:
    """Detached copy of one customization row."""

    definition_id: str
    enabled: bool = True
    count_override: int | None = None
    priority: int = 0
    notes: str | None = None
    preset_id: int | None = None


@dataclass(frozen=True, slots=True)
class EffectiveCustomization:
    definition_id: str
    enabled: bool
    count: int
    count_source: CountSource
    priority: int = 0


def record_to_model(row: DeckCustomizationDB) -> CustomizationRecord:
    return CustomizationRecord(
        definition_id=row.definition_id,
        enabled=row.is_enabled,
        count_override=row.count_override,
        priority=row.priority,
        notes=row.notes,
        preset_id=row.preset_id,
    )


def resolve_customization(
    definition: WeaponDefinition,
    preset_record: CustomizationRecord | None,
    global_record: CustomizationRecord | None,
) -> EffectiveCustomization:
    """
    Apply precedence to the records that exist for one definition.

    The enabled flag and priority come from the most specific record present.
    An unset count override falls through to the next layer.
    """
    top = preset_record or global_record
    enabled = top.enabled if top else True
    priority = top.priority if top else 0

    if preset_record and preset_record.count_override is not None:
        count, source = preset_record.count_override, CountSource.PRESET
    elif global_record and global_record.count_override is not None:
        count, source = global_record.count_override, CountSource.GLOBAL
    else:
        count, source = definition.default_count, CountSource.DEFAULT

    return EffectiveCustomization(
        definition_id=definition.id,
        enabled=enabled,
        count=count,
        count_source=source,
        priority=priority,
    )


@dataclass(frozen=True)
class CustomizationSnapshot:
    """
    In-memory precedence table, detached from the database.

    DeckRuntime composes decks from a snapshot so that deck building does no
    I/O and later edits do not change an already loaded deck.
    """

    preset_id: int | None = None
    global_records: Mapping[str, CustomizationRecord] = field(default_factory=dict)
    preset_records: Mapping[str, CustomizationRecord] = field(default_factory=dict)

    def resolve(self, definition: WeaponDefinition) -> EffectiveCustomization:
        return resolve_customization(
            definition,
            self.preset_records.get(definition.id),
            self.global_records.get(definition.id),
        )

    def is_enabled(self, definition: WeaponDefinition) -> bool:
        return self.resolve(definition).enabled

    def effective_count(self, definition: WeaponDefinition) -> int:
        return self.resolve(definition).count


class DiffKind(str, Enum):
    COUNT_CHANGED = "count_changed"
    DISABLED = "disabled"


@dataclass(frozen=True, slots=True)
class CustomizationDiff:
    """One way a preset departs from the default deck."""

    definition_id: str
    weapon_name: str
    set_name: str
    kind: DiffKind
    default_count: int
    custom_count: int | None
    enabled: bool


# =============================================================================
# PORTABLE PRESET DOCUMENT
# =============================================================================


class PresetCustomizationEntry(BaseModel):
    definition_id: str = Field(min_length=1)
    enabled: bool = True
    count_override: int | None = Field(default=None, ge=0)
    priority: int = 0
    notes: str | None = None


class PresetDocument(BaseModel):
    """Portable export of one preset. Serialize with model_dump_json()."""

    name: str = Field(min_length=1)
    description: str = ""
    customizations: list[PresetCustomizationEntry] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_unique_definitions(self) -> "PresetDocument":
        seen: set[str] = set()
        for entry in self.customizations:
            if entry.definition_id in seen:
                msg = f"definition '{entry.definition_id}' listed more than once"
                raise ValueError(msg)
            seen.add(entry.definition_id)
        return self

    def tuples(self) -> set[tuple[str, bool, int | None]]:
        """(definition id, enabled, count override) for every entry."""
        return {
            (entry.definition_id, entry.enabled, entry.count_override)
            for entry in self.customizations
        }


class PresetConflictPolicy(str, Enum):
    """What import_preset does when the document's name is already taken."""

    REJECT = "reject"
    RENAME = "rename"
    OVERWRITE = "overwrite"


# =============================================================================
# STORE
# =============================================================================


class CustomizationStore:
    """
    CRUD for presets and customization records.

    Writes are flushed, never committed; the caller owns the transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # --- Presets ---

    async def get_preset(self, preset_id: int) -> DeckPresetDB:
        """Raises PresetNotFoundError if absent."""
        preset = await self._session.get(DeckPresetDB, preset_id)
        if preset is None:
            raise PresetNotFoundError(preset_id)
        return preset

    async def find_preset_by_name(self, name: str) -> DeckPresetDB | None:
        result = await self._session.execute(select(DeckPresetDB).where(DeckPresetDB.name == name))
        return result.scalar_one_or_none()

    async def list_presets(self) -> list[DeckPresetDB]:
        """All presets, newest first."""
        result = await self._session.execute(
            select(DeckPresetDB).order_by(DeckPresetDB.created_at.desc(), DeckPresetDB.id.desc())
        )
        return list(result.scalars().all())

    async def get_default_preset(self) -> DeckPresetDB | None:
        result = await self._session.execute(
            select(DeckPresetDB).where(DeckPresetDB.is_default.is_(True)).limit(1)
        )
        return result.scalar_one_or_none()

    async def _unset_all_defaults(self) -> None:
        result = await self._session.execute(
            select(DeckPresetDB).where(DeckPresetDB.is_default.is_(True))
        )
        for preset in result.scalars().all():
            preset.is_default = False

    async def create_preset(
        self,
        name: str,
        description: str = "",
        is_default: bool = False,
        based_on: int | None = None,
    ) -> DeckPresetDB:
        """
        Create a preset, optionally copying another preset's records.

        Raises:
            PresetConflictError: If the name is taken
            PresetNotFoundError: If `based_on` does not exist
        """
        if await self.find_preset_by_name(name) is not None:
            raise PresetConflictError(name)
        source_records: list[CustomizationRecord] = []
        if based_on is not None:
            await self.get_preset(based_on)
            source_records = await self.list_customizations(based_on)

        if is_default:
            await self._unset_all_defaults()

        preset = DeckPresetDB(name=name, description=description, is_default=is_default)
        self._session.add(preset)
        await self._session.flush()

        for record in source_records:
            self._session.add(
                DeckCustomizationDB(
                    definition_id=record.definition_id,
                    preset_id=preset.id,
                    is_enabled=record.enabled,
                    count_override=record.count_override,
                    priority=record.priority,
                    notes=record.notes,
                )
            )
        await self._session.flush()
        return preset

    async def set_default_preset(self, preset_id: int) -> DeckPresetDB:
        preset = await self.get_preset(preset_id)
        await self._unset_all_defaults()
        preset.is_default = True
        preset.last_used = datetime.now(UTC)
        await self._session.flush()
        return preset

    async def mark_preset_used(self, preset_id: int) -> None:
        preset = await self.get_preset(preset_id)
        preset.last_used = datetime.now(UTC)
        await self._session.flush()

    async def delete_preset(self, preset_id: int) -> None:
        """
        Delete a preset and its records.

        Raises:
            CannotDeleteLastDefaultError: If it is the default and the only preset
        """
        preset = await self.get_preset(preset_id)
        if preset.is_default:
            count = await self._session.execute(select(func.count(DeckPresetDB.id)))
            if count.scalar_one() == 1:
                raise CannotDeleteLastDefaultError()

        for row in await self._record_rows(preset_id):
            await self._session.delete(row)
        await self._session.delete(preset)
        await self._session.flush()

    # --- Records ---

    async def _record_rows(self, preset_id: int | None) -> list[DeckCustomizationDB]:
        query = select(DeckCustomizationDB).order_by(
            DeckCustomizationDB.priority, DeckCustomizationDB.definition_id
        )
        if preset_id is None:
            query = query.where(DeckCustomizationDB.preset_id.is_(None))
        else:
            query = query.where(DeckCustomizationDB.preset_id == preset_id)
        result = await self._session.execute(query)
        return list(result.scalars().all())

    async def _get_record_row(
        self, definition_id: str, preset_id: int | None
    ) -> DeckCustomizationDB | None:
        query = select(DeckCustomizationDB).where(
            DeckCustomizationDB.definition_id == definition_id
        )
        if preset_id is None:
            query = query.where(DeckCustomizationDB.preset_id.is_(None))
        else:
            query = query.where(DeckCustomizationDB.preset_id == preset_id)
        result = await self._session.execute(query)
        return result.scalar_one_or_none()

    async def list_customizations(self, preset_id: int | None = None) -> list[CustomizationRecord]:
        """Records of one preset (or the global records), by priority."""
        return [record_to_model(row) for row in await self._record_rows(preset_id)]

    async def get_customization(
        self, definition_id: str, preset_id: int | None = None
    ) -> CustomizationRecord | None:
        row = await self._get_record_row(definition_id, preset_id)
        return record_to_model(row) if row else None

    async def set_customization(
        self,
        definition_id: str,
        preset_id: int | None = None,
        enabled: bool | None = None,
        count_override: int | None = None,
        priority: int | None = None,
        notes: str | None = None,
        clear_count_override: bool = False,
    ) -> CustomizationRecord:
        """
        Create or update the record for a definition.

        Arguments left as None keep their current value (or the record
        default for a new record). Pass clear_count_override=True to drop an
        existing override.

        Raises:
            LookupError: If the definition does not exist
            PresetNotFoundError: If the preset does not exist
            ValueError: If count_override is negative
        """
        if count_override is not None and count_override < 0:
            msg = f"count_override must be >= 0, got {count_override}"
            raise ValueError(msg)
        if await self._session.get(WeaponDefinitionDB, definition_id) is None:
            msg = f"Weapon definition '{definition_id}' not found"
            raise LookupError(msg)
        if preset_id is not None:
            await self.get_preset(preset_id)

        row = await self._get_record_row(definition_id, preset_id)
        if row is None:
            row = DeckCustomizationDB(
                definition_id=definition_id,
                preset_id=preset_id,
                is_enabled=True,
                count_override=None,
                priority=0,
            )
            self._session.add(row)

        if enabled is not None:
            row.is_enabled = enabled
        if clear_count_override:
            row.count_override = None
        elif count_override is not None:
            row.count_override = count_override
        if priority is not None:
            row.priority = priority
        if notes is not None:
            row.notes = notes

        await self._session.flush()
        return record_to_model(row)

    async def remove_customization(self, definition_id: str, preset_id: int | None = None) -> bool:
        """Returns True if a record was removed."""
        row = await self._get_record_row(definition_id, preset_id)
        if row is None:
            return False
        await self._session.delete(row)
        await self._session.flush()
        return True

    # --- Resolution ---

    async def resolve_effective(
        self, definition: WeaponDefinition, preset_id: int | None = None
    ) -> EffectiveCustomization:
        global_row = await self._get_record_row(definition.id, None)
        preset_row = (
            await self._get_record_row(definition.id, preset_id) if preset_id is not None else None
        )
        return resolve_customization(
            definition,
            record_to_model(preset_row) if preset_row else None,
            record_to_model(global_row) if global_row else None,
        )

    async def snapshot(self, preset_id: int | None = None) -> CustomizationSnapshot:
        """Freeze the global records plus one preset's records."""
        global_records = {
            record.definition_id: record for record in await self.list_customizations()
        }
        preset_records: dict[str, CustomizationRecord] = {}
        if preset_id is not None:
            await self.get_preset(preset_id)
            preset_records = {
                record.definition_id: record
                for record in await self.list_customizations(preset_id)
            }
        return CustomizationSnapshot(
            preset_id=preset_id,
            global_records=global_records,
            preset_records=preset_records,
        )

    async def diffs_from_default(self, preset_id: int) -> list[CustomizationDiff]:
        """Count changes and disabled weapons of a preset, sorted by weapon name."""
        await self.get_preset(preset_id)
        result = await self._session.execute(
            select(DeckCustomizationDB, WeaponDefinitionDB)
            .join(WeaponDefinitionDB, WeaponDefinitionDB.id == DeckCustomizationDB.definition_id)
            .where(DeckCustomizationDB.preset_id == preset_id)
        )

        diffs: list[CustomizationDiff] = []
        for record, definition in result.all():
            custom = record.count_override
            if custom is not None and custom != definition.default_count:
                diffs.append(
                    CustomizationDiff(
                        definition_id=definition.id,
                        weapon_name=definition.name,
                        set_name=definition.set_name,
                        kind=DiffKind.COUNT_CHANGED,
                        default_count=definition.default_count,
                        custom_count=custom,
                        enabled=record.is_enabled,
                    )
                )
            if not record.is_enabled:
                diffs.append(
                    CustomizationDiff(
                        definition_id=definition.id,
                        weapon_name=definition.name,
                        set_name=definition.set_name,
                        kind=DiffKind.DISABLED,
                        default_count=definition.default_count,
                        custom_count=custom,
                        enabled=False,
                    )
                )
        return sorted(diffs, key=lambda diff: (diff.weapon_name, diff.set_name, diff.kind.value))

    # --- Export / import ---

    async def export_preset(self, preset_id: int) -> PresetDocument:
        preset = await self.get_preset(preset_id)
        entries = [
            PresetCustomizationEntry(
                definition_id=record.definition_id,
                enabled=record.enabled,
                count_override=record.count_override,
                priority=record.priority,
                notes=record.notes,
            )
            for record in await self.list_customizations(preset_id)
        ]
        return PresetDocument(
            name=preset.name, description=preset.description, customizations=entries
        )

    async def _free_name(self, name: str) -> str:
        suffix = 2
        candidate = f"{name} ({suffix})"
        while await self.find_preset_by_name(candidate) is not None:
            suffix += 1
            candidate = f"{name} ({suffix})"
        return candidate

    async def import_preset(
        self,
        document: PresetDocument | str | bytes,
        on_conflict: PresetConflictPolicy,
        set_as_default: bool = False,
    ) -> DeckPresetDB:
        """
        Create a preset from a portable document.

        The caller decides what happens on a name collision: REJECT raises
        PresetConflictError, RENAME appends " (2)", " (3)", ... and OVERWRITE
        replaces the existing preset's description and records in place.
        Entries naming definitions missing from the catalog are skipped.

        Raises:
            pydantic.ValidationError: If a JSON document is malformed
            PresetConflictError: On a name collision under REJECT
        """
        if not isinstance(document, PresetDocument):
            document = PresetDocument.model_validate_json(document)

        existing = await self.find_preset_by_name(document.name)
        if existing is not None and on_conflict is PresetConflictPolicy.REJECT:
            raise PresetConflictError(document.name)

        if existing is not None and on_conflict is PresetConflictPolicy.OVERWRITE:
            preset = existing
            preset.description = document.description
            for row in await self._record_rows(preset.id):
                await self._session.delete(row)
            await self._session.flush()
            if set_as_default:
                await self._unset_all_defaults()
                preset.is_default = True
        else:
            name = document.name if existing is None else await self._free_name(document.name)
            preset = await self.create_preset(
                name, document.description, is_default=set_as_default
            )

        imported = 0
        for entry in document.customizations:
            if await self._session.get(WeaponDefinitionDB, entry.definition_id) is None:
                logger.warning(
                    "Skipping preset entry for unknown weapon %s in '%s'",
                    entry.definition_id,
                    document.name,
                )
                continue
            self._session.add(
                DeckCustomizationDB(
                    definition_id=entry.definition_id,
                    preset_id=preset.id,
                    is_enabled=entry.enabled,
                    count_override=entry.count_override,
                    priority=entry.priority,
                    notes=entry.notes,
                )
            )
            imported += 1

        await self._session.flush()
        logger.info("Imported preset '%s' with %d customizations", preset.name, imported)
        return preset
