from armory.services.catalog_importer import CatalogImporter, ImportSummary
from armory.services.customization_store import (
    CountSource,
    CustomizationDiff,
    CustomizationRecord,
    CustomizationSnapshot,
    CustomizationStore,
    DiffKind,
    EffectiveCustomization,
    PresetConflictPolicy,
    PresetCustomizationEntry,
    PresetDocument,
    resolve_customization,
)
from armory.services.deck_runtime import (
    DeckEvent,
    DeckRuntime,
    DeckState,
    PoolEntry,
    has_adjacent_duplicates,
    spread_duplicates,
)
from armory.services.inventory_migrator import (
    InventoryMigrator,
    MigrationOutcome,
    MigrationReport,
    MigrationStatus,
    MigrationValidation,
)

__all__ = [
    "CatalogImporter",
    "CountSource",
    "CustomizationDiff",
    "CustomizationRecord",
    "CustomizationSnapshot",
    "CustomizationStore",
    "DeckEvent",
    "DeckRuntime",
    "DeckState",
    "DiffKind",
    "EffectiveCustomization",
    "ImportSummary",
    "InventoryMigrator",
    "MigrationOutcome",
    "MigrationReport",
    "MigrationStatus",
    "MigrationValidation",
    "PoolEntry",
    "PresetConflictPolicy",
    "PresetCustomizationEntry",
    "PresetDocument",
    "has_adjacent_duplicates",
    "resolve_customization",
    "spread_duplicates",
]
