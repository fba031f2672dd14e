from armory.models.difficulty import (
    DIFFICULTY_RULES,
    DifficultyMode,
    WeightingRule,
    matched_rules,
    virtual_copy_count,
)
from armory.models.failure import (
    CannotDeleteLastDefaultError,
    CatalogLookupError,
    CatalogParseError,
    CatalogValidationError,
    DeckNotLoadedError,
    DuplicateDefinitionError,
    FailureKind,
    InventoryEntryError,
    KnownError,
    MigrationValidationError,
    PresetConflictError,
    PresetNotFoundError,
    VersionFormatError,
)
from armory.models.weapon import (
    Abilities,
    AmmoType,
    Both,
    CardInstance,
    CombatStats,
    DeckType,
    InstanceOrigin,
    Melee,
    MeleeStats,
    Ranged,
    RangedStats,
    SlotType,
    WeaponCategory,
    WeaponDefinition,
    WeaponProfile,
    definition_id,
)

__all__ = [
    "Abilities",
    "AmmoType",
    "Both",
    "CannotDeleteLastDefaultError",
    "CardInstance",
    "CatalogLookupError",
    "CatalogParseError",
    "CatalogValidationError",
    "CombatStats",
    "DIFFICULTY_RULES",
    "DeckNotLoadedError",
    "DeckType",
    "DifficultyMode",
    "DuplicateDefinitionError",
    "FailureKind",
    "InstanceOrigin",
    "InventoryEntryError",
    "KnownError",
    "Melee",
    "MeleeStats",
    "MigrationValidationError",
    "PresetConflictError",
    "PresetNotFoundError",
    "Ranged",
    "RangedStats",
    "SlotType",
    "VersionFormatError",
    "WeaponCategory",
    "WeaponDefinition",
    "WeaponProfile",
    "WeightingRule",
    "definition_id",
    "matched_rules",
    "virtual_copy_count",
]
