"""
Weapon domain models.

A WeaponDefinition is one catalog entry (one row per unique weapon, set and
deck). A CardInstance is one physical copy of a definition.

INVARIANTS:
- Definition identity is computed from deck type, name and set; it is never
  supplied by callers and never changes across re-imports.
- A weapon's combat profile is exactly one of Melee, Ranged or Both, so a
  melee-only weapon cannot carry ranged stats.
- All models are frozen (immutable after construction).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar


class DeckType(str, Enum):
    """The three independent weapon card pools."""

    STARTING = "Starting"
    REGULAR = "Regular"
    ULTRARED = "Ultrared"


class WeaponCategory(str, Enum):
    """Combat mode of a weapon."""

    MELEE = "Melee"
    RANGED = "Ranged"
    BOTH = "Both"


class AmmoType(str, Enum):
    BULLETS = "Bullets"
    SHELLS = "Shells"
    NONE = ""


class SlotType(str, Enum):
    """Inventory placement of a card."""

    ACTIVE = "active"
    BACKPACK = "backpack"


class InstanceOrigin(str, Enum):
    """Who created a card instance."""

    CATALOG = "catalog"
    MIGRATION = "migration"


def definition_id(deck_type: DeckType | str, name: str, set_name: str) -> str:
    """
    Compute the deterministic identity of a weapon definition.

    Example: definition_id(DeckType.STARTING, "Pistol", "Core") == "Starting:Pistol:Core"
    """
    deck_label = deck_type.value if isinstance(deck_type, DeckType) else deck_type
    return f"{deck_label}:{name}:{set_name}"


@dataclass(frozen=True, slots=True)
class CombatStats:
    """
    Stats shared by every combat mode.

    Attributes:
        dice: Number of dice rolled
        accuracy: Roll threshold (1-6); 0 means the attack always hits
        damage: Damage dealt per hit
        overload: Overload dice bonus (0 = no overload)
        kill_noise: Whether a kill with this mode makes noise
    """

    dice: int
    accuracy: int
    damage: int
    overload: int = 0
    kill_noise: bool = False

    @property
    def is_auto_hit(self) -> bool:
        return self.accuracy == 0

    @property
    def accuracy_display(self) -> str:
        """Formatted accuracy ("100%", "6", or e.g. "3+")."""
        if self.accuracy == 0:
            return "100%"
        if self.accuracy == 6:
            return "6"
        return f"{self.accuracy}+"


@dataclass(frozen=True, slots=True)
class MeleeStats(CombatStats):
    range: int = 0


@dataclass(frozen=True, slots=True)
class RangedStats(CombatStats):
    range_min: int = 0
    range_max: int = 0
    ammo_type: AmmoType = AmmoType.NONE


@dataclass(frozen=True, slots=True)
class Melee:
    """A weapon usable only in melee."""

    category: ClassVar[WeaponCategory] = WeaponCategory.MELEE

    stats: MeleeStats

    @property
    def weighting_stats(self) -> CombatStats:
        return self.stats

    @property
    def range_display(self) -> str:
        return str(self.stats.range)


@dataclass(frozen=True, slots=True)
class Ranged:
    """A weapon usable only at range."""

    category: ClassVar[WeaponCategory] = WeaponCategory.RANGED

    stats: RangedStats

    @property
    def weighting_stats(self) -> CombatStats:
        return self.stats

    @property
    def range_display(self) -> str:
        return _format_range(self.stats.range_min, self.stats.range_max)


@dataclass(frozen=True, slots=True)
class Both:
    """A weapon with separate melee and ranged modes."""

    category: ClassVar[WeaponCategory] = WeaponCategory.BOTH

    melee: MeleeStats
    ranged: RangedStats

    @property
    def weighting_stats(self) -> CombatStats:
        # Melee mode takes precedence when scoring dual-mode weapons
        return self.melee

    @property
    def range_display(self) -> str:
        return f"{self.melee.range} / {_format_range(self.ranged.range_min, self.ranged.range_max)}"


WeaponProfile = Melee | Ranged | Both


def _format_range(range_min: int, range_max: int) -> str:
    return str(range_min) if range_min == range_max else f"{range_min}-{range_max}"


@dataclass(frozen=True, slots=True)
class Abilities:
    """Ability flags printed on a weapon card."""

    open_door: bool = False
    door_noise: bool = False
    kill_noise: bool = False
    dual: bool = False
    overload: bool = False


@dataclass(frozen=True, slots=True)
class WeaponDefinition:
    """
    One catalog entry.

    Attributes:
        name: Weapon name as printed on the card
        set_name: Expansion the card belongs to (e.g., "Core")
        deck_type: Which deck the card is shuffled into
        profile: Tagged combat profile (Melee, Ranged or Both)
        default_count: Number of copies in the default deck
        abilities: Printed ability flags
        special: Free-text special rules (None if the card has none)
        metadata_version: Catalog version that last wrote this definition
        is_deprecated: True once the definition disappeared from the catalog
    """

    name: str
    set_name: str
    deck_type: DeckType
    profile: WeaponProfile
    default_count: int = 1
    abilities: Abilities = field(default_factory=Abilities)
    special: str | None = None
    metadata_version: str = "0"
    is_deprecated: bool = False

    @property
    def id(self) -> str:
        return definition_id(self.deck_type, self.name, self.set_name)

    @property
    def category(self) -> WeaponCategory:
        return self.profile.category


@dataclass(frozen=True, slots=True)
class CardInstance:
    """
    One physical copy of a weapon definition.

    Many instances share one definition. Equality is by database id, so two
    virtual deck entries pointing at the same copy compare equal.
    """

    id: int
    copy_index: int
    definition: WeaponDefinition = field(compare=False)
    origin: InstanceOrigin = field(default=InstanceOrigin.CATALOG, compare=False)

    @property
    def serial(self) -> str:
        return f"{self.definition.id}:{self.copy_index}"

    @property
    def definition_id(self) -> str:
        return self.definition.id
