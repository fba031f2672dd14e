"""
Difficulty weighting for deck composition.

Each difficulty mode is an ordered list of weighting rules. Every rule whose
predicate matches a weapon's weighting stats adds `extra_copies` virtual copies
per base copy; matches are cumulative. A new mode is a new table entry, not a
new code path.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from armory.models.weapon import CombatStats, WeaponDefinition


class DifficultyMode(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


@dataclass(frozen=True, slots=True)
class WeightingRule:
    """A (predicate, multiplier) pair applied to a weapon's weighting stats."""

    description: str
    predicate: Callable[[CombatStats], bool]
    extra_copies: int = 1

    def matches(self, stats: CombatStats) -> bool:
        return self.predicate(stats)


# Easy favours powerful weapons, Hard favours weak ones
DIFFICULTY_RULES: dict[DifficultyMode, tuple[WeightingRule, ...]] = {
    DifficultyMode.EASY: (
        WeightingRule("dice >= 4", lambda stats: stats.dice >= 4),
        WeightingRule("damage >= 3", lambda stats: stats.damage >= 3),
    ),
    DifficultyMode.MEDIUM: (),
    DifficultyMode.HARD: (
        WeightingRule("dice <= 2", lambda stats: stats.dice <= 2),
        WeightingRule("damage <= 1", lambda stats: stats.damage <= 1),
        WeightingRule("accuracy >= 5", lambda stats: stats.accuracy >= 5),
    ),
}


def matched_rules(
    definition: WeaponDefinition,
    mode: DifficultyMode,
    rules: dict[DifficultyMode, tuple[WeightingRule, ...]] | None = None,
) -> list[WeightingRule]:
    """Return the rules of `mode` that apply to a definition, in table order."""
    table = DIFFICULTY_RULES if rules is None else rules
    stats = definition.profile.weighting_stats
    return [rule for rule in table.get(mode, ()) if rule.matches(stats)]


def virtual_copy_count(
    definition: WeaponDefinition,
    base_count: int,
    mode: DifficultyMode,
    rules: dict[DifficultyMode, tuple[WeightingRule, ...]] | None = None,
) -> int:
    """
    Number of virtual deck entries for a definition under a difficulty mode.

    Args:
        definition: The weapon being expanded
        base_count: Effective copy count (customization override or default)
        mode: Difficulty mode whose rules apply
        rules: Optional replacement rule table (defaults to DIFFICULTY_RULES)

    Returns:
        base_count * (1 + sum of extra copies of every matching rule).
        Zero when base_count is zero or negative.
    """
    if base_count <= 0:
        return 0
    bonus = sum(rule.extra_copies for rule in matched_rules(definition, mode, rules))
    return base_count * (1 + bonus)
