"""
Tests for difficulty weighting.

Easy adds one virtual copy per base copy for dice >= 4 and another for
damage >= 3. Hard adds one each for dice <= 2, damage <= 1 and accuracy >= 5.
Medium adds nothing. Matches stack.
"""

import pytest

from armory.models.difficulty import (
    DIFFICULTY_RULES,
    DifficultyMode,
    WeightingRule,
    matched_rules,
    virtual_copy_count,
)
from armory.models.weapon import (
    Both,
    DeckType,
    Melee,
    MeleeStats,
    Ranged,
    RangedStats,
    WeaponDefinition,
)


def melee_weapon(dice: int, accuracy: int, damage: int) -> WeaponDefinition:
    return WeaponDefinition(
        name="Test",
        set_name="Core",
        deck_type=DeckType.REGULAR,
        profile=Melee(MeleeStats(dice=dice, accuracy=accuracy, damage=damage)),
    )


class TestVirtualCopyCount:
    def test_medium_is_base_count(self) -> None:
        weapon = melee_weapon(dice=5, accuracy=5, damage=3)

        assert virtual_copy_count(weapon, 2, DifficultyMode.MEDIUM) == 2

    def test_easy_rules_stack(self) -> None:
        """dice >= 4 and damage >= 3 both apply: base * 3."""
        weapon = melee_weapon(dice=5, accuracy=3, damage=3)

        assert virtual_copy_count(weapon, 1, DifficultyMode.EASY) == 3
        assert virtual_copy_count(weapon, 2, DifficultyMode.EASY) == 6

    def test_easy_single_rule(self) -> None:
        weapon = melee_weapon(dice=4, accuracy=3, damage=1)

        assert virtual_copy_count(weapon, 2, DifficultyMode.EASY) == 4

    def test_hard_rules_stack(self) -> None:
        """dice <= 2, damage <= 1 and accuracy >= 5 all apply: base * 4."""
        weapon = melee_weapon(dice=1, accuracy=5, damage=1)

        assert virtual_copy_count(weapon, 1, DifficultyMode.HARD) == 4

    def test_hard_no_match(self) -> None:
        weapon = melee_weapon(dice=3, accuracy=3, damage=2)

        assert virtual_copy_count(weapon, 2, DifficultyMode.HARD) == 2

    def test_zero_base_count_stays_zero(self) -> None:
        weapon = melee_weapon(dice=1, accuracy=5, damage=1)

        assert virtual_copy_count(weapon, 0, DifficultyMode.HARD) == 0

    def test_ranged_weapon_uses_ranged_stats(self) -> None:
        weapon = WeaponDefinition(
            name="Sub-MG",
            set_name="Core",
            deck_type=DeckType.REGULAR,
            profile=Ranged(RangedStats(dice=4, accuracy=5, damage=1)),
        )

        assert virtual_copy_count(weapon, 1, DifficultyMode.EASY) == 2

    def test_dual_weapon_uses_melee_stats(self) -> None:
        weapon = WeaponDefinition(
            name="Gunblade",
            set_name="Core",
            deck_type=DeckType.ULTRARED,
            profile=Both(
                MeleeStats(dice=1, accuracy=3, damage=2),
                RangedStats(dice=5, accuracy=3, damage=3),
            ),
        )

        assert virtual_copy_count(weapon, 1, DifficultyMode.EASY) == 1
        assert virtual_copy_count(weapon, 1, DifficultyMode.HARD) == 2


class TestRuleTable:
    def test_every_mode_has_rules_entry(self) -> None:
        assert set(DIFFICULTY_RULES) == set(DifficultyMode)

    def test_matched_rules_in_table_order(self) -> None:
        weapon = melee_weapon(dice=1, accuracy=6, damage=1)

        descriptions = [rule.description for rule in matched_rules(weapon, DifficultyMode.HARD)]

        assert descriptions == ["dice <= 2", "damage <= 1", "accuracy >= 5"]

    def test_custom_table_adds_mode_without_code(self) -> None:
        """A new weighting is new data only."""
        table = {
            DifficultyMode.MEDIUM: (
                WeightingRule("auto-hit", lambda stats: stats.accuracy == 0, extra_copies=2),
            ),
        }
        weapon = melee_weapon(dice=1, accuracy=0, damage=1)

        assert virtual_copy_count(weapon, 1, DifficultyMode.MEDIUM, rules=table) == 3
        assert virtual_copy_count(weapon, 1, DifficultyMode.HARD, rules=table) == 1

    @pytest.mark.parametrize("mode", list(DifficultyMode))
    def test_mode_values_round_trip(self, mode: DifficultyMode) -> None:
        assert DifficultyMode(mode.value) is mode
