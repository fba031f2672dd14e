"""
Runtime draw and discard state for one weapon deck.

A deck is composed from the live definitions of one deck type: each enabled
definition contributes its effective copy count, multiplied by the difficulty
weighting rules, as virtual entries. Virtual entry k of a definition refers to
that definition's (k mod n)-th physical instance.

States:
    EMPTY  - nothing loaded; every pile operation raises DeckNotLoadedError
    LOADED - draw pile and discard pile are live

Draw order guarantee: after every shuffle no two adjacent entries share a
definition unless the pool cannot avoid it.
"""

import logging
import random
from collections import deque
from collections.abc import Collection, Sequence
from dataclasses import dataclass
from enum import Enum

from armory.config import settings
from armory.db.catalog import CardCatalog
from armory.models.difficulty import DifficultyMode, virtual_copy_count
from armory.models.failure import DeckNotLoadedError
from armory.models.weapon import CardInstance, DeckType, InstanceOrigin, WeaponDefinition
from armory.services.customization_store import CustomizationSnapshot

logger = logging.getLogger(__name__)


class DeckState(str, Enum):
    EMPTY = "empty"
    LOADED = "loaded"


class DeckEvent(str, Enum):
    """Last notable thing that happened to the piles."""

    SHUFFLED = "shuffled"
    DRAWN = "drawn"
    RESHUFFLED_DISCARD = "reshuffled_discard"
    DEGRADED_RESHUFFLE = "degraded_reshuffle"
    EXHAUSTED = "exhausted"
    RESET = "reset"


@dataclass(frozen=True, slots=True)
class PoolEntry:
    """One definition's contribution to a deck before weighting."""

    definition: WeaponDefinition
    base_count: int
    instances: tuple[CardInstance, ...]

    def expand(self, mode: DifficultyMode) -> list[CardInstance]:
        copies = virtual_copy_count(self.definition, self.base_count, mode)
        return [self.instances[k % len(self.instances)] for k in range(copies)]


def spread_duplicates(cards: list[CardInstance], rng: random.Random | None = None) -> None:
    """
    Rearrange `cards` in place so equal definitions are not adjacent.

    Forward pass: whenever an entry repeats its predecessor's definition,
    swap it with the nearest later entry of a different definition. What
    remains clustered afterwards is a trailing run of one definition; its
    surplus copies are moved into earlier gaps whose neighbours both differ.
    Anything still adjacent after that cannot be separated.
    """
    size = len(cards)
    for i in range(1, size):
        previous = cards[i - 1].definition_id
        if cards[i].definition_id != previous:
            continue
        for j in range(i + 1, size):
            if cards[j].definition_id != previous:
                cards[i], cards[j] = cards[j], cards[i]
                break

    while True:
        clash = next(
            (
                i
                for i in range(1, len(cards))
                if cards[i].definition_id == cards[i - 1].definition_id
            ),
            None,
        )
        if clash is None:
            return
        key = cards[clash].definition_id
        gaps = [
            position
            for position in range(clash)
            if cards[position].definition_id != key
            and (position == 0 or cards[position - 1].definition_id != key)
        ]
        if not gaps:
            return
        position = rng.choice(gaps) if rng else gaps[0]
        cards.insert(position, cards.pop(clash))


def has_adjacent_duplicates(cards: Sequence[CardInstance]) -> bool:
    return any(
        cards[i].definition_id == cards[i - 1].definition_id for i in range(1, len(cards))
    )


class DeckRuntime:
    """
    Shuffle, draw and discard for one deck type.

    Not safe for concurrent use; one caller drives a deck at a time.
    """

    def __init__(
        self,
        deck_type: DeckType,
        catalog: CardCatalog,
        rng: random.Random | None = None,
        recent_limit: int | None = None,
    ) -> None:
        self.deck_type = deck_type
        self._catalog = catalog
        self._rng = rng or random.Random()
        self._recent: deque[CardInstance] = deque(
            maxlen=recent_limit if recent_limit is not None else settings.recent_draw_limit
        )
        self._pool: list[PoolEntry] = []
        self._degraded_available = True

        self.mode = DifficultyMode(settings.default_difficulty)
        self.state = DeckState.EMPTY
        self.draw_pile: list[CardInstance] = []
        self.discard_pile: list[CardInstance] = []
        self.last_event: DeckEvent | None = None

    # --- Composition ---

    async def load(
        self,
        mode: DifficultyMode | None = None,
        snapshot: CustomizationSnapshot | None = None,
        sets: Collection[str] | None = None,
    ) -> None:
        """
        Build the deck from the catalog and a customization snapshot.

        Deprecated and disabled definitions are left out, as are definitions
        outside `sets` when a set selection is given. A definition without
        any live instance is skipped with a warning.
        """
        snapshot = snapshot or CustomizationSnapshot()
        selected = {name.casefold() for name in sets} if sets is not None else None
        pool: list[PoolEntry] = []

        for definition in await self._catalog.list_by_deck_type(self.deck_type):
            if selected is not None and definition.set_name.casefold() not in selected:
                continue
            effective = snapshot.resolve(definition)
            if not effective.enabled or effective.count <= 0:
                continue
            instances = await self._catalog.list_instances(
                definition.id, origin=InstanceOrigin.CATALOG
            )
            if not instances:
                instances = await self._catalog.list_instances(definition.id)
            if not instances:
                logger.warning("Skipping %s: no card instances in catalog", definition.id)
                continue
            pool.append(PoolEntry(definition, effective.count, tuple(instances)))

        self._pool = pool
        if mode is not None:
            self.mode = mode
        self._compose()
        logger.info(
            "Loaded %s deck (%s): %d cards from %d weapons",
            self.deck_type.value,
            self.mode.value,
            len(self.draw_pile),
            len(self._pool),
        )

    def _expand(self, mode: DifficultyMode) -> list[CardInstance]:
        cards: list[CardInstance] = []
        for entry in self._pool:
            cards.extend(entry.expand(mode))
        return cards

    def _compose(self) -> None:
        self.draw_pile = self._expand(self.mode)
        self.discard_pile = []
        self._recent.clear()
        self._degraded_available = True
        self.state = DeckState.LOADED
        self._shuffle_draw_pile()
        self.last_event = DeckEvent.SHUFFLED

    def change_mode(self, mode: DifficultyMode) -> None:
        """Recompose the loaded pool under another difficulty."""
        self._require_loaded()
        self.mode = mode
        self._compose()

    def _require_loaded(self) -> None:
        if self.state is not DeckState.LOADED:
            raise DeckNotLoadedError(self.deck_type.value)

    def _shuffle_draw_pile(self) -> None:
        self._rng.shuffle(self.draw_pile)
        spread_duplicates(self.draw_pile, self._rng)

    # --- Pile operations ---

    def shuffle(self) -> None:
        self._require_loaded()
        self._shuffle_draw_pile()
        self.last_event = DeckEvent.SHUFFLED

    def draw(self) -> CardInstance | None:
        """
        Take the top card.

        An empty draw pile is refilled from the discard pile and reshuffled.
        If both piles are empty the deck is rebuilt once per load under
        Medium weighting. Returns None once that is spent too.
        """
        self._require_loaded()
        event = DeckEvent.DRAWN

        if not self.draw_pile and self.discard_pile:
            self.draw_pile, self.discard_pile = self.discard_pile, []
            self._shuffle_draw_pile()
            event = DeckEvent.RESHUFFLED_DISCARD
            logger.info("%s deck: reshuffled discard pile into draw pile", self.deck_type.value)

        if not self.draw_pile and self._degraded_available:
            self._degraded_available = False
            self.draw_pile = self._expand(DifficultyMode.MEDIUM)
            self._shuffle_draw_pile()
            event = DeckEvent.DEGRADED_RESHUFFLE
            logger.warning(
                "%s deck: both piles empty, rebuilt under medium weighting", self.deck_type.value
            )

        if not self.draw_pile:
            self.last_event = DeckEvent.EXHAUSTED
            return None

        card = self.draw_pile.pop(0)
        self._recent.appendleft(card)
        self.last_event = event
        return card

    def draw_two(self) -> list[CardInstance]:
        drawn = []
        for _ in range(2):
            card = self.draw()
            if card is not None:
                drawn.append(card)
        return drawn

    def discard(self, card: CardInstance) -> None:
        self._require_loaded()
        self.discard_pile.insert(0, card)

    def remove_from_discard(self, card: CardInstance) -> bool:
        self._require_loaded()
        if card in self.discard_pile:
            self.discard_pile.remove(card)
            return True
        return False

    def return_to_top(self, card: CardInstance) -> None:
        self._require_loaded()
        self.remove_from_discard(card)
        self.draw_pile.insert(0, card)

    def return_to_bottom(self, card: CardInstance) -> None:
        self._require_loaded()
        self.remove_from_discard(card)
        self.draw_pile.append(card)

    def reset(self) -> None:
        """Merge both piles back into the draw pile and reshuffle."""
        self._require_loaded()
        self.draw_pile = self.draw_pile + self.discard_pile
        self.discard_pile = []
        self._recent.clear()
        self._degraded_available = True
        self._shuffle_draw_pile()
        self.last_event = DeckEvent.RESET

    # --- Observability ---

    @property
    def recent_draws(self) -> list[CardInstance]:
        """Most recent draws, newest first."""
        return list(self._recent)

    @property
    def remaining_count(self) -> int:
        return len(self.draw_pile)

    @property
    def discard_count(self) -> int:
        return len(self.discard_pile)

    @property
    def pool(self) -> list[PoolEntry]:
        return list(self._pool)
