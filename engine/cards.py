from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, List, Optional

from .models import Round

RANKS = "AKQJT98765432"
SUITS = "hdcs"

# Fixed pools used by the demo table: hole cards are sampled with replacement,
# community cards are always the same five in order.
DEMO_HOLE_POOL = ["As", "Kh", "Qd", "Jc", "Ts", "9h", "8d", "7c"]
DEMO_BOARD = ["As", "Kh", "Qd", "Jc", "Ts"]

BOARD_SLICES = {
    Round.FLOP: (0, 3),
    Round.TURN: (3, 4),
    Round.RIVER: (4, 5),
}


@dataclass(frozen=True)
class Card:
    rank: str
    suit: str

    def __post_init__(self) -> None:
        if self.rank not in RANKS:
            raise ValueError(f"Invalid rank: {self.rank}")
        if self.suit not in SUITS:
            raise ValueError(f"Invalid suit: {self.suit}")

    @property
    def label(self) -> str:
        return f"{self.rank}{self.suit}"


def build_deck(seed: Optional[int] = None) -> List[Card]:
    rng = random.Random(seed)
    deck = [Card(rank, suit) for rank in RANKS[::-1] for suit in SUITS]
    rng.shuffle(deck)
    return deck


def deal(deck: List[Card], count: int) -> List[Card]:
    if len(deck) < count:
        raise ValueError("Not enough cards left in deck")
    cards = deck[:count]
    del deck[:count]
    return cards


def cards_to_labels(cards: List[Card]) -> List[str]:
    return [card.label for card in cards]


def parse_label(label: str) -> Card:
    if len(label) != 2:
        raise ValueError(f"Invalid card label: {label}")
    return Card(label[0], label[1])


class CardSource:
    """Supplies hole and community cards for a game session."""

    def hole_cards(self, game_id: str, count: int = 2) -> List[str]:
        raise NotImplementedError

    def community_cards(self, game_id: str, round_: Round) -> List[str]:
        raise NotImplementedError

    def release(self, game_id: str) -> None:
        pass


class DemoCardSource(CardSource):
    """Placeholder dealing from a fixed pool; duplicate cards are possible."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self.rng = rng or random.Random()

    def hole_cards(self, game_id: str, count: int = 2) -> List[str]:
        return [self.rng.choice(DEMO_HOLE_POOL) for _ in range(count)]

    def community_cards(self, game_id: str, round_: Round) -> List[str]:
        bounds = BOARD_SLICES.get(round_)
        if bounds is None:
            return []
        start, end = bounds
        return DEMO_BOARD[start:end]


class ShuffledDeckSource(CardSource):
    """Deals from a real shuffled 52-card deck kept per session."""

    def __init__(self, seed: Optional[int] = None) -> None:
        self.rng = random.Random(seed)
        self.decks: Dict[str, List[Card]] = {}

    def _deck(self, game_id: str) -> List[Card]:
        deck = self.decks.get(game_id)
        if deck is None:
            deck = build_deck(self.rng.getrandbits(32))
            self.decks[game_id] = deck
        return deck

    def hole_cards(self, game_id: str, count: int = 2) -> List[str]:
        return cards_to_labels(deal(self._deck(game_id), count))

    def community_cards(self, game_id: str, round_: Round) -> List[str]:
        bounds = BOARD_SLICES.get(round_)
        if bounds is None:
            return []
        start, end = bounds
        return cards_to_labels(deal(self._deck(game_id), end - start))

    def release(self, game_id: str) -> None:
        self.decks.pop(game_id, None)


def build_card_source(kind: str, seed: Optional[int] = None) -> CardSource:
    if kind == "demo":
        return DemoCardSource(random.Random(seed))
    if kind == "deck":
        return ShuffledDeckSource(seed)
    raise ValueError(f"Unknown card source: {kind}")
