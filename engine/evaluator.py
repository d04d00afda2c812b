from __future__ import annotations

import itertools
import logging
import random
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .cards import Card, parse_label
from .models import GameSession, Player

RANK_ORDER = "23456789TJQKA"
RANK_VALUE = {rank: idx for idx, rank in enumerate(RANK_ORDER, start=2)}

HandScore = Tuple[int, List[int]]

LOGGER = logging.getLogger("poker_lobby.engine")


def describe_rank(score: HandScore) -> str:
    category, _ = score
    names = {
        8: "straight_flush",
        7: "four_of_a_kind",
        6: "full_house",
        5: "flush",
        4: "straight",
        3: "three_of_a_kind",
        2: "two_pair",
        1: "pair",
    }
    return names.get(category, "high_card")


def evaluate_best(cards: Sequence[Card]) -> HandScore:
    """Return a strength tuple for 5 to 7 cards. Higher is better."""
    best: Optional[HandScore] = None
    for combo in itertools.combinations(cards, 5):
        rank = _evaluate_five(combo)
        if best is None or rank > best:
            best = rank
    if best is None:
        raise ValueError("At least five cards are required")
    return best


def _evaluate_five(cards: Sequence[Card]) -> HandScore:
    ranks = sorted((RANK_VALUE[card.rank] for card in cards), reverse=True)
    is_flush = len({card.suit for card in cards}) == 1
    straight_high = _straight_high(cards)

    counts: Dict[str, int] = {}
    for card in cards:
        counts[card.rank] = counts.get(card.rank, 0) + 1

    ordered_counts = sorted(counts.items(), key=lambda x: (x[1], RANK_VALUE[x[0]]), reverse=True)
    count_values = sorted(counts.values(), reverse=True) + [0]

    if straight_high and is_flush:
        return (8, [straight_high])
    if count_values[0] >= 4:
        four_rank = RANK_VALUE[ordered_counts[0][0]]
        kickers = [RANK_VALUE[r] for r, _ in ordered_counts[1:]]
        return (7, [four_rank] + kickers[:1])
    if count_values[0] == 3 and count_values[1] == 2:
        trips = RANK_VALUE[ordered_counts[0][0]]
        pair = RANK_VALUE[ordered_counts[1][0]]
        return (6, [trips, pair])
    if is_flush:
        return (5, ranks)
    if straight_high:
        return (4, [straight_high])
    if count_values[0] == 3:
        trips_rank = RANK_VALUE[ordered_counts[0][0]]
        kickers = [RANK_VALUE[r] for r, _ in ordered_counts[1:]]
        return (3, [trips_rank] + kickers)
    if count_values[0] == 2 and count_values[1] == 2:
        pair_high = RANK_VALUE[ordered_counts[0][0]]
        pair_low = RANK_VALUE[ordered_counts[1][0]]
        kicker = max(RANK_VALUE[r] for r, c in ordered_counts if c == 1)
        return (2, [pair_high, pair_low, kicker])
    if count_values[0] == 2:
        pair_rank = RANK_VALUE[ordered_counts[0][0]]
        kickers = [RANK_VALUE[r] for r, _ in ordered_counts[1:]]
        return (1, [pair_rank] + kickers)
    return (0, ranks)


def _straight_high(cards: Iterable[Card]) -> Optional[int]:
    ranks = {RANK_VALUE[card.rank] for card in cards}
    if 14 in ranks:  # Ace low
        ranks.add(1)
    ordered = sorted(ranks)
    best = None
    for idx in range(len(ordered) - 4):
        window = ordered[idx : idx + 5]
        if window == list(range(window[0], window[0] + 5)):
            best = window[-1]
    return best


def parse_cards(labels: Sequence[str]) -> List[Card]:
    return [parse_label(label) for label in labels]


class HandEvaluator:
    """Chooses showdown winners among the seats still in the hand."""

    def pick_winners(self, session: GameSession, contenders: List[Player]) -> List[Player]:
        raise NotImplementedError


class RandomHandEvaluator(HandEvaluator):
    """Placeholder: one contender wins uniformly at random."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self.rng = rng or random.Random()

    def pick_winners(self, session: GameSession, contenders: List[Player]) -> List[Player]:
        if not contenders:
            return []
        return [self.rng.choice(contenders)]


class RankedHandEvaluator(HandEvaluator):
    """Best five of hole plus community cards; ties share the win."""

    def pick_winners(self, session: GameSession, contenders: List[Player]) -> List[Player]:
        board = parse_cards(session.community_cards)
        scores = [(evaluate_best(parse_cards(player.cards) + board), player) for player in contenders]
        if not scores:
            return []
        best = max(score for score, _ in scores)
        winners = [player for score, player in scores if score == best]
        LOGGER.debug(
            "Game %s showdown: %s wins with %s",
            session.id,
            [player.user_id for player in winners],
            describe_rank(best),
        )
        return winners


def build_evaluator(kind: str, seed: Optional[int] = None) -> HandEvaluator:
    if kind == "random":
        return RandomHandEvaluator(random.Random(seed))
    if kind == "ranked":
        return RankedHandEvaluator()
    raise ValueError(f"Unknown hand evaluator: {kind}")
