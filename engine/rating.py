from __future__ import annotations

import math
from typing import Callable, Dict, List, Sequence, Tuple

from .models import Player

# Ordered lowest to highest; each tier starts at its threshold.
TIER_THRESHOLDS: List[Tuple[str, int]] = [
    ("Bronze I", 0),
    ("Bronze II", 100),
    ("Bronze III", 200),
    ("Silver I", 300),
    ("Silver II", 400),
    ("Silver III", 500),
    ("Gold I", 600),
    ("Gold II", 700),
    ("Gold III", 800),
    ("Platinum I", 900),
    ("Platinum II", 1000),
    ("Platinum III", 1100),
    ("Diamond I", 1200),
    ("Diamond II", 1300),
    ("Diamond III", 1400),
    ("Champion I", 1500),
    ("Champion II", 1600),
    ("Champion III", 1700),
    ("Grand Champion", 1800),
]
TIERS = [name for name, _ in TIER_THRESHOLDS]

FALLBACK_SCORE = 1000
RESET_TARGET = 1000
RESET_COMPRESSION = 0.7

ScoreLookup = Callable[[str], int]


class RatingCalculator:
    """
    Multi-player Elo rating for finished poker sessions.

    Each player is compared against every opponent as a separate pairwise
    match; the summed change is averaged over the number of opponents.
    """

    def __init__(self, k_factor: int = 32):
        self.k_factor = k_factor

    def expected_score(self, score: int, opponent_score: int) -> float:
        """Probability that a player rated ``score`` beats ``opponent_score``."""
        return 1 / (1 + math.pow(10, (opponent_score - score) / 400))

    def finishing_order(self, players: Sequence[Player]) -> List[Player]:
        """
        Unfolded players first, then by chips descending.

        The sort is stable, so chip ties keep seat order.
        """
        return sorted(players, key=lambda p: (p.is_folded, -p.chips))

    def calculate_deltas(self, players: Sequence[Player], score_lookup: ScoreLookup) -> Dict[str, int]:
        """
        Compute signed rating changes for every player in a session.

        Args:
            players: Seats as they stand at the end of the game
            score_lookup: Returns a user's pre-game score by user id

        Returns:
            Mapping of user id to integer delta
        """
        if len(players) < 2:
            return {}
        ordered = self.finishing_order(players)
        scores = [score_lookup(player.user_id) for player in ordered]

        deltas: Dict[str, int] = {}
        for i, player in enumerate(ordered):
            total = 0.0
            for j in range(len(ordered)):
                if i == j:
                    continue
                expected = self.expected_score(scores[i], scores[j])
                actual = 1.0 if i < j else 0.0
                total += self.k_factor * (actual - expected)
            deltas[player.user_id] = round(total / (len(ordered) - 1))
        return deltas


def tier_for_score(score: int) -> str:
    for name, threshold in reversed(TIER_THRESHOLDS):
        if score >= threshold:
            return name
    return TIERS[0]


def score_for_tier(tier: str) -> int:
    return dict(TIER_THRESHOLDS).get(tier, 0)


def higher_tier(first: str, second: str) -> str:
    def position(tier: str) -> int:
        return TIERS.index(tier) if tier in TIERS else -1

    return first if position(first) >= position(second) else second


def soft_reset(score: int) -> int:
    """Pull a score toward the mid-table baseline between seasons."""
    return round(RESET_TARGET + (score - RESET_TARGET) * RESET_COMPRESSION)
