"""Game, matchmaking and rating engine shared by the lobby server."""

from .accounts import AccountError, AccountService
from .cards import CardSource, DemoCardSource, ShuffledDeckSource, build_card_source
from .evaluator import HandEvaluator, RandomHandEvaluator, RankedHandEvaluator, build_evaluator
from .game import ActionOutcome, ActionRejected, GameTable
from .matchmaking import Matchmaker, select_group
from .models import (
    ActionType,
    GameSession,
    GameStatus,
    GameType,
    LobbyConfig,
    Player,
    QueueEntry,
    Round,
    Season,
    User,
)
from .rating import RatingCalculator, soft_reset, tier_for_score
from .seasons import SeasonService
from .store import MemoryStore

__all__ = [
    "AccountError",
    "AccountService",
    "CardSource",
    "DemoCardSource",
    "ShuffledDeckSource",
    "build_card_source",
    "HandEvaluator",
    "RandomHandEvaluator",
    "RankedHandEvaluator",
    "build_evaluator",
    "ActionOutcome",
    "ActionRejected",
    "GameTable",
    "Matchmaker",
    "select_group",
    "ActionType",
    "GameSession",
    "GameStatus",
    "GameType",
    "LobbyConfig",
    "Player",
    "QueueEntry",
    "Round",
    "Season",
    "User",
    "RatingCalculator",
    "soft_reset",
    "tier_for_score",
    "SeasonService",
    "MemoryStore",
]
