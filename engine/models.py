from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional


class GameType(str, Enum):
    CASUAL = "casual"
    RANKED = "ranked"


class GameStatus(str, Enum):
    WAITING = "waiting"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Round(str, Enum):
    PREFLOP = "preflop"
    FLOP = "flop"
    TURN = "turn"
    RIVER = "river"
    SHOWDOWN = "showdown"


ROUND_ORDER: List[Round] = [Round.PREFLOP, Round.FLOP, Round.TURN, Round.RIVER, Round.SHOWDOWN]


class ActionType(str, Enum):
    FOLD = "fold"
    CHECK = "check"
    BET = "bet"


@dataclass
class LobbyConfig:
    table_capacity: int = 6
    min_players: int = 2
    starting_chips: int = 500
    ranked_window: int = 200
    k_factor: int = 32
    default_score: int = 800
    placement_games: int = 10
    season_length_days: int = 30
    season_check_interval_s: int = 3_600
    leaderboard_limit: int = 100
    fold_on_disconnect: bool = False
    cards: str = "demo"
    hand_evaluator: str = "random"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class User:
    id: str
    auth_id: str
    username: str
    score: int
    tier: str
    email: Optional[str] = None
    level: int = 1
    total_wins: int = 0
    total_games: int = 0
    season_wins: int = 0
    placement_matches: int = 0
    peak_tier: str = ""
    created_at: datetime = field(default_factory=utcnow)

    def to_payload(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "authId": self.auth_id,
            "username": self.username,
            "email": self.email,
            "mmr": self.score,
            "currentRank": self.tier,
            "level": self.level,
            "totalWins": self.total_wins,
            "totalGames": self.total_games,
            "seasonWins": self.season_wins,
            "placementMatches": self.placement_matches,
            "highestRank": self.peak_tier,
            "createdAt": _iso(self.created_at),
        }


@dataclass
class QueueEntry:
    id: str
    user_id: str
    username: str
    queue_type: GameType
    score: int
    joined_at: datetime = field(default_factory=utcnow)

    def to_payload(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "username": self.username,
            "gameType": self.queue_type.value,
            "mmr": self.score,
            "joinedAt": _iso(self.joined_at),
        }


@dataclass
class Player:
    user_id: str
    username: str
    chips: int
    position: int
    cards: List[str] = field(default_factory=list)
    is_active: bool = True
    has_acted: bool = False
    current_bet: int = 0
    total_bet: int = 0
    is_folded: bool = False

    def reset_for_round(self) -> None:
        self.has_acted = False
        self.current_bet = 0

    def to_payload(self) -> Dict[str, object]:
        return {
            "userId": self.user_id,
            "username": self.username,
            "chips": self.chips,
            "cards": list(self.cards),
            "position": self.position,
            "isActive": self.is_active,
            "hasActed": self.has_acted,
            "currentBet": self.current_bet,
            "totalBet": self.total_bet,
            "isFolded": self.is_folded,
        }


@dataclass
class GameSession:
    id: str
    game_type: GameType
    status: GameStatus
    players: List[Player]
    pot: int = 0
    community_cards: List[str] = field(default_factory=list)
    current_turn: int = 0
    round: Round = Round.PREFLOP
    winners: Optional[List[str]] = None
    rating_deltas: Optional[Dict[str, int]] = None
    created_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    def copy(self) -> "GameSession":
        return copy.deepcopy(self)

    def seat_of(self, user_id: str) -> Optional[int]:
        for idx, player in enumerate(self.players):
            if player.user_id == user_id:
                return idx
        return None

    def live_players(self) -> List[Player]:
        return [player for player in self.players if not player.is_folded]

    def to_payload(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "id": self.id,
            "type": self.game_type.value,
            "status": self.status.value,
            "players": [player.to_payload() for player in self.players],
            "pot": self.pot,
            "communityCards": list(self.community_cards),
            "currentTurn": self.current_turn,
            "round": self.round.value,
            "createdAt": _iso(self.created_at),
        }
        if self.winners is not None:
            payload["winners"] = list(self.winners)
        if self.rating_deltas is not None:
            payload["eloChanges"] = dict(self.rating_deltas)
        if self.completed_at is not None:
            payload["completedAt"] = _iso(self.completed_at)
        return payload


@dataclass
class Season:
    id: str
    number: int
    start_date: datetime
    end_date: datetime
    is_active: bool

    def to_payload(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "number": self.number,
            "startDate": _iso(self.start_date),
            "endDate": _iso(self.end_date),
            "isActive": self.is_active,
        }
