from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .models import GameSession, GameStatus, GameType, Player, QueueEntry, Season, User
from .rating import tier_for_score

LOGGER = logging.getLogger("poker_lobby.store")

# MemoryStore keeps every record for the lifetime of the process. Methods are
# plain synchronous map operations so a caller never interleaves mid-update.


def _new_id() -> str:
    return str(uuid.uuid4())


class MemoryStore:
    def __init__(self) -> None:
        self.users: Dict[str, User] = {}
        self.games: Dict[str, GameSession] = {}
        self.queue: Dict[str, QueueEntry] = {}
        self.seasons: Dict[str, Season] = {}

    # Users -----------------------------------------------------------

    def create_user(self, auth_id: str, username: str, score: int, email: Optional[str] = None) -> User:
        tier = tier_for_score(score)
        user = User(
            id=_new_id(),
            auth_id=auth_id,
            username=username,
            email=email,
            score=score,
            tier=tier,
            peak_tier=tier,
        )
        self.users[user.id] = user
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)

    def get_user_by_auth_id(self, auth_id: str) -> Optional[User]:
        for user in self.users.values():
            if user.auth_id == auth_id:
                return user
        return None

    def get_user_by_username(self, username: str) -> Optional[User]:
        for user in self.users.values():
            if user.username == username:
                return user
        return None

    def update_user(self, user_id: str, **changes: object) -> Optional[User]:
        user = self.users.get(user_id)
        if user is None:
            return None
        updated = replace(user, **changes)
        self.users[user_id] = updated
        return updated

    def all_users(self) -> List[User]:
        return list(self.users.values())

    def leaderboard(self, limit: int = 100) -> List[User]:
        ranked = sorted(self.users.values(), key=lambda user: user.score, reverse=True)
        return ranked[: max(limit, 0)]

    # Games -----------------------------------------------------------

    def create_game(self, game_type: GameType, players: List[Player]) -> GameSession:
        session = GameSession(
            id=_new_id(),
            game_type=game_type,
            status=GameStatus.IN_PROGRESS,
            players=players,
        )
        self.games[session.id] = session
        return session

    def get_game(self, game_id: str) -> Optional[GameSession]:
        return self.games.get(game_id)

    def save_game(self, session: GameSession) -> GameSession:
        if session.id not in self.games:
            raise RuntimeError(f"Unknown game {session.id}")
        self.games[session.id] = session
        return session

    def active_games(self) -> List[GameSession]:
        return [game for game in self.games.values() if game.status == GameStatus.IN_PROGRESS]

    def commit_settlement(self, session: GameSession, users: Iterable[User]) -> GameSession:
        """Write a finished session and its updated users in one step."""
        pending = list(users)
        if session.id not in self.games:
            raise RuntimeError(f"Unknown game {session.id}")
        missing = [user.id for user in pending if user.id not in self.users]
        if missing:
            raise RuntimeError(f"Unknown users in settlement: {missing}")
        for user in pending:
            self.users[user.id] = user
        self.games[session.id] = session
        LOGGER.debug("Committed settlement for game %s (%d users)", session.id, len(pending))
        return session

    # Queue -----------------------------------------------------------

    def add_to_queue(self, user_id: str, username: str, queue_type: GameType, score: int) -> QueueEntry:
        entry = QueueEntry(
            id=_new_id(),
            user_id=user_id,
            username=username,
            queue_type=queue_type,
            score=score,
        )
        # Re-joining moves the user to the back of the line.
        self.queue.pop(user_id, None)
        self.queue[user_id] = entry
        return entry

    def remove_from_queue(self, user_id: str) -> bool:
        return self.queue.pop(user_id, None) is not None

    def queue_entries(self, queue_type: GameType) -> List[QueueEntry]:
        return [entry for entry in self.queue.values() if entry.queue_type == queue_type]

    def queued_entry(self, user_id: str) -> Optional[QueueEntry]:
        return self.queue.get(user_id)

    # Seasons ---------------------------------------------------------

    def current_season(self) -> Optional[Season]:
        for season in self.seasons.values():
            if season.is_active:
                return season
        return None

    def create_season(self, number: int, start_date: datetime, end_date: datetime, is_active: bool = True) -> Season:
        season = Season(
            id=_new_id(),
            number=number,
            start_date=start_date,
            end_date=end_date,
            is_active=is_active,
        )
        self.seasons[season.id] = season
        return season

    def update_season(self, season_id: str, **changes: object) -> Optional[Season]:
        season = self.seasons.get(season_id)
        if season is None:
            return None
        updated = replace(season, **changes)
        self.seasons[season_id] = updated
        return updated

    def all_seasons(self) -> List[Season]:
        return sorted(self.seasons.values(), key=lambda season: season.number)
