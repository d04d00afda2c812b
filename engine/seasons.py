from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from .models import LobbyConfig, Season, utcnow
from .rating import soft_reset, tier_for_score
from .store import MemoryStore

LOGGER = logging.getLogger("poker_lobby.seasons")


class SeasonService:
    def __init__(self, store: MemoryStore, config: Optional[LobbyConfig] = None) -> None:
        self.store = store
        self.config = config or LobbyConfig()

    @property
    def season_length(self) -> timedelta:
        return timedelta(days=self.config.season_length_days)

    def ensure_current(self, now: Optional[datetime] = None) -> Season:
        current = self.store.current_season()
        if current is not None:
            return current
        now = now or utcnow()
        season = self.store.create_season(0, now, now + self.season_length)
        LOGGER.info("Opened pre-season (ends %s)", season.end_date.isoformat())
        return season

    def check_season_end(self, now: Optional[datetime] = None) -> Optional[Season]:
        """Roll over to the next season once the active one has ended."""
        now = now or utcnow()
        current = self.store.current_season()
        if current is None or now < current.end_date:
            return None
        self._end_season(current)
        return self._start_season(current.number + 1, now)

    def time_left(self, now: Optional[datetime] = None) -> Optional[Dict[str, int]]:
        current = self.store.current_season()
        if current is None:
            return None
        remaining = current.end_date - (now or utcnow())
        if remaining.total_seconds() <= 0:
            return None
        hours, rest = divmod(remaining.seconds, 3600)
        return {"days": remaining.days, "hours": hours, "minutes": rest // 60}

    def _end_season(self, season: Season) -> None:
        self.store.update_season(season.id, is_active=False)
        users = self.store.all_users()
        for user in users:
            score = soft_reset(user.score)
            self.store.update_user(
                user.id,
                score=score,
                tier=tier_for_score(score),
                season_wins=0,
                placement_matches=0,
            )
        LOGGER.info("Season %s ended; soft reset applied to %d users", season.number, len(users))

    def _start_season(self, number: int, now: datetime) -> Season:
        season = self.store.create_season(number, now, now + self.season_length)
        LOGGER.info("Season %s started (ends %s)", number, season.end_date.isoformat())
        return season
