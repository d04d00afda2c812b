from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .models import GameSession, GameType, LobbyConfig, Player, QueueEntry
from .store import MemoryStore

LOGGER = logging.getLogger("poker_lobby.matchmaking")


def select_group(
    entries: Sequence[QueueEntry],
    queue_type: GameType,
    capacity: int = 6,
    window: int = 200,
    min_players: int = 2,
) -> List[QueueEntry]:
    """Pick the queue entries that should be seated together, or nothing."""
    if len(entries) < min_players:
        return []

    if queue_type == GameType.CASUAL:
        return list(entries[:capacity])

    # Greedy single pass: anchor on the lowest score, admit anyone within the
    # window of the anchor, stop at the first group that can play.
    ordered = sorted(entries, key=lambda entry: entry.score)
    for idx, anchor in enumerate(ordered[:-1]):
        group = [anchor]
        for candidate in ordered[idx + 1 :]:
            if abs(candidate.score - anchor.score) <= window:
                group.append(candidate)
                if len(group) >= capacity:
                    break
        if len(group) >= min_players:
            return group
    return []


class Matchmaker:
    def __init__(self, store: MemoryStore, config: Optional[LobbyConfig] = None) -> None:
        self.store = store
        self.config = config or LobbyConfig()

    def try_match(self, queue_type: GameType) -> Optional[GameSession]:
        entries = self.store.queue_entries(queue_type)
        group = select_group(
            entries,
            queue_type,
            capacity=self.config.table_capacity,
            window=self.config.ranked_window,
            min_players=self.config.min_players,
        )
        if not group:
            return None

        for entry in group:
            self.store.remove_from_queue(entry.user_id)

        players = [
            Player(
                user_id=entry.user_id,
                username=entry.username,
                chips=self.config.starting_chips,
                position=position,
            )
            for position, entry in enumerate(group)
        ]
        session = self.store.create_game(queue_type, players)
        LOGGER.info(
            "Matched %d players into %s game %s: %s",
            len(players),
            queue_type.value,
            session.id,
            [entry.username for entry in group],
        )
        return session
