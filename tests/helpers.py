from __future__ import annotations

import json
import random
from typing import Dict, List, Optional, Sequence, Tuple

import websockets

from engine.cards import DemoCardSource
from engine.evaluator import HandEvaluator
from engine.game import GameTable
from engine.models import GameSession, GameType, LobbyConfig, Player, QueueEntry
from engine.store import MemoryStore


# Fake sockets so async paths run without opening real connections.
class DummyWebSocket:
    def __init__(self) -> None:
        self.sent: List[str] = []
        self.closed = False
        self.remote_address = ("127.0.0.1", 0)

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def close(self, *args, **kwargs) -> None:
        self.closed = True

    def messages(self) -> List[Dict[str, object]]:
        return [json.loads(raw) for raw in self.sent]

    def types(self) -> List[str]:
        return [message["type"] for message in self.messages()]

    def last(self, msg_type: Optional[str] = None) -> Dict[str, object]:
        for message in reversed(self.messages()):
            if msg_type is None or message["type"] == msg_type:
                return message
        raise AssertionError(f"No {msg_type or 'message'} sent; got {self.types()}")


class ClosedWebSocket(DummyWebSocket):
    async def send(self, message: str) -> None:
        raise websockets.ConnectionClosed(None, None)


class FixedEvaluator(HandEvaluator):
    """Always picks the contender at ``index``; records each call."""

    def __init__(self, index: int = 0) -> None:
        self.index = index
        self.calls = 0

    def pick_winners(self, session: GameSession, contenders: List[Player]) -> List[Player]:
        self.calls += 1
        return [contenders[min(self.index, len(contenders) - 1)]]


class ForbiddenEvaluator(HandEvaluator):
    def pick_winners(self, session: GameSession, contenders: List[Player]) -> List[Player]:
        raise AssertionError("showdown evaluation should not run")


def auth_id(idx: int) -> str:
    return f"auth-{idx}"


def add_users(store: MemoryStore, scores: Sequence[int]) -> List[str]:
    ids = []
    for idx, score in enumerate(scores):
        user = store.create_user(auth_id(idx), f"Player{idx}", score)
        ids.append(user.auth_id)
    return ids


def create_table(
    *,
    players: int = 2,
    game_type: GameType = GameType.CASUAL,
    scores: Optional[Sequence[int]] = None,
    evaluator: Optional[HandEvaluator] = None,
    config: Optional[LobbyConfig] = None,
    with_users: bool = True,
) -> Tuple[MemoryStore, GameTable, GameSession]:
    """Build a store with seated users and a freshly dealt session."""
    config = config or LobbyConfig()
    store = MemoryStore()
    if with_users:
        add_users(store, scores or [config.default_score] * players)
    seats = [
        Player(user_id=auth_id(idx), username=f"Player{idx}", chips=config.starting_chips, position=idx)
        for idx in range(players)
    ]
    table = GameTable(
        store,
        config,
        card_source=DemoCardSource(random.Random(7)),
        evaluator=evaluator or FixedEvaluator(0),
    )
    session = store.create_game(game_type, seats)
    session = table.deal(session.id)
    return store, table, session


def queue_entry(user_id: str, score: int = 800, queue_type: GameType = GameType.RANKED) -> QueueEntry:
    return QueueEntry(id=f"q-{user_id}", user_id=user_id, username=user_id, queue_type=queue_type, score=score)


def play(table: GameTable, game_id: str, actions: Sequence[Tuple[int, str, Optional[int]]]):
    """Apply a scripted sequence of (seat, action, amount); returns the last outcome."""
    outcome = None
    for seat_idx, action, amount in actions:
        outcome = table.apply_action(game_id, auth_id(seat_idx), action, amount)
    return outcome


def check_around(table: GameTable, game_id: str):
    """Every live seat checks once, in turn order, until the round changes or the game ends."""
    session = table.store.get_game(game_id)
    assert session is not None
    start_round = session.round
    outcome = None
    while True:
        session = table.store.get_game(game_id)
        assert session is not None
        actor = session.players[session.current_turn].user_id
        outcome = table.apply_action(game_id, actor, "check")
        if outcome.ended or outcome.session.round != start_round:
            return outcome
