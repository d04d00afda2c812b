from __future__ import annotations

import asyncio
import json
import logging
from http import HTTPStatus
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urlsplit

import websockets
from websockets.asyncio.server import ServerConnection, serve
from websockets.datastructures import Headers
from websockets.http11 import Request, Response

from engine.accounts import AccountError, AccountService
from engine.cards import CardSource
from engine.evaluator import HandEvaluator
from engine.game import ActionOutcome, ActionRejected, GameTable
from engine.matchmaking import Matchmaker
from engine.models import GameSession, GameType, LobbyConfig
from engine.seasons import SeasonService
from engine.store import MemoryStore

from .protocol import (
    GAME_ACTION,
    GAME_ENDED,
    GAME_FOUND,
    GAME_UPDATED,
    JOIN_QUEUE,
    LEAVE_GAME,
    LEAVE_QUEUE,
    QUEUE_JOINED,
    QUEUE_LEFT,
    SYNC_USER,
    USER_SYNCED,
    ProtocolError,
    decode,
    require_str,
)
from .registry import ConnectionRegistry

LOGGER = logging.getLogger("poker_lobby")

# LobbyServer glues the engine to browser sockets. Engine calls happen under
# the lock and finish before anything is broadcast.

Handler = Callable[[Any, Dict[str, Any]], Awaitable[None]]


def _json_response(status: HTTPStatus, body: object) -> Response:
    data = json.dumps(body).encode("utf-8")
    headers = Headers(
        [
            ("Content-Type", "application/json"),
            ("Content-Length", str(len(data))),
        ]
    )
    return Response(status.value, status.phrase, headers, data)


class LobbyServer:
    def __init__(
        self,
        config: Optional[LobbyConfig] = None,
        store: Optional[MemoryStore] = None,
        card_source: Optional[CardSource] = None,
        evaluator: Optional[HandEvaluator] = None,
    ) -> None:
        self.config = config or LobbyConfig()
        self.store = store or MemoryStore()
        self.accounts = AccountService(self.store, self.config)
        self.matchmaker = Matchmaker(self.store, self.config)
        self.table = GameTable(self.store, self.config, card_source=card_source, evaluator=evaluator)
        self.seasons = SeasonService(self.store, self.config)
        self.registry = ConnectionRegistry()
        self.match_requests: asyncio.Queue[GameType] = asyncio.Queue()
        self.lock = asyncio.Lock()
        self._handlers: Dict[str, Handler] = {
            JOIN_QUEUE: self._handle_join_queue,
            LEAVE_QUEUE: self._handle_leave_queue,
            GAME_ACTION: self._handle_game_action,
            LEAVE_GAME: self._handle_leave_game,
            SYNC_USER: self._handle_sync_user,
        }

    async def start(self, host: str = "0.0.0.0", port: int = 5000) -> None:
        self.seasons.ensure_current()
        workers = [
            asyncio.create_task(self._matchmaking_worker()),
            asyncio.create_task(self._season_ticker()),
        ]
        try:
            async with serve(self.handle_connection, host, port, process_request=self.process_request):
                LOGGER.info("Lobby server listening on %s:%s", host, port)
                await asyncio.Future()
        finally:
            for task in workers:
                task.cancel()

    async def handle_connection(self, websocket: ServerConnection) -> None:
        LOGGER.info("Client connected from %s", websocket.remote_address)
        try:
            async for raw in websocket:
                await self.handle_message(websocket, raw)
        except websockets.ConnectionClosed:
            pass
        finally:
            await self.handle_disconnect(websocket)
            LOGGER.info("Client disconnected from %s", websocket.remote_address)

    async def handle_message(self, websocket: Any, raw: Any) -> None:
        try:
            msg_type, payload = decode(raw)
        except ProtocolError as exc:
            LOGGER.warning("Rejected inbound message (%s): %s", exc.code, exc.message)
            await self.registry.send_error(websocket, exc.code, exc.message)
            return

        handler = self._handlers[msg_type]
        try:
            await handler(websocket, payload)
        except (ProtocolError, ActionRejected, AccountError) as exc:
            LOGGER.info("Rejected %s: %s", msg_type, exc.message)
            await self.registry.send_error(websocket, exc.code, exc.message)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Failed to handle %s", msg_type)
            await self.registry.send_error(websocket, "INTERNAL", "Failed to process request")

    async def handle_disconnect(self, websocket: Any) -> None:
        outcomes: List[ActionOutcome] = []
        async with self.lock:
            user_id = self.registry.unbind(websocket)
            if user_id is None:
                return
            self.store.remove_from_queue(user_id)
            if self.config.fold_on_disconnect:
                for game in self.table.player_games(user_id):
                    outcome = self.table.leave(game.id, user_id)
                    if outcome is not None:
                        outcomes.append(outcome)
        LOGGER.info("User %s disconnected", user_id)
        for outcome in outcomes:
            await self._publish_outcome(outcome)

    # Queue -----------------------------------------------------------

    async def _handle_join_queue(self, websocket: Any, payload: Dict[str, Any]) -> None:
        game_type_raw = require_str(payload, "gameType")
        user_id = require_str(payload, "userId")
        try:
            game_type = GameType(game_type_raw)
        except ValueError:
            raise ProtocolError("BAD_GAME_TYPE", "Unknown game type") from None

        user = self.accounts.get_user_by_auth_id(user_id)
        if user is None:
            raise AccountError("USER_NOT_FOUND", "User not found")

        async with self.lock:
            entry = self.store.add_to_queue(user.auth_id, user.username, game_type, user.score)
            self.registry.bind(websocket, user.auth_id)
        LOGGER.info("User %s joined %s queue (mmr=%s)", user.username, game_type.value, user.score)
        await self.registry.send(websocket, QUEUE_JOINED, entry.to_payload())
        self.match_requests.put_nowait(game_type)

    async def _handle_leave_queue(self, websocket: Any, payload: Dict[str, Any]) -> None:
        user_id = require_str(payload, "userId")
        async with self.lock:
            removed = self.store.remove_from_queue(user_id)
        if removed:
            LOGGER.info("User %s left the queue", user_id)
        await self.registry.send(websocket, QUEUE_LEFT, {})

    # Matchmaking -----------------------------------------------------

    async def _matchmaking_worker(self) -> None:
        while True:
            game_type = await self.match_requests.get()
            await self._serve_match_request(game_type)
            await self.process_pending_matches()

    async def process_pending_matches(self) -> List[GameSession]:
        """Drain queued matchmaking triggers without waiting for new ones."""
        formed: List[GameSession] = []
        while not self.match_requests.empty():
            formed.extend(await self._serve_match_request(self.match_requests.get_nowait()))
        return formed

    async def _serve_match_request(self, game_type: GameType) -> List[GameSession]:
        try:
            return await self.run_matchmaking(game_type)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Matchmaking failed for %s queue", game_type.value)
            return []
        finally:
            self.match_requests.task_done()

    async def run_matchmaking(self, game_type: GameType) -> List[GameSession]:
        formed: List[GameSession] = []
        while True:
            async with self.lock:
                session = self.matchmaker.try_match(game_type)
                if session is None:
                    break
                found = session.to_payload()
                dealt = self.table.deal(session.id)
                self.registry.open_game(dealt.id, [player.user_id for player in dealt.players])
                # Actions on the new table wait until every seat has the deal.
                await self._announce(dealt, found)
            formed.append(dealt)
        return formed

    async def _announce(self, dealt: GameSession, found: Dict[str, object]) -> None:
        for player in dealt.players:
            websocket = self.registry.socket_for(player.user_id)
            if websocket is not None:
                await self.registry.send(websocket, GAME_FOUND, found)
        await self.registry.broadcast(dealt.id, GAME_UPDATED, dealt.to_payload())

    # Game ------------------------------------------------------------

    async def _handle_game_action(self, websocket: Any, payload: Dict[str, Any]) -> None:
        game_id = require_str(payload, "gameId")
        user_id = require_str(payload, "userId")
        action = require_str(payload, "action")
        amount = payload.get("amount")
        async with self.lock:
            outcome = self.table.apply_action(game_id, user_id, action, amount)
        await self._publish_outcome(outcome)

    async def _handle_leave_game(self, websocket: Any, payload: Dict[str, Any]) -> None:
        game_id = require_str(payload, "gameId")
        user_id = require_str(payload, "userId")
        async with self.lock:
            outcome = self.table.leave(game_id, user_id)
        if outcome is None:
            return
        await self._publish_outcome(outcome)
        self.registry.detach(game_id, websocket)
        self.registry.unbind(websocket)

    async def _publish_outcome(self, outcome: ActionOutcome) -> None:
        session = outcome.session
        if outcome.ended:
            await self.registry.broadcast(session.id, GAME_ENDED, session.to_payload())
            self.registry.release_game(session.id)
        else:
            await self.registry.broadcast(session.id, GAME_UPDATED, session.to_payload())

    # Accounts --------------------------------------------------------

    async def _handle_sync_user(self, websocket: Any, payload: Dict[str, Any]) -> None:
        user_id = require_str(payload, "userId")
        username = require_str(payload, "username")
        email = payload.get("email")
        if email is not None and not isinstance(email, str):
            raise ProtocolError("BAD_SCHEMA", "email must be a string")
        async with self.lock:
            user = self.accounts.sync_user(user_id, username, email=email)
        await self.registry.send(websocket, USER_SYNCED, user.to_payload())

    # Seasons ---------------------------------------------------------

    async def _season_ticker(self) -> None:
        interval = self.config.season_check_interval_s
        if interval <= 0:
            return
        while True:
            await asyncio.sleep(interval)
            try:
                async with self.lock:
                    self.seasons.check_season_end()
            except Exception:  # noqa: BLE001
                LOGGER.exception("Season check failed")

    # HTTP ------------------------------------------------------------

    async def process_request(self, connection: ServerConnection, request: Request) -> Optional[Response]:
        """Serve the read-only JSON API; WebSocket upgrades pass through."""
        if request.headers.get("Upgrade", "").lower() == "websocket":
            return None
        status, body = self.http_get(request.path)
        return _json_response(status, body)

    def http_get(self, target: str) -> Tuple[HTTPStatus, object]:
        parts = urlsplit(target)
        path = parts.path.rstrip("/") or "/"
        query = parse_qs(parts.query)

        if path in ("/", "/health", "/healthz"):
            return HTTPStatus.OK, {"status": "ok"}
        if path == "/api/leaderboard":
            limit: Optional[int] = None
            if "limit" in query:
                try:
                    limit = int(query["limit"][0])
                except ValueError:
                    return HTTPStatus.BAD_REQUEST, {"message": "limit must be an integer"}
            return HTTPStatus.OK, [user.to_payload() for user in self.accounts.leaderboard(limit)]
        if path == "/api/season":
            season = self.store.current_season()
            return HTTPStatus.OK, {
                "season": season.to_payload() if season else None,
                "timeLeft": self.seasons.time_left(),
            }
        if path.startswith("/api/user/auth/"):
            user = self.accounts.get_user_by_auth_id(path[len("/api/user/auth/") :])
            if user is None:
                return HTTPStatus.NOT_FOUND, {"message": "User not found"}
            return HTTPStatus.OK, user.to_payload()
        if path.startswith("/api/user/"):
            user = self.accounts.get_user(path[len("/api/user/") :])
            if user is None:
                return HTTPStatus.NOT_FOUND, {"message": "User not found"}
            return HTTPStatus.OK, user.to_payload()
        return HTTPStatus.NOT_FOUND, {"message": "Not found"}
