from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, Optional, Set

import websockets

from .protocol import ERROR, encode

LOGGER = logging.getLogger("poker_lobby.registry")


class ConnectionRegistry:
    """Socket bookkeeping only: who is on which socket and which game."""

    def __init__(self) -> None:
        self.users_by_socket: Dict[Any, str] = {}
        self.sockets_by_user: Dict[str, Any] = {}
        self.game_sockets: Dict[str, Set[Any]] = {}

    def bind(self, websocket: Any, user_id: str) -> None:
        previous_user = self.users_by_socket.get(websocket)
        if previous_user is not None and previous_user != user_id:
            self.sockets_by_user.pop(previous_user, None)
        previous_socket = self.sockets_by_user.get(user_id)
        if previous_socket is not None and previous_socket is not websocket:
            self.users_by_socket.pop(previous_socket, None)
        self.users_by_socket[websocket] = user_id
        self.sockets_by_user[user_id] = websocket

    def unbind(self, websocket: Any) -> Optional[str]:
        user_id = self.users_by_socket.pop(websocket, None)
        if user_id is not None and self.sockets_by_user.get(user_id) is websocket:
            del self.sockets_by_user[user_id]
        for sockets in self.game_sockets.values():
            sockets.discard(websocket)
        return user_id

    def user_for(self, websocket: Any) -> Optional[str]:
        return self.users_by_socket.get(websocket)

    def socket_for(self, user_id: str) -> Optional[Any]:
        return self.sockets_by_user.get(user_id)

    def open_game(self, game_id: str, user_ids: Iterable[str]) -> Set[Any]:
        sockets = {self.sockets_by_user[user_id] for user_id in user_ids if user_id in self.sockets_by_user}
        self.game_sockets[game_id] = sockets
        return sockets

    def detach(self, game_id: str, websocket: Any) -> None:
        sockets = self.game_sockets.get(game_id)
        if sockets is not None:
            sockets.discard(websocket)

    def release_game(self, game_id: str) -> None:
        self.game_sockets.pop(game_id, None)

    async def send(self, websocket: Any, msg_type: str, payload: Dict[str, object]) -> None:
        await self._send_raw(websocket, encode(msg_type, payload))

    async def send_error(self, websocket: Any, code: str, message: str) -> None:
        await self.send(websocket, ERROR, {"code": code, "message": message})

    async def broadcast(self, game_id: str, msg_type: str, payload: Dict[str, object]) -> None:
        targets = list(self.game_sockets.get(game_id, ()))
        if not targets:
            return
        message = encode(msg_type, payload)
        await asyncio.gather(*(self._send_raw(socket, message) for socket in targets))

    async def _send_raw(self, websocket: Any, message: str) -> None:
        try:
            await websocket.send(message)
        except websockets.ConnectionClosed:
            LOGGER.debug("Skipped send to closed socket")
