"""Lobby host package: wraps the game engine with WebSocket networking."""

from .registry import ConnectionRegistry
from .server import LobbyServer

__all__ = ["ConnectionRegistry", "LobbyServer"]
