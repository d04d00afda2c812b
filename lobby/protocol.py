from __future__ import annotations

import json
from typing import Any, Dict, Tuple, Union

# Every frame on the socket is {"type": str, "payload": object}.

JOIN_QUEUE = "join_queue"
LEAVE_QUEUE = "leave_queue"
GAME_ACTION = "game_action"
LEAVE_GAME = "leave_game"
SYNC_USER = "sync_user"

INBOUND_TYPES = {JOIN_QUEUE, LEAVE_QUEUE, GAME_ACTION, LEAVE_GAME, SYNC_USER}

QUEUE_JOINED = "queue_joined"
QUEUE_LEFT = "queue_left"
GAME_FOUND = "game_found"
GAME_UPDATED = "game_updated"
GAME_ENDED = "game_ended"
USER_SYNCED = "user_synced"
ERROR = "error"


class ProtocolError(ValueError):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def encode(msg_type: str, payload: Dict[str, Any]) -> str:
    return json.dumps({"type": msg_type, "payload": payload})


def decode(raw: Union[str, bytes]) -> Tuple[str, Dict[str, Any]]:
    try:
        message = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ProtocolError("BAD_JSON", "Invalid message format") from None
    if not isinstance(message, dict):
        raise ProtocolError("BAD_SCHEMA", "Invalid message format")
    msg_type = message.get("type")
    if not isinstance(msg_type, str):
        raise ProtocolError("BAD_SCHEMA", "Invalid message format")
    payload = message.get("payload")
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ProtocolError("BAD_SCHEMA", "Invalid message format")
    if msg_type not in INBOUND_TYPES:
        raise ProtocolError("UNKNOWN_TYPE", "Unknown message type")
    return msg_type, payload


def require_str(payload: Dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ProtocolError("BAD_SCHEMA", f"{key} required")
    return value.strip()
