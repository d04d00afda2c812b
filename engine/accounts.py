from __future__ import annotations

import logging
import re
from typing import List, Optional

from .models import LobbyConfig, User
from .rating import higher_tier, tier_for_score
from .store import MemoryStore

LOGGER = logging.getLogger("poker_lobby.accounts")

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9]{3,20}$")


class AccountError(ValueError):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class AccountService:
    """Identity and leaderboard lookups used by the external auth collaborator."""

    def __init__(self, store: MemoryStore, config: Optional[LobbyConfig] = None) -> None:
        self.store = store
        self.config = config or LobbyConfig()

    def create_user(self, auth_id: str, username: str, email: Optional[str] = None) -> User:
        auth_id = (auth_id or "").strip()
        if not auth_id:
            raise AccountError("AUTH_ID_REQUIRED", "authId required")
        self._check_username(username)
        if self.store.get_user_by_auth_id(auth_id):
            raise AccountError("USER_EXISTS", "User already exists")
        if self.store.get_user_by_username(username):
            raise AccountError("USERNAME_TAKEN", "Username already taken")
        user = self.store.create_user(auth_id, username, self.config.default_score, email=email)
        LOGGER.info("Created user %s (%s)", user.username, user.id)
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        return self.store.get_user(user_id)

    def get_user_by_auth_id(self, auth_id: str) -> Optional[User]:
        return self.store.get_user_by_auth_id(auth_id)

    def update_user_by_auth_id(self, auth_id: str, **changes: object) -> Optional[User]:
        user = self.store.get_user_by_auth_id(auth_id)
        if user is None:
            return None
        if "username" in changes and changes["username"] != user.username:
            username = str(changes["username"])
            self._check_username(username)
            if self.store.get_user_by_username(username):
                raise AccountError("USERNAME_TAKEN", "Username already taken")
        if "score" in changes:
            tier = tier_for_score(int(changes["score"]))  # type: ignore[arg-type]
            changes["tier"] = tier
            changes["peak_tier"] = higher_tier(user.peak_tier, tier)
        return self.store.update_user(user.id, **changes)

    def sync_user(self, auth_id: str, username: str, email: Optional[str] = None) -> User:
        """Create the user on first sight, otherwise refresh display details."""
        user = self.store.get_user_by_auth_id(auth_id)
        if user is None:
            return self.create_user(auth_id, username, email=email)
        changes = {}
        if username and username != user.username:
            changes["username"] = username
        if email and email != user.email:
            changes["email"] = email
        if not changes:
            return user
        updated = self.update_user_by_auth_id(auth_id, **changes)
        assert updated is not None
        return updated

    def leaderboard(self, limit: Optional[int] = None) -> List[User]:
        return self.store.leaderboard(self.config.leaderboard_limit if limit is None else limit)

    def _check_username(self, username: str) -> None:
        if not isinstance(username, str) or not USERNAME_PATTERN.match(username):
            raise AccountError("BAD_USERNAME", "Username must be 3-20 letters or digits")
