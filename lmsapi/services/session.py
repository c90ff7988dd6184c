"""
Session credential and bearer-token attachment.

SessionState holds at most one bearer token for the application. It is
written by login/logout flows and read by ApiClient on every request.
"""

import json
import os
from abc import ABC, abstractmethod
from pathlib import Path

from loguru import logger

TOKEN_KEY = "accessToken"


class TokenStore(ABC):
    """Key-value storage that keeps the token across restarts."""

    @abstractmethod
    def load(self) -> str | None:
        """Return the stored token, or None."""

    @abstractmethod
    def save(self, token: str) -> None:
        """Store the token."""

    @abstractmethod
    def delete(self) -> None:
        """Remove the stored token."""


class MemoryTokenStore(TokenStore):
    """Process-local store, used in tests and when persistence is off."""

    def __init__(self, token: str | None = None):
        self._token = token

    def load(self) -> str | None:
        return self._token

    def save(self, token: str) -> None:
        self._token = token

    def delete(self) -> None:
        self._token = None


class FileTokenStore(TokenStore):
    """JSON file store: {"accessToken": "<token>"}."""

    def __init__(self, path: str | Path):
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> str | None:
        if not self._path.exists():
            return None

        try:
            with open(self._path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read session file {self._path}: {e}")
            return None

        token = data.get(TOKEN_KEY) if isinstance(data, dict) else None
        return token or None

    def save(self, token: str) -> None:
        try:
            self._path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        except PermissionError:
            self._path.parent.mkdir(parents=True, exist_ok=True)

        # Owner-only from creation, then atomic replace
        temp_path = self._path.with_suffix(".tmp")
        temp_path.unlink(missing_ok=True)
        try:
            fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "w") as f:
                json.dump({TOKEN_KEY: token}, f)
            temp_path.replace(self._path)
        except OSError:
            temp_path.unlink(missing_ok=True)
            raise

    def delete(self) -> None:
        if self._path.exists():
            self._path.unlink()


class SessionState:
    """
    Owner of the bearer credential.

    Lifecycle: absent -> present (set_token on login) -> cleared
    (clear_token on logout or expiry).
    """

    def __init__(self, store: TokenStore | None = None):
        self._store = store or MemoryTokenStore()
        self._token: str | None = self._store.load()

    def get_token(self) -> str | None:
        self._token = self._store.load()
        return self._token

    def set_token(self, token: str) -> None:
        self._token = token
        self._store.save(token)
        logger.info("Session token stored")

    def clear_token(self) -> None:
        self._token = None
        self._store.delete()
        logger.info("Session token cleared")

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None


def attach_auth(
    headers: dict[str, str], token: str | None, skip_auth: bool = False
) -> dict[str, str]:
    """Return headers with `Authorization: Bearer <token>` when applicable."""
    if skip_auth or not token:
        return headers
    return {**headers, "Authorization": f"Bearer {token}"}
