"""Persistent session -- bearer token, expiry and cached user profile.

Stores the session in ``~/.local/share/offsync/session.json`` (XDG) or the
platform-equivalent directory. The file is written atomically with ``0o600``
permissions so the token is never world-readable, even momentarily.

A token is valid for seven days from the moment it is stored. Reading an
expired token clears the whole session. The engine itself never inspects
the token; :class:`~offsync.client.ApiClient` turns it into an
``Authorization`` header.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

from offsync.config import _atomic_write, get_data_dir

SESSION_LIFETIME = timedelta(days=7)


class SessionEntry(BaseModel):
    """The persisted session record."""

    token: Optional[str] = Field(default=None, description="Bearer token")
    expires_at: Optional[datetime] = Field(default=None, description="Token expiry (UTC)")
    user: Optional[dict[str, Any]] = Field(default=None, description="Cached user profile")


class SessionStore:
    """Read/write the session file.

    Args:
        path: Explicit session file. Defaults to ``<data_dir>/session.json``.

    Example::

        store = SessionStore()
        store.set_token("tok123")
        store.set_user({"id": 1, "fullName": "Awa"})
        assert store.has_valid_session()
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path or get_data_dir() / "session.json"

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> SessionEntry:
        """Return the stored session, or an empty one if missing or unreadable."""
        if not self._path.is_file():
            return SessionEntry()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return SessionEntry.model_validate(data)
        except (json.JSONDecodeError, ValueError, OSError):
            return SessionEntry()

    def save(self, entry: SessionEntry) -> None:
        text = json.dumps(entry.model_dump(mode="json"), indent=2) + "\n"
        _atomic_write(self._path, text, mode=0o600)

    def set_token(self, token: str, now: Optional[datetime] = None) -> None:
        """Store *token* with an expiry seven days from *now*."""
        now = now or datetime.now(timezone.utc)
        entry = self.load()
        entry.token = token
        entry.expires_at = now + SESSION_LIFETIME
        self.save(entry)

    def get_token(self, now: Optional[datetime] = None) -> Optional[str]:
        """Return the token, clearing the session if it has expired."""
        entry = self.load()
        if entry.token is None:
            return None
        if entry.expires_at is not None and _is_expired(entry.expires_at, now):
            self.clear()
            return None
        return entry.token

    def set_user(self, user: Optional[dict[str, Any]]) -> None:
        if not user:
            return
        entry = self.load()
        entry.user = user
        self.save(entry)

    def get_user(self) -> Optional[dict[str, Any]]:
        return self.load().user

    def has_valid_session(self, now: Optional[datetime] = None) -> bool:
        """True when token, expiry and user are all present and unexpired."""
        entry = self.load()
        if not entry.token or entry.expires_at is None or not entry.user:
            return False
        return not _is_expired(entry.expires_at, now)

    def auth_headers(self) -> dict[str, str]:
        token = self.get_token()
        return {"Authorization": f"Bearer {token}"} if token else {}

    def clear(self) -> None:
        if self._path.is_file():
            self._path.unlink()


def _is_expired(expires_at: datetime, now: Optional[datetime]) -> bool:
    now = now or datetime.now(timezone.utc)
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return now >= expires_at
