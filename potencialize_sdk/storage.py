"""Credential storage: transient access secret, durable refresh secret and cookies."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Protocol

import structlog

from potencialize_sdk.types import StoredCookie

REFRESH_STORAGE_KEY = "potencialize_refresh_token"
COOKIE_STORAGE_KEY = "potencialize_cookies"

logger = structlog.get_logger(__name__)


class KeyValueStorage(Protocol):
    """Durable string storage keyed by name."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStorage:
    """Dict-backed storage for tests and ephemeral processes."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value

    def delete(self, key: str) -> None:
        self.values.pop(key, None)


class JSONFileStorage:
    """Persist values as one JSON object on disk.

    A missing or unreadable file behaves as empty storage. Writes are atomic via
    a sibling temp file and ``os.replace``.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> str | None:
        value = self._load().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        payload = self._load()
        payload[key] = value
        self._dump(payload)

    def delete(self, key: str) -> None:
        payload = self._load()
        if key not in payload:
            return
        del payload[key]
        self._dump(payload)

    def _load(self) -> dict[str, object]:
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError):
            logger.warning("credential_storage_unreadable", path=str(self._path))
            return {}
        return payload if isinstance(payload, dict) else {}

    def _dump(self, payload: dict[str, object]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=".credentials-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class CredentialStore:
    """Process-wide holder for the access and refresh secrets."""

    def __init__(self, storage: KeyValueStorage | None = None) -> None:
        self._storage = storage if storage is not None else MemoryStorage()
        self._access: str | None = None

    def set_access(self, secret: str | None) -> None:
        """Hold the access secret in memory only."""
        self._access = secret or None

    def get_access(self) -> str | None:
        return self._access

    def set_refresh(self, secret: str | None) -> None:
        """Persist the refresh secret; ``None`` removes the stored entry."""
        if not secret:
            self._storage.delete(REFRESH_STORAGE_KEY)
        else:
            self._storage.set(REFRESH_STORAGE_KEY, secret)

    def get_refresh(self) -> str | None:
        return self._storage.get(REFRESH_STORAGE_KEY)

    def clear_all(self) -> None:
        """Drop both secrets."""
        self._access = None
        self._storage.delete(REFRESH_STORAGE_KEY)

    def set_cookies(self, cookies: list[StoredCookie]) -> None:
        """Persist the cookie jar snapshot; an empty list removes the entry."""
        if not cookies:
            self._storage.delete(COOKIE_STORAGE_KEY)
        else:
            self._storage.set(COOKIE_STORAGE_KEY, json.dumps(cookies))

    def get_cookies(self) -> list[StoredCookie]:
        raw = self._storage.get(COOKIE_STORAGE_KEY)
        if not raw:
            return []
        try:
            payload = json.loads(raw)
        except ValueError:
            logger.warning("cookie_storage_unreadable")
            return []
        if not isinstance(payload, list):
            return []
        return [
            cookie
            for cookie in payload
            if isinstance(cookie, dict)
            and isinstance(cookie.get("name"), str)
            and isinstance(cookie.get("value"), str)
        ]
