"""Anti-forgery token lookup from client-readable cookies."""

from __future__ import annotations

import re
from urllib.parse import unquote

import httpx

from potencialize_sdk.types import CsrfKind

CSRF_COOKIE_NAMES: dict[CsrfKind, str] = {
    "access": "csrf_access_token",
    "refresh": "csrf_refresh_token",
}


def read_cookie(cookie_string: str, name: str) -> str | None:
    """Return the URL-decoded value of ``name`` in a ``a=1; b=2`` cookie string."""
    match = re.search(r"(?:^|; )" + re.escape(name) + r"=([^;]*)", cookie_string)
    return unquote(match.group(1)) if match else None


class CsrfReader:
    """Read CSRF marker cookies out of an httpx cookie jar."""

    def __init__(self, cookies: httpx.Cookies) -> None:
        self._cookies = cookies

    def cookie_string(self) -> str:
        """Render the jar the way a browser exposes ``document.cookie``."""
        return "; ".join(f"{cookie.name}={cookie.value}" for cookie in self._cookies.jar)

    def read_cookie(self, name: str) -> str | None:
        return read_cookie(self.cookie_string(), name)

    def get_csrf_token(self, kind: CsrfKind = "access") -> str | None:
        return self.read_cookie(CSRF_COOKIE_NAMES[kind])
