"""Display-ready messages for SDK failures."""

from __future__ import annotations

import re
from typing import Any

from potencialize_sdk.exceptions import APIResponseError, ConnectivityError
from potencialize_sdk.routes import (
    DEFAULT_MESSAGES,
    ERROR_MESSAGE_RULES,
    first_match,
    normalize_path,
    strip_base_path,
)
from potencialize_sdk.types import NormalizedError

FALLBACK_MESSAGE = "Unexpected error."
UNKNOWN_ERROR_MESSAGE = "An unexpected error occurred. Please try again."
TIMEOUT_MESSAGE = "Request timed out. Please try again."
NETWORK_MESSAGE = "Network failure. Check your connection and try again."
_GENERIC_UNAUTHORIZED = re.compile(r"not authenticated|unauthorized", re.IGNORECASE)


def message_for(
    method: str | None,
    url: str | None,
    status: int,
    server_message: str | None = None,
) -> str:
    """Pick the most useful message for an error status on a given route."""
    resolved_method = (method or "GET").upper()
    path = strip_base_path(normalize_path(url or "/"))
    rule = first_match(ERROR_MESSAGE_RULES, resolved_method, path)
    specific = rule.effect.get(status) if rule is not None else None

    if server_message and server_message.strip():
        message = server_message
    else:
        message = specific or DEFAULT_MESSAGES.get(status) or FALLBACK_MESSAGE

    if status == 401 and rule is not None and rule.name == "auth_login":
        if _GENERIC_UNAUTHORIZED.search(message):
            message = specific or message
    return message


def _server_message(data: Any) -> str | None:
    if isinstance(data, str):
        return data
    if isinstance(data, dict):
        for key in ("message", "msg", "detail"):
            value = data.get(key)
            if isinstance(value, str):
                return value
        error = data.get("error")
        if isinstance(error, str):
            return error
    return None


def _details(data: Any) -> Any:
    if isinstance(data, dict):
        for key in ("details", "errors"):
            if data.get(key) is not None:
                return data[key]
    return data


def normalize_error(exc: BaseException) -> NormalizedError:
    """Summarize any failure as ``{status, message, details}`` for display."""
    if isinstance(exc, ConnectivityError):
        return {"message": TIMEOUT_MESSAGE if exc.timed_out else NETWORK_MESSAGE}
    if not isinstance(exc, APIResponseError) or exc.status_code is None:
        return {"message": str(exc) or UNKNOWN_ERROR_MESSAGE}

    data: Any = None
    method: str | None = None
    url: str | None = None
    response = exc.response
    if response is not None:
        try:
            data = response.json()
        except ValueError:
            data = response.text or None
        try:
            method = response.request.method
            url = str(response.request.url)
        except RuntimeError:
            pass

    normalized: NormalizedError = {
        "status": exc.status_code,
        "message": message_for(method, url, exc.status_code, _server_message(data)),
    }
    details = _details(data)
    if details is not None:
        normalized["details"] = details
    return normalized
