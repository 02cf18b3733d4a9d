"""SDK exception hierarchy."""

from __future__ import annotations

import httpx


class SDKError(Exception):
    """Base class for all SDK-specific exceptions."""


class ConnectivityError(SDKError):
    """Raised when the API cannot be reached and no status code is available."""

    def __init__(self, detail: str, timed_out: bool = False) -> None:
        """Initialize with transport failure context."""
        super().__init__(detail)
        self.detail = detail
        self.timed_out = timed_out


class APIResponseError(SDKError):
    """Raised when the API answers with an error status or malformed payload."""

    def __init__(
        self,
        detail: str,
        status_code: int | None = None,
        response: httpx.Response | None = None,
    ) -> None:
        """Initialize with optional HTTP status code and response context."""
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code
        self.response = response


class UnauthenticatedError(APIResponseError):
    """Raised when no usable credential remains and the caller must log in again."""

    def __init__(self, detail: str, response: httpx.Response | None = None) -> None:
        """Initialize as a 401 response error."""
        super().__init__(detail, 401, response)


class ForbiddenRoleError(SDKError):
    """Raised when the current session role is not allowed for an operation."""

    def __init__(self, role: str | None, allowed: tuple[str, ...]) -> None:
        super().__init__("Insufficient role")
        self.role = role
        self.allowed = allowed
