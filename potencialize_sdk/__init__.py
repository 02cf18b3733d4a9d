"""Public SDK exports."""

from potencialize_sdk.client import AuthenticatedClient, get_authenticated_client
from potencialize_sdk.errors import normalize_error
from potencialize_sdk.exceptions import (
    APIResponseError,
    ConnectivityError,
    ForbiddenRoleError,
    SDKError,
    UnauthenticatedError,
)
from potencialize_sdk.resources import DashboardAPI
from potencialize_sdk.session import AuthState, SessionController, get_session_controller
from potencialize_sdk.storage import CredentialStore, JSONFileStorage, MemoryStorage
from potencialize_sdk.types import Session

__all__ = [
    "APIResponseError",
    "AuthState",
    "AuthenticatedClient",
    "ConnectivityError",
    "CredentialStore",
    "DashboardAPI",
    "ForbiddenRoleError",
    "JSONFileStorage",
    "MemoryStorage",
    "SDKError",
    "Session",
    "SessionController",
    "UnauthenticatedError",
    "get_authenticated_client",
    "get_session_controller",
    "normalize_error",
]
