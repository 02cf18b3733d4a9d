"""Shared unit-test fixtures."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
from jose import jwt as jose_jwt

from potencialize_sdk.storage import CredentialStore, MemoryStorage


@pytest.fixture
def store() -> CredentialStore:
    """Credential store backed by in-memory durable storage."""
    return CredentialStore(MemoryStorage())


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Mint HS256 tokens carrying arbitrary claims."""

    def factory(**claims: Any) -> str:
        return jose_jwt.encode(claims, "unit-test-secret", algorithm="HS256")

    return factory
