"""Unverified JWT claims decoding for display and routing decisions."""

from __future__ import annotations

from jose import jwt
from jose.exceptions import JWTError

from potencialize_sdk.types import Claims


def decode_jwt(token: object) -> Claims | None:
    """Return the token's payload claims without verifying its signature.

    The server remains the only authority on token validity; any malformed input
    yields ``None`` instead of raising.
    """
    if not isinstance(token, str) or not token:
        return None
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return None
    if not isinstance(claims, dict):
        return None
    return claims  # type: ignore[return-value]
