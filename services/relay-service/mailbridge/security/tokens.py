"""Utilities for issuing and validating session JWTs and one-time tokens."""

from __future__ import annotations

import secrets
import time
from typing import Any

import jwt

from ..config import get_settings

ONE_TIME_TOKEN_BYTES = 20


def issue_session_token(*, subject: str) -> tuple[str, int]:
    """Create a signed JWT representing an authenticated account.

    Parameters
    ----------
    subject:
        Account identifier to embed in the token `sub` claim.

    Returns
    -------
    tuple[str, int]
        A tuple containing the encoded JWT string and its TTL (in seconds).
    """

    settings = get_settings()
    now = int(time.time())
    expires_in = settings.jwt_ttl_seconds
    payload: dict[str, Any] = {
        "iss": settings.jwt_issuer,
        "sub": subject,
        "iat": now,
        "exp": now + expires_in,
    }

    token = jwt.encode(payload, settings.jwt_secret, algorithm="HS256")
    return token, expires_in


def decode_session_token(token: str) -> dict[str, Any]:
    """Decode and verify a session JWT returning its payload.

    Raises
    ------
    jwt.PyJWTError
        Propagated when the token is malformed, expired, or signed by another key or issuer.
    """

    settings = get_settings()
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=["HS256"],
        issuer=settings.jwt_issuer,
        options={"require": ["sub", "exp", "iss"]},
    )


def generate_one_time_token() -> str:
    """Return a random hex token for email verification or password reset links."""
    return secrets.token_hex(ONE_TIME_TOKEN_BYTES)
