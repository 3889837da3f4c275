"""Resolve the caller's session token into an ``Account``."""

from __future__ import annotations

import logging

import jwt
from fastapi import Request

from ..domain.account import Account
from ..domain.errors import NotFound, Unauthorized
from ..domain.service import AccountService
from .tokens import decode_session_token

logger = logging.getLogger(__name__)

SESSION_COOKIE = "token"


def extract_session_token(request: Request) -> str | None:
    """Return the session token carried by ``request``.

    The ``token`` cookie is consulted first; the ``Authorization: Bearer``
    header is only used when no cookie is present.
    """
    cookie = request.cookies.get(SESSION_COOKIE)
    if cookie:
        return cookie
    scheme, _, credentials = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


async def authenticate(service: AccountService, token: str | None) -> Account:
    """Verify ``token`` and load the account it names; never fails open."""
    if not token:
        raise Unauthorized("Not authorized, no token")
    try:
        claims = decode_session_token(token)
    except jwt.PyJWTError as exc:
        logger.info("rejected session token: %s", exc)
        raise Unauthorized("Not authorized, token failed") from exc
    try:
        return await service.get_account(str(claims["sub"]))
    except NotFound as exc:
        raise Unauthorized("Not authorized, token failed") from exc
