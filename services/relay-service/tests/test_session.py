from __future__ import annotations

import time

import jwt
import pytest
from starlette.requests import Request

from mailbridge.config import get_settings
from mailbridge.domain.contracts import RegisterInput
from mailbridge.domain.errors import Unauthorized
from mailbridge.security.session import authenticate, extract_session_token


def make_request(*headers: tuple[str, str]) -> Request:
    raw = [(name.lower().encode(), value.encode()) for name, value in headers]
    return Request({"type": "http", "method": "GET", "path": "/auth/me", "headers": raw})


def forge(secret: str, **overrides) -> str:
    settings = get_settings()
    now = int(time.time())
    claims = {"iss": settings.jwt_issuer, "sub": "someone", "iat": now, "exp": now + 60}
    claims.update(overrides)
    return jwt.encode(claims, secret, algorithm="HS256")


def test_cookie_takes_precedence_over_bearer_header():
    request = make_request(("Cookie", "token=from-cookie"), ("Authorization", "Bearer from-header"))
    assert extract_session_token(request) == "from-cookie"


def test_bearer_header_used_without_cookie():
    assert extract_session_token(make_request(("Authorization", "Bearer abc"))) == "abc"
    assert extract_session_token(make_request(("Authorization", "Basic abc"))) is None
    assert extract_session_token(make_request()) is None


@pytest.mark.asyncio
async def test_missing_token(service):
    with pytest.raises(Unauthorized, match="no token"):
        await authenticate(service, None)


@pytest.mark.asyncio
async def test_round_trip_session(service):
    session = await service.register(RegisterInput(email="s@x.com", password="secret1"))
    account = await authenticate(service, session.token)
    assert account.account_id == session.account.account_id


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "token",
    [
        forge("some-other-secret"),
        forge(get_settings().jwt_secret, exp=int(time.time()) - 10),
        forge(get_settings().jwt_secret, iss="someone-else"),
    ],
    ids=["wrong-key", "expired", "wrong-issuer"],
)
async def test_rejected_tokens(service, token):
    with pytest.raises(Unauthorized, match="token failed"):
        await authenticate(service, token)


@pytest.mark.asyncio
async def test_token_for_deleted_account_is_rejected(service):
    session = await service.register(RegisterInput(email="gone@x.com", password="secret1"))
    await service.delete_account(session.account.account_id)
    with pytest.raises(Unauthorized, match="token failed"):
        await authenticate(service, session.token)
