from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from mailbridge.domain.contracts import (
    ForgotPasswordInput,
    LoginInput,
    ProfileUpdate,
    RegisterInput,
    ResetPasswordInput,
)
from mailbridge.domain.errors import Conflict, InvalidOrExpired, UpstreamMailError
from mailbridge.domain.service import RESET_TOKEN_TTL, VERIFICATION_TOKEN_TTL

from conftest import token_from


def expire(repository, account_id, **fields):
    repository.accounts[account_id] = replace(repository.accounts[account_id], **fields)


@pytest.mark.asyncio
async def test_verification_token_expires_after_a_day(service, repository, transport):
    session = await service.register(RegisterInput(email="v@x.com", password="secret1"))
    token = token_from(transport.sent[0], "/verify-email/")
    stored = repository.accounts[session.account.account_id]
    assert stored.verification_token_expire - stored.created_at <= VERIFICATION_TOKEN_TTL

    expire(
        repository,
        session.account.account_id,
        verification_token_expire=datetime.now(timezone.utc) - timedelta(seconds=1),
    )
    with pytest.raises(InvalidOrExpired):
        await service.verify_email(token)
    assert repository.accounts[session.account.account_id].is_verified is False


@pytest.mark.asyncio
async def test_reset_token_expires_after_ten_minutes(service, repository, transport):
    session = await service.register(RegisterInput(email="r@x.com", password="secret1"))
    await service.forgot_password(ForgotPasswordInput(email="r@x.com"))
    token = token_from(transport.sent[-1], "/reset-password/")

    stored = repository.accounts[session.account.account_id]
    remaining = stored.reset_password_expire - datetime.now(timezone.utc)
    assert timedelta(minutes=9) < remaining <= RESET_TOKEN_TTL

    expire(
        repository,
        session.account.account_id,
        reset_password_expire=datetime.now(timezone.utc) - timedelta(seconds=1),
    )
    with pytest.raises(InvalidOrExpired):
        await service.reset_password(token, ResetPasswordInput(password="brand-new"))

    # the old password still works
    await service.login(LoginInput(email="r@x.com", password="secret1"))


@pytest.mark.asyncio
async def test_welcome_email_failure_does_not_block_registration(service, repository, transport):
    transport.fail = True
    session = await service.register(RegisterInput(email="w@x.com", password="secret1"))
    assert session.account.account_id in repository.accounts
    assert session.token


@pytest.mark.asyncio
async def test_resend_failure_surfaces_upstream_error(service, transport):
    session = await service.register(RegisterInput(email="f@x.com", password="secret1"))
    transport.fail = True
    with pytest.raises(UpstreamMailError):
        await service.resend_verification(session.account.account_id)


@pytest.mark.asyncio
async def test_passwords_are_never_stored_in_plaintext(service, repository):
    session = await service.register(RegisterInput(email="p@x.com", password="secret1"))
    stored = repository.accounts[session.account.account_id]
    assert stored.password_hash.startswith("$argon2")
    assert "secret1" not in stored.password_hash


@pytest.mark.asyncio
async def test_client_id_is_unique_across_accounts(service):
    first = await service.register(RegisterInput(email="one@x.com", password="secret1"))
    second = await service.register(RegisterInput(email="two@x.com", password="secret1"))
    update = ProfileUpdate(client_id="shared", target_emails=["t@x.com"])

    await service.update_profile(first.account.account_id, update)
    # saving the same clientId again on the holder is fine
    await service.update_profile(first.account.account_id, update)
    with pytest.raises(Conflict, match="Client ID already taken"):
        await service.update_profile(second.account.account_id, update)


@pytest.mark.asyncio
async def test_profile_update_keeps_optional_fields_when_omitted(service):
    session = await service.register(RegisterInput(email="o@x.com", password="secret1"))
    account_id = session.account.account_id
    await service.update_profile(
        account_id,
        ProfileUpdate(
            client_id="site",
            target_emails=["t@x.com"],
            allowed_origins=["https://site.com"],
            is_accepting_emails=False,
        ),
    )
    account = await service.update_profile(
        account_id, ProfileUpdate(client_id="site", target_emails=["u@x.com"])
    )
    assert account.target_emails == ["u@x.com"]
    assert account.allowed_origins == ["https://site.com"]
    assert account.is_accepting_emails is False


@pytest.mark.asyncio
async def test_unknown_reset_token_is_rejected_before_hashing(service, monkeypatch):
    async def no_hashing(password):
        raise AssertionError("password hashed for an unknown reset token")

    monkeypatch.setattr(service._hasher, "hash", no_hashing)
    with pytest.raises(InvalidOrExpired):
        await service.reset_password("not-a-token", ResetPasswordInput(password="brand-new"))
