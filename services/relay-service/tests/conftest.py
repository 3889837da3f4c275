from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime, timezone
from email.message import EmailMessage

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from mailbridge.api import relay, routes
from mailbridge.api.errors import install_error_handlers
from mailbridge.domain.account import Account
from mailbridge.domain.errors import Conflict, UpstreamMailError
from mailbridge.domain.relay import RelayDispatcher
from mailbridge.domain.service import AccountService
from mailbridge.mail import AccountMailer
from mailbridge.security.passwords import PasswordHasher
from mailbridge.security.rate_limiter import FixedWindowRateLimiter


class FakeRepository:
    """In-memory repository mimicking the Postgres-backed behaviors."""

    def __init__(self) -> None:
        self.accounts: dict[str, Account] = {}

    def add(self, **fields) -> Account:
        now = datetime.now(timezone.utc)
        fields.setdefault("account_id", str(uuid.uuid4()))
        fields.setdefault("password_hash", "not-a-real-hash")
        fields.setdefault("created_at", now)
        fields.setdefault("updated_at", now)
        account = Account(**fields)
        self.accounts[account.account_id] = account
        return account

    def _touch(self, account: Account, **changes) -> Account:
        updated = replace(account, updated_at=datetime.now(timezone.utc), **changes)
        self.accounts[account.account_id] = updated
        return replace(updated)

    def _find(self, predicate) -> Account | None:
        for account in self.accounts.values():
            if predicate(account):
                return replace(account)
        return None

    async def create_account(self, *, email, password_hash, verification_token, verification_token_expire):
        if self._find(lambda a: a.email == email):
            raise Conflict("User already exists")
        return replace(
            self.add(
                email=email,
                password_hash=password_hash,
                verification_token=verification_token,
                verification_token_expire=verification_token_expire,
            )
        )

    async def get_account(self, account_id):
        account = self.accounts.get(account_id)
        return replace(account) if account else None

    async def get_by_email(self, email):
        return self._find(lambda a: a.email == email)

    async def get_by_client_id(self, client_id):
        return self._find(lambda a: a.client_id == client_id)

    async def redeem_verification_token(self, token, now):
        for account in self.accounts.values():
            if account.verification_token == token and account.verification_token_expire > now:
                return self._touch(
                    account, is_verified=True, verification_token=None, verification_token_expire=None
                )
        return None

    async def get_by_reset_token(self, token, now):
        return self._find(lambda a: a.reset_password_token == token and a.reset_password_expire > now)

    async def redeem_reset_token(self, token, password_hash, now):
        for account in self.accounts.values():
            if account.reset_password_token == token and account.reset_password_expire > now:
                return self._touch(
                    account,
                    password_hash=password_hash,
                    reset_password_token=None,
                    reset_password_expire=None,
                )
        return None

    async def set_verification_token(self, account_id, token, expires_at):
        account = self.accounts.get(account_id)
        if account is None:
            return None
        return self._touch(account, verification_token=token, verification_token_expire=expires_at)

    async def set_reset_token(self, account_id, token, expires_at):
        account = self.accounts.get(account_id)
        if account is None:
            return None
        return self._touch(account, reset_password_token=token, reset_password_expire=expires_at)

    async def update_password(self, account_id, password_hash):
        account = self.accounts.get(account_id)
        if account is None:
            return None
        return self._touch(account, password_hash=password_hash)

    async def update_profile(self, account_id, *, client_id, target_emails, allowed_origins, is_accepting_emails):
        account = self.accounts.get(account_id)
        if account is None:
            return None
        holder = self._find(lambda a: a.client_id == client_id)
        if holder and holder.account_id != account_id:
            raise Conflict("Client ID already taken")
        changes = {"client_id": client_id, "target_emails": list(target_emails)}
        if allowed_origins is not None:
            changes["allowed_origins"] = list(allowed_origins)
        if is_accepting_emails is not None:
            changes["is_accepting_emails"] = is_accepting_emails
        return self._touch(account, **changes)

    async def add_target_email(self, account_id, email):
        account = self.accounts.get(account_id)
        if account is None or email in account.target_emails:
            return None
        return self._touch(account, target_emails=[*account.target_emails, email])

    async def remove_target_email(self, account_id, email):
        account = self.accounts.get(account_id)
        if account is None or email not in account.target_emails:
            return None
        remaining = [item for item in account.target_emails if item != email]
        if not remaining:
            return None
        return self._touch(account, target_emails=remaining)

    async def delete_account(self, account_id):
        return self.accounts.pop(account_id, None) is not None


class FakeTransport:
    """Records outgoing messages; set ``fail`` to simulate an SMTP outage."""

    def __init__(self) -> None:
        self.sent: list[EmailMessage] = []
        self.fail = False

    async def send(self, message: EmailMessage) -> None:
        if self.fail:
            raise UpstreamMailError()
        self.sent.append(message)


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def service(repository, transport) -> AccountService:
    mailer = AccountMailer(transport, sender="relay@example.com", frontend_url="https://app.example.com")
    return AccountService(repository, PasswordHasher(rounds=1, workers=2), mailer)


@pytest.fixture
def dispatcher(repository, transport) -> RelayDispatcher:
    return RelayDispatcher(repository, transport, sender_address="relay@example.com")


@pytest.fixture
def api_client(service, dispatcher):
    """Provide a FastAPI test client with isolated state."""
    app = FastAPI()
    install_error_handlers(app)
    app.include_router(routes.router)
    app.include_router(relay.router)
    app.state.account_service = service
    app.state.relay_dispatcher = dispatcher
    app.state.rate_limiter = FixedWindowRateLimiter(max_requests=3, window_seconds=3600)

    with TestClient(app) as client:
        yield client


def token_from(message: EmailMessage, marker: str) -> str:
    """Extract the one-time token that follows ``marker`` in a notification body."""
    body = message.get_body(preferencelist=("plain",)).get_content()
    return body.split(marker, 1)[1].split()[0]
