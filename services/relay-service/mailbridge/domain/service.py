"""Account service orchestrating credentials, one-time tokens and relay settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from .account import Account
from .contracts import (
    ChangePasswordInput,
    ForgotPasswordInput,
    LoginInput,
    ProfileUpdate,
    RegisterInput,
    ResetPasswordInput,
    TargetEmailInput,
)
from .errors import (
    AlreadyVerified,
    Conflict,
    InvalidOrExpired,
    NotFound,
    Unauthorized,
    UpstreamMailError,
    ValidationError,
)
from ..mail import AccountMailer
from ..repository import AccountRepository
from ..security.passwords import PasswordHasher
from ..security.tokens import generate_one_time_token, issue_session_token

logger = logging.getLogger(__name__)

VERIFICATION_TOKEN_TTL = timedelta(hours=24)
RESET_TOKEN_TTL = timedelta(minutes=10)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class Session:
    """An authenticated account together with the bearer credential issued for it."""

    account: Account
    token: str
    expires_in: int


class AccountService:
    """Registration, login, token lifecycles and owner profile updates."""

    def __init__(
        self,
        repository: AccountRepository,
        hasher: PasswordHasher,
        mailer: AccountMailer,
    ) -> None:
        """Store dependencies used to orchestrate persistence, hashing and notifications."""
        self._repository = repository
        self._hasher = hasher
        self._mailer = mailer

    async def _prepare_password(self, password: str) -> str:
        """Hash a plaintext password ahead of any write that touches the password column."""
        return await self._hasher.hash(password)

    def _open_session(self, account: Account) -> Session:
        token, expires_in = issue_session_token(subject=account.account_id)
        return Session(account=account, token=token, expires_in=expires_in)

    async def register(self, payload: RegisterInput) -> Session:
        """Create an unverified account, send a best-effort welcome email and open a session."""
        if await self._repository.get_by_email(payload.email) is not None:
            raise Conflict("User already exists")

        password_hash = await self._prepare_password(payload.password)
        token = generate_one_time_token()
        account = await self._repository.create_account(
            email=payload.email,
            password_hash=password_hash,
            verification_token=token,
            verification_token_expire=_utcnow() + VERIFICATION_TOKEN_TTL,
        )
        logger.info("account %s registered", account.account_id)

        try:
            await self._mailer.send_verification(account.email, token, welcome=True)
        except UpstreamMailError:
            logger.warning("welcome email for account %s could not be sent", account.account_id)

        return self._open_session(account)

    async def login(self, payload: LoginInput) -> Session:
        account = await self._repository.get_by_email(payload.email)
        if account is None:
            await self._hasher.dummy_verify()
            raise Unauthorized("Invalid email or password")
        if not await self._hasher.verify(payload.password, account.password_hash):
            raise Unauthorized("Invalid email or password")
        return self._open_session(account)

    async def get_account(self, account_id: str) -> Account:
        account = await self._repository.get_account(account_id)
        if account is None:
            raise NotFound("User not found")
        return account

    async def delete_account(self, account_id: str) -> None:
        if not await self._repository.delete_account(account_id):
            raise NotFound("User not found")
        logger.info("account %s deleted", account_id)

    async def verify_email(self, token: str) -> Account:
        """Redeem a verification token; it works once and only before it expires."""
        account = await self._repository.redeem_verification_token(token, _utcnow())
        if account is None:
            raise InvalidOrExpired("Invalid or expired token")
        logger.info("account %s verified its email", account.account_id)
        return account

    async def resend_verification(self, account_id: str) -> None:
        account = await self.get_account(account_id)
        if account.is_verified:
            raise AlreadyVerified("Email already verified")

        token = generate_one_time_token()
        await self._repository.set_verification_token(
            account.account_id, token, _utcnow() + VERIFICATION_TOKEN_TTL
        )
        await self._mailer.send_verification(account.email, token)

    async def change_password(self, account_id: str, payload: ChangePasswordInput) -> None:
        account = await self.get_account(account_id)
        if not await self._hasher.verify(payload.current_password, account.password_hash):
            raise Unauthorized("Invalid current password")
        password_hash = await self._prepare_password(payload.new_password)
        await self._repository.update_password(account.account_id, password_hash)
        logger.info("account %s changed its password", account.account_id)

    async def forgot_password(self, payload: ForgotPasswordInput) -> None:
        """Issue a short-lived reset token; if it cannot be delivered it is withdrawn."""
        account = await self._repository.get_by_email(payload.email)
        if account is None:
            raise NotFound("User not found")

        token = generate_one_time_token()
        await self._repository.set_reset_token(account.account_id, token, _utcnow() + RESET_TOKEN_TTL)
        try:
            await self._mailer.send_password_reset(account.email, token)
        except UpstreamMailError as exc:
            await self._repository.set_reset_token(account.account_id, None, None)
            raise UpstreamMailError("Email could not be sent") from exc

    async def reset_password(self, token: str, payload: ResetPasswordInput) -> None:
        """Store a new password for the holder of a live reset token.

        Unknown or expired tokens are rejected before any hashing work; the
        conditional redemption still decides the race between two resets.
        """
        if await self._repository.get_by_reset_token(token, _utcnow()) is None:
            raise InvalidOrExpired("Invalid or expired token")
        password_hash = await self._prepare_password(payload.password)
        account = await self._repository.redeem_reset_token(token, password_hash, _utcnow())
        if account is None:
            raise InvalidOrExpired("Invalid or expired token")
        logger.info("account %s reset its password", account.account_id)

    async def update_profile(self, account_id: str, payload: ProfileUpdate) -> Account:
        """Replace the relay settings of an account."""
        holder = await self._repository.get_by_client_id(payload.client_id)
        if holder is not None and holder.account_id != account_id:
            raise Conflict("Client ID already taken")

        account = await self._repository.update_profile(
            account_id,
            client_id=payload.client_id,
            target_emails=list(payload.target_emails),
            allowed_origins=list(payload.allowed_origins) if payload.allowed_origins is not None else None,
            is_accepting_emails=payload.is_accepting_emails,
        )
        if account is None:
            raise NotFound("User not found")
        return account

    async def add_target_email(self, account_id: str, payload: TargetEmailInput) -> Account:
        account = await self.get_account(account_id)
        if payload.email in account.target_emails:
            raise Conflict("Target email already configured")
        updated = await self._repository.add_target_email(account_id, payload.email)
        if updated is None:
            raise Conflict("Target email already configured")
        return updated

    async def remove_target_email(self, account_id: str, email: str) -> Account:
        """Remove one destination; the last remaining destination cannot be removed."""
        account = await self.get_account(account_id)
        if email not in account.target_emails:
            raise NotFound("Target email not found")
        if len(account.target_emails) == 1:
            raise ValidationError("At least one target email is required")
        updated = await self._repository.remove_target_email(account_id, email)
        if updated is None:
            raise ValidationError("At least one target email is required")
        return updated
