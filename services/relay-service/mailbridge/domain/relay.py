"""Relay pipeline turning an anonymous form submission into a notification email.

Steps, in order: resolve the tenant by ``clientId``, enforce its accept switch
and origin allow-list, require at least one destination, strip markup from the
submitted values, build the message and hand it to the SMTP transport. A
submission either reaches the transport or fails as a whole; no account state
is changed on any path.
"""

from __future__ import annotations

import html
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import formataddr
from typing import Any, Mapping, Protocol

import bleach

from .account import Account
from .contracts import is_valid_email
from .errors import InvalidClientId, NoTargets, NotAccepting, OriginNotAllowed, ServiceError
from .origins import origin_allowed
from ..metrics import RELAY_REQUESTS

logger = logging.getLogger(__name__)

FALLBACK_SENDER_NAME = "Form Submission"


class AccountLookup(Protocol):
    async def get_by_client_id(self, client_id: str) -> Account | None: ...


class Transport(Protocol):
    async def send(self, message: EmailMessage) -> None: ...


def sanitize_value(value: Any) -> str:
    """Render a submitted value as plain text with any HTML markup stripped."""
    if isinstance(value, str):
        # bleach escapes what it keeps; the relay body is text/plain
        cleaned = bleach.clean(value, tags=[], attributes={}, strip=True, strip_comments=True)
        return html.unescape(cleaned)
    return json.dumps(value, ensure_ascii=False, default=str)


def _label(key: str) -> str:
    return key[:1].upper() + key[1:]


@dataclass(slots=True)
class Submission:
    """A relay request after rate limiting and body parsing."""

    client_id: str
    payload: Mapping[str, Any]
    origin: str | None = None


class RelayDispatcher:
    """Resolve a tenant, apply its policy and forward the submission by email."""

    def __init__(self, accounts: AccountLookup, transport: Transport, *, sender_address: str) -> None:
        self._accounts = accounts
        self._transport = transport
        self._sender_address = sender_address

    async def dispatch(self, submission: Submission) -> None:
        try:
            account = await self._resolve(submission)
            message = self.build_message(account, submission)
            await self._transport.send(message)
        except ServiceError as exc:
            RELAY_REQUESTS.labels(outcome=type(exc).__name__).inc()
            logger.info("relay to %s rejected: %s", submission.client_id, exc.message)
            raise
        RELAY_REQUESTS.labels(outcome="sent").inc()
        logger.info(
            "relayed submission for %s to %d recipient(s)", submission.client_id, len(account.target_emails)
        )

    async def _resolve(self, submission: Submission) -> Account:
        account = await self._accounts.get_by_client_id(submission.client_id)
        if account is None:
            raise InvalidClientId()
        if not account.is_accepting_emails:
            raise NotAccepting()
        if not origin_allowed(account.allowed_origins, submission.origin):
            raise OriginNotAllowed(submission.origin or "")
        if not account.target_emails:
            raise NoTargets()
        return account

    def build_message(
        self, account: Account, submission: Submission, *, now: datetime | None = None
    ) -> EmailMessage:
        payload = submission.payload
        timestamp = (now or datetime.now(timezone.utc)).isoformat()

        lines = [
            "You have received a new submission:",
            "",
            f"Website Origin: {submission.origin or 'Unknown'}",
            f"Timestamp: {timestamp}",
            "",
            "--- Submission Data ---",
        ]
        lines.extend(
            f"{_label(sanitize_value(key))}: {sanitize_value(value)}" for key, value in payload.items()
        )

        name = payload.get("name")
        sender_name = " ".join(sanitize_value(name).split()) if isinstance(name, str) else ""
        reply_to = payload.get("email")

        message = EmailMessage()
        message["From"] = formataddr((sender_name or FALLBACK_SENDER_NAME, self._sender_address))
        message["To"] = ", ".join(account.target_emails)
        if is_valid_email(reply_to):
            message["Reply-To"] = reply_to.strip()
        message["Subject"] = f"New Submission from {submission.origin or 'Unknown Origin'}"
        message.set_content("\n".join(lines) + "\n")
        return message
