from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(slots=True)
class Account:
    """Aggregate root for a relay tenant and its delivery policy."""

    account_id: str
    email: str
    password_hash: str
    created_at: datetime
    updated_at: datetime
    client_id: str | None = None
    target_emails: list[str] = field(default_factory=list)
    allowed_origins: list[str] = field(default_factory=list)
    is_verified: bool = False
    is_accepting_emails: bool = True
    verification_token: str | None = None
    verification_token_expire: datetime | None = None
    reset_password_token: str | None = None
    reset_password_expire: datetime | None = None

    def profile(self) -> dict[str, Any]:
        """Return the public fields of the account; secrets and tokens are omitted."""
        return {
            "id": self.account_id,
            "email": self.email,
            "client_id": self.client_id,
            "target_emails": list(self.target_emails),
            "allowed_origins": list(self.allowed_origins),
            "is_verified": self.is_verified,
            "is_accepting_emails": self.is_accepting_emails,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
