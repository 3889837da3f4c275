"""Domain-level request contracts shared by multiple layers.

Each operation receives one of these models; constructing it is the validation
step, so a service method never sees malformed input. Messages raised here are
the ones joined into the API's failure message.
"""

from __future__ import annotations

import re
from typing import Annotated

from email_validator import EmailNotValidError, validate_email
from pydantic import AfterValidator, AnyHttpUrl, BaseModel, ConfigDict, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

MIN_PASSWORD_LENGTH = 6
MIN_CLIENT_ID_LENGTH = 3

_CLIENT_ID_PATTERN = re.compile(r"^[A-Za-z0-9._~-]+$")
_http_url = TypeAdapter(AnyHttpUrl)


def is_valid_email(value: object) -> bool:
    """Return ``True`` when ``value`` is a syntactically valid email address."""
    if not isinstance(value, str):
        return False
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def _email(value: str) -> str:
    value = value.strip()
    if not is_valid_email(value):
        raise PydanticCustomError("invalid_field", "Invalid email address")
    return value


def _password(value: str) -> str:
    if len(value) < MIN_PASSWORD_LENGTH:
        raise PydanticCustomError(
            "invalid_field", f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )
    return value


EmailAddress = Annotated[str, AfterValidator(_email)]
Password = Annotated[str, AfterValidator(_password)]


class _Contract(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class RegisterInput(_Contract):
    """Validated inputs required to register an account."""

    email: EmailAddress
    password: Password


class LoginInput(_Contract):
    email: EmailAddress
    password: str


class ForgotPasswordInput(_Contract):
    email: EmailAddress


class ResetPasswordInput(_Contract):
    password: Password


class ChangePasswordInput(_Contract):
    current_password: str
    new_password: Password


class TargetEmailInput(_Contract):
    email: EmailAddress


class ProfileUpdate(_Contract):
    """Owner-editable relay settings; list fields replace the stored lists wholesale."""

    client_id: str
    target_emails: list[EmailAddress]
    allowed_origins: list[str] | None = None
    is_accepting_emails: bool | None = None

    @field_validator("client_id")
    @classmethod
    def check_client_id(cls, value: str) -> str:
        value = value.strip()
        if len(value) < MIN_CLIENT_ID_LENGTH:
            raise PydanticCustomError(
                "invalid_field", f"Client ID must be at least {MIN_CLIENT_ID_LENGTH} characters"
            )
        if not _CLIENT_ID_PATTERN.match(value):
            raise PydanticCustomError(
                "invalid_field",
                "Client ID may only contain letters, digits, '.', '_', '~' and '-'",
            )
        return value

    @field_validator("target_emails")
    @classmethod
    def check_target_emails(cls, value: list[str]) -> list[str]:
        if not value:
            raise PydanticCustomError("invalid_field", "At least one target email is required")
        return value

    @field_validator("allowed_origins")
    @classmethod
    def check_allowed_origins(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        origins = []
        for item in value:
            item = item.strip()
            try:
                _http_url.validate_python(item)
            except PydanticValidationError:
                raise PydanticCustomError(
                    "invalid_field", "Invalid origin URL: {origin}", {"origin": item}
                ) from None
            origins.append(item)
        return origins
