"""HTTP route definitions for account management and credentials."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..config import get_settings
from ..domain.account import Account
from ..domain.contracts import (
    ChangePasswordInput,
    ForgotPasswordInput,
    LoginInput,
    ProfileUpdate,
    RegisterInput,
    ResetPasswordInput,
    TargetEmailInput,
)
from ..domain.service import AccountService, Session
from ..security.session import SESSION_COOKIE, authenticate, extract_session_token

router = APIRouter(prefix="/auth", tags=["auth"])


class _Response(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = True


class MessageResponse(_Response):
    message: str


class ProfileResponse(_Response):
    """Serialised public view of an `Account`; never includes the password hash."""

    id: str
    email: str
    client_id: str | None
    target_emails: list[str]
    allowed_origins: list[str]
    is_verified: bool
    is_accepting_emails: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, account: Account) -> "ProfileResponse":
        """Build a response model from the domain aggregate."""
        return cls(**account.profile())


class SessionResponse(ProfileResponse):
    """Profile plus the session token, for clients that send it as a bearer header."""

    token: str
    expires_in: int

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        return cls(**session.account.profile(), token=session.token, expires_in=session.expires_in)


def get_service(request: Request) -> AccountService:
    """Resolve the `AccountService` stored on the FastAPI application state."""
    service: AccountService = request.app.state.account_service
    return service


async def current_account(request: Request, service: AccountService = Depends(get_service)) -> Account:
    """Dependency guarding session-only routes."""
    return await authenticate(service, extract_session_token(request))


def _set_session_cookie(response: Response, session: Session) -> None:
    settings = get_settings()
    response.set_cookie(
        SESSION_COOKIE,
        session.token,
        max_age=session.expires_in,
        httponly=True,
        secure=settings.is_production,
        samesite="none" if settings.is_production else "lax",
    )


def _clear_session_cookie(response: Response) -> None:
    settings = get_settings()
    response.delete_cookie(
        SESSION_COOKIE,
        httponly=True,
        secure=settings.is_production,
        samesite="none" if settings.is_production else "lax",
    )


@router.post("/register", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def register(
    response: Response,
    payload: RegisterInput,
    service: AccountService = Depends(get_service),
) -> SessionResponse:
    """Create an account, send the verification email and open a session."""
    session = await service.register(payload)
    _set_session_cookie(response, session)
    return SessionResponse.from_session(session)


@router.post("/login", response_model=SessionResponse)
async def login(
    response: Response,
    payload: LoginInput,
    service: AccountService = Depends(get_service),
) -> SessionResponse:
    session = await service.login(payload)
    _set_session_cookie(response, session)
    return SessionResponse.from_session(session)


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response) -> MessageResponse:
    """Sessions are stateless; logging out only tells the client to drop its cookie."""
    _clear_session_cookie(response)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=ProfileResponse)
async def get_me(account: Account = Depends(current_account)) -> ProfileResponse:
    return ProfileResponse.from_domain(account)


@router.delete("/me", response_model=MessageResponse)
async def delete_me(
    response: Response,
    account: Account = Depends(current_account),
    service: AccountService = Depends(get_service),
) -> MessageResponse:
    await service.delete_account(account.account_id)
    _clear_session_cookie(response)
    return MessageResponse(message="User removed")


@router.put("/profile", response_model=ProfileResponse)
async def update_profile(
    payload: ProfileUpdate,
    account: Account = Depends(current_account),
    service: AccountService = Depends(get_service),
) -> ProfileResponse:
    """Replace the relay settings (client id, destinations, origins, accept switch)."""
    updated = await service.update_profile(account.account_id, payload)
    return ProfileResponse.from_domain(updated)


@router.post("/profile/target-emails", response_model=ProfileResponse)
async def add_target_email(
    payload: TargetEmailInput,
    account: Account = Depends(current_account),
    service: AccountService = Depends(get_service),
) -> ProfileResponse:
    updated = await service.add_target_email(account.account_id, payload)
    return ProfileResponse.from_domain(updated)


@router.delete("/profile/target-emails/{email}", response_model=ProfileResponse)
async def remove_target_email(
    email: str,
    account: Account = Depends(current_account),
    service: AccountService = Depends(get_service),
) -> ProfileResponse:
    updated = await service.remove_target_email(account.account_id, email)
    return ProfileResponse.from_domain(updated)


@router.get("/verify-email/{token}", response_model=MessageResponse)
async def verify_email(token: str, service: AccountService = Depends(get_service)) -> MessageResponse:
    await service.verify_email(token)
    return MessageResponse(message="Email verified successfully")


@router.post("/resend-verification", response_model=MessageResponse)
async def resend_verification(
    account: Account = Depends(current_account),
    service: AccountService = Depends(get_service),
) -> MessageResponse:
    await service.resend_verification(account.account_id)
    return MessageResponse(message="Verification email sent")


@router.put("/change-password", response_model=MessageResponse)
async def change_password(
    payload: ChangePasswordInput,
    account: Account = Depends(current_account),
    service: AccountService = Depends(get_service),
) -> MessageResponse:
    await service.change_password(account.account_id, payload)
    return MessageResponse(message="Password updated successfully")


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    payload: ForgotPasswordInput,
    service: AccountService = Depends(get_service),
) -> MessageResponse:
    await service.forgot_password(payload)
    return MessageResponse(message="Password reset email sent")


@router.post("/reset-password/{token}", response_model=MessageResponse)
async def reset_password(
    token: str,
    payload: ResetPasswordInput,
    service: AccountService = Depends(get_service),
) -> MessageResponse:
    await service.reset_password(token, payload)
    return MessageResponse(message="Password reset successfully")
