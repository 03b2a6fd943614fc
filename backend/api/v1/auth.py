"""Authentication endpoints."""

from __future__ import annotations

import logging
import re

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, get_db, get_mailer
from core import settings
from models import User
from services.auth import (
    PublicUser,
    clear_token_cookies,
    extract_access_token,
    extract_refresh_token,
    peek_user_id,
    purge_expired_tokens,
    set_token_cookies,
)
from services.auth import email_change, password_reset, registration, sessions
from services.email import EmailSender

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")
PASSWORD_SPECIAL_CHARACTERS = "@$!%*?&"
MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128


def _validate_password_strength(value: str) -> str:
    if not any(char.islower() for char in value):
        raise ValueError("Password must contain a lowercase letter")
    if not any(char.isupper() for char in value):
        raise ValueError("Password must contain an uppercase letter")
    if not any(char.isdigit() for char in value):
        raise ValueError("Password must contain a digit")
    if not any(char in PASSWORD_SPECIAL_CHARACTERS for char in value):
        raise ValueError(
            f"Password must contain one of {PASSWORD_SPECIAL_CHARACTERS}"
        )
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=MAX_PASSWORD_LENGTH)
    remember_me: bool = False


class EmailRequest(CamelModel):
    email: EmailStr


class OtpRequest(CamelModel):
    otp: str = Field(min_length=1, max_length=16)


class EmailOtpRequest(OtpRequest):
    email: EmailStr


class RegisterDetailsRequest(CamelModel):
    email: EmailStr
    username: str = Field(min_length=3, max_length=30)
    password: str = Field(min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH)
    confirm_password: str = Field(max_length=MAX_PASSWORD_LENGTH)

    @field_validator("username")
    @classmethod
    def _check_username(cls, value: str) -> str:
        if not USERNAME_PATTERN.fullmatch(value):
            raise ValueError("Username may only contain letters, digits and underscores")
        return value

    @field_validator("password")
    @classmethod
    def _check_password(cls, value: str) -> str:
        return _validate_password_strength(value)


class ResetPasswordRequest(CamelModel):
    email: EmailStr
    new_password: str = Field(min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH)
    confirm_password: str = Field(max_length=MAX_PASSWORD_LENGTH)

    @field_validator("new_password")
    @classmethod
    def _check_password(cls, value: str) -> str:
        return _validate_password_strength(value)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(min_length=1, max_length=MAX_PASSWORD_LENGTH)
    new_password: str = Field(min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH)
    confirm_password: str = Field(max_length=MAX_PASSWORD_LENGTH)

    @field_validator("new_password")
    @classmethod
    def _check_password(cls, value: str) -> str:
        return _validate_password_strength(value)


class NewEmailRequest(CamelModel):
    new_email: EmailStr


class ConfirmEmailChangeRequest(NewEmailRequest):
    new_password: str = Field(min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH)

    @field_validator("new_password")
    @classmethod
    def _check_password(cls, value: str) -> str:
        return _validate_password_strength(value)


class UserEnvelope(CamelModel):
    user: PublicUser


class MessageResponse(CamelModel):
    message: str


class OtpSentResponse(MessageResponse):
    expires_in_minutes: int


class OtpVerifiedResponse(MessageResponse):
    can_proceed: bool = True


class RegisteredResponse(MessageResponse):
    user: PublicUser


class ReauthResponse(MessageResponse):
    requires_reauth: bool


class CleanupResponse(MessageResponse):
    deleted: dict[str, int]


def _otp_sent(message: str) -> OtpSentResponse:
    return OtpSentResponse(message=message, expires_in_minutes=settings.otp_expire_minutes)


@router.post("/login", response_model=UserEnvelope)
async def login(
    payload: LoginRequest,
    response: Response,
    session: AsyncSession = Depends(get_db),
) -> UserEnvelope:
    user, tokens = await sessions.login(
        session,
        email=str(payload.email),
        password=payload.password,
        remember_me=payload.remember_me,
    )
    set_token_cookies(response, tokens)
    return UserEnvelope(user=PublicUser.from_user(user))


@router.post("/refresh", response_model=UserEnvelope)
async def refresh_tokens(
    request: Request,
    response: Response,
    session: AsyncSession = Depends(get_db),
) -> UserEnvelope:
    user, tokens = await sessions.refresh(session, extract_refresh_token(request))
    set_token_cookies(response, tokens)
    return UserEnvelope(user=PublicUser.from_user(user))


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    session: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await sessions.logout(
        session,
        extract_refresh_token(request),
        user_id=peek_user_id(extract_access_token(request)),
    )
    clear_token_cookies(response)
    return MessageResponse(message="Logged out successfully")


@router.get("/profile", response_model=UserEnvelope)
async def profile(current_user: User = Depends(get_current_user)) -> UserEnvelope:
    return UserEnvelope(user=PublicUser.from_user(current_user))


@router.post("/register/email", response_model=OtpSentResponse)
async def register_email(
    payload: EmailRequest,
    session: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_mailer),
) -> OtpSentResponse:
    await registration.send_registration_otp(session, sender, email=str(payload.email))
    return _otp_sent("Verification code sent to your email")


@router.post("/register/otp", response_model=OtpVerifiedResponse)
async def register_otp(
    payload: EmailOtpRequest,
    session: AsyncSession = Depends(get_db),
) -> OtpVerifiedResponse:
    await registration.verify_registration_otp(session, email=str(payload.email), otp=payload.otp)
    return OtpVerifiedResponse(message="Email verified successfully")


@router.post(
    "/register/details",
    status_code=status.HTTP_201_CREATED,
    response_model=RegisteredResponse,
)
async def register_details(
    payload: RegisterDetailsRequest,
    session: AsyncSession = Depends(get_db),
) -> RegisteredResponse:
    user = await registration.register_details(
        session,
        email=str(payload.email),
        username=payload.username,
        password=payload.password,
        confirm_password=payload.confirm_password,
    )
    return RegisteredResponse(message="Registration completed", user=PublicUser.from_user(user))


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    payload: EmailRequest,
    session: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_mailer),
) -> MessageResponse:
    await password_reset.forgot_password(session, sender, email=str(payload.email))
    return MessageResponse(
        message="If an account exists for this email, a reset code has been sent"
    )


@router.post("/verify-otp", response_model=OtpVerifiedResponse)
async def verify_otp(
    payload: EmailOtpRequest,
    session: AsyncSession = Depends(get_db),
) -> OtpVerifiedResponse:
    await password_reset.verify_reset_otp(session, email=str(payload.email), otp=payload.otp)
    return OtpVerifiedResponse(message="OTP verified successfully")


@router.post("/reset-password", response_model=ReauthResponse)
async def reset_password(
    payload: ResetPasswordRequest,
    session: AsyncSession = Depends(get_db),
) -> ReauthResponse:
    revoked = await password_reset.reset_password(
        session,
        email=str(payload.email),
        new_password=payload.new_password,
        confirm_password=payload.confirm_password,
    )
    return ReauthResponse(message="Password reset successfully", requires_reauth=revoked)


@router.post("/change-password", response_model=ReauthResponse)
async def change_password(
    payload: ChangePasswordRequest,
    response: Response,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
) -> ReauthResponse:
    await sessions.change_password(
        session,
        current_user,
        current_password=payload.current_password,
        new_password=payload.new_password,
        confirm_password=payload.confirm_password,
    )
    clear_token_cookies(response)
    return ReauthResponse(
        message="Password changed successfully, please log in again",
        requires_reauth=True,
    )


@router.post("/change-email/verify-current", response_model=OtpSentResponse)
async def change_email_verify_current(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_mailer),
) -> OtpSentResponse:
    await email_change.start_email_change(session, sender, current_user)
    return _otp_sent("Verification code sent to your current email")


@router.post("/change-email/verify-current-otp", response_model=OtpVerifiedResponse)
async def change_email_verify_current_otp(
    payload: OtpRequest,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
) -> OtpVerifiedResponse:
    await email_change.verify_current_email(session, current_user, otp=payload.otp)
    return OtpVerifiedResponse(message="Current email verified")


@router.post("/change-email/verify-new", response_model=OtpSentResponse)
async def change_email_verify_new(
    payload: NewEmailRequest,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_mailer),
) -> OtpSentResponse:
    await email_change.request_new_email(
        session, sender, current_user, new_email=str(payload.new_email)
    )
    return _otp_sent("Verification code sent to your new email")


@router.post("/change-email/verify-new-otp", response_model=OtpVerifiedResponse)
async def change_email_verify_new_otp(
    payload: OtpRequest,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
) -> OtpVerifiedResponse:
    await email_change.verify_new_email(session, current_user, otp=payload.otp)
    return OtpVerifiedResponse(message="New email verified")


@router.post("/change-email/confirm", response_model=ReauthResponse)
async def change_email_confirm(
    payload: ConfirmEmailChangeRequest,
    response: Response,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
) -> ReauthResponse:
    await email_change.confirm_email_change(
        session,
        current_user,
        new_email=str(payload.new_email),
        new_password=payload.new_password,
    )
    clear_token_cookies(response)
    return ReauthResponse(
        message="Email changed successfully, please log in again",
        requires_reauth=True,
    )


@router.post("/tokens/cleanup", response_model=CleanupResponse)
async def cleanup_tokens(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
) -> CleanupResponse:
    deleted = await purge_expired_tokens(session)
    logger.info("Manual token cleanup", extra={"user_id": current_user.id})
    return CleanupResponse(message="Expired tokens cleaned up", deleted=deleted)
