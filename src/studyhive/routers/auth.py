"""
auth.py

API endpoints for registration, email verification, login sessions and
password management in the StudyHive backend.
Access and refresh tokens travel as httpOnly cookies; the refresh endpoint
also accepts the refresh token in the request body.
"""
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models, schemas
from ..auth import get_current_user
from ..database import get_db
from ..dependencies import auth_rate_limit
from ..errors import Unauthenticated
from ..services import accounts, tokens
from ..settings import settings
from ..utils import email_verification_content, envelope, forgot_password_content, send_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth")

VERIFICATION_SENT = "If the email exists, a verification link has been sent"
RESET_SENT = "If the email exists, a reset link has been sent"


def _cookie_options() -> dict:
    return {"httponly": True, "secure": bool(settings.cookie_secure), "samesite": "strict"}


def _set_session_cookies(response: Response, pair: tokens.TokenPair) -> None:
    response.set_cookie("accessToken", pair.access_token, max_age=settings.access_token_expire_minutes * 60, **_cookie_options())
    response.set_cookie("refreshToken", pair.refresh_token, max_age=settings.refresh_token_expire_days * 86400, **_cookie_options())


def _verification_url(token: str) -> str:
    return f"{settings.backend_url.rstrip('/')}/api/v1/auth/verify-email/{token}"


@router.post("/register", status_code=status.HTTP_201_CREATED, dependencies=[Depends(auth_rate_limit)])
async def register_user(
    user: schemas.UserCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    db_user, token = await accounts.register(db, user)

    background_tasks.add_task(
        send_email,
        db_user.email,
        "Verify your email",
        email_verification_content(db_user.name, _verification_url(token)),
        True,
    )

    return envelope(
        "User registered successfully and verification email has been sent to your mail",
        {"user": schemas.UserResponse.model_validate(db_user)},
    )


@router.get("/verify-email/{token}")
async def verify_email(token: str, db: AsyncSession = Depends(get_db)):
    await accounts.verify_email(db, token)
    return envelope("Email verified successfully", {"isEmailVerified": True})


@router.post("/resend-email-verification")
async def resend_email_verification(
    payload: schemas.EmailRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    issued = await accounts.issue_verification_token(db, payload.email)
    if issued:
        user, token = issued
        background_tasks.add_task(
            send_email,
            user.email,
            "Verify your email",
            email_verification_content(user.name, _verification_url(token)),
            True,
        )
    return envelope(VERIFICATION_SENT, {})


@router.post("/forgot-password", dependencies=[Depends(auth_rate_limit)])
async def forgot_password(
    payload: schemas.EmailRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    issued = await accounts.issue_password_reset_token(db, payload.email)
    if issued:
        user, token = issued
        reset_url = f"{settings.forgot_password_redirect_url.rstrip('/')}/{token}"
        background_tasks.add_task(
            send_email, user.email, "Reset your password", forgot_password_content(user.name, reset_url), True
        )
    return envelope(RESET_SENT, {})


@router.post("/reset-password/{token}", dependencies=[Depends(auth_rate_limit)])
async def reset_password(token: str, payload: schemas.ResetPassword, db: AsyncSession = Depends(get_db)):
    await accounts.reset_password(db, token, payload.new_password)
    return envelope("Password reset successfully", {})


@router.post("/login", dependencies=[Depends(auth_rate_limit)])
async def login_user(
    login_data: schemas.UserLogin,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    user = await accounts.authenticate(db, login_data.email, login_data.password)
    pair = await tokens.login(db, user)
    _set_session_cookies(response, pair)
    logger.info("User %s logged in", user.id)
    return envelope("User successfully logged in", {"user": schemas.UserResponse.model_validate(user)})


@router.post("/refresh-token")
async def refresh_access_token(
    request: Request,
    response: Response,
    payload: Optional[schemas.RefreshTokenRequest] = Body(None),
    db: AsyncSession = Depends(get_db),
):
    presented = request.cookies.get("refreshToken") or (payload.refresh_token if payload else None)
    if not presented:
        raise Unauthenticated("Unauthorized access")

    _, pair = await tokens.refresh(db, presented)
    _set_session_cookies(response, pair)
    return envelope("Access token successfully refreshed", {})


@router.get("/me")
async def read_current_user(current_user: models.User = Depends(get_current_user)):
    return envelope("Current user fetched successfully", {"user": schemas.UserResponse.model_validate(current_user)})


@router.post("/change-password")
async def change_password(
    payload: schemas.ChangePassword,
    current_user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await accounts.change_password(db, current_user, payload.old_password, payload.new_password)
    return envelope("Password changed successfully", {})


@router.post("/logout")
async def logout_user(
    response: Response,
    current_user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await tokens.logout(db, current_user.id)
    response.delete_cookie("accessToken", **_cookie_options())
    response.delete_cookie("refreshToken", **_cookie_options())
    return envelope("User logged out successfully", {})
