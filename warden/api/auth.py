"""Auth API router: login, register, email confirmation, password reset, refresh, logout, me."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from warden.core.config import settings
from warden.core.exceptions import ForbiddenError, InfrastructureError, UnauthorizedError
from warden.core.security import get_current_principal, get_current_user_id
from warden.db.session import get_db
from warden.models.user import User
from warden.schemas.schemas import (
    AuthResponse, ChangePasswordRequest, ConfirmEmailRequest, EmailRequest,
    ExternalLoginRequest, IssuedSession, LoginRequest, MessageResponse, Principal,
    RegisterRequest, ResetPasswordRequest, UserOut,
)
from warden.services.auth_service import auth_service
from warden.services.identity_service import identity_service
from warden.services.session_service import session_service

logger = logging.getLogger("warden")

router = APIRouter(prefix="/auth", tags=["auth"])


def client_ip(request: Request) -> Optional[str]:
    """Client address.

    The first X-Forwarded-For hop is used only when the direct peer is one
    of ``TRUSTED_PROXIES``; otherwise the header is ignored.
    """
    peer = request.client.host if request.client else None
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for and peer in settings.TRUSTED_PROXIES:
        return forwarded_for.split(",")[0].strip() or peer
    return peer


def device_info(request: Request) -> Optional[str]:
    return request.headers.get("user-agent")


def set_refresh_cookie(response: Response, issued: IssuedSession) -> None:
    """Hand the refresh token to the browser as an HttpOnly cookie scoped to /api/auth."""
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value=issued.refresh_token,
        max_age=settings.REFRESH_TOKEN_EXPIRY_DAYS * 24 * 3600,
        path=settings.REFRESH_COOKIE_PATH,
        secure=settings.REFRESH_COOKIE_SECURE,
        httponly=True,
        samesite=settings.REFRESH_COOKIE_SAMESITE,
    )


def clear_refresh_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        path=settings.REFRESH_COOKIE_PATH,
        secure=settings.REFRESH_COOKIE_SECURE,
        httponly=True,
        samesite=settings.REFRESH_COOKIE_SAMESITE,
    )


def _auth_response(response: Response, issued: IssuedSession, user: User) -> AuthResponse:
    set_refresh_cookie(response, issued)
    return AuthResponse(
        access_token=issued.access_token,
        access_token_expires_at=issued.access_token_expires_at,
        user=identity_service.to_user_out(user),
    )


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest, request: Request, response: Response, db: Session = Depends(get_db)
):
    """Authenticate with email and password."""
    issued, user = auth_service.login(
        db, body.email, body.password, client_ip(request), device_info(request)
    )
    return _auth_response(response, issued, user)


@router.post("/register", response_model=AuthResponse)
async def register(
    body: RegisterRequest, request: Request, response: Response, db: Session = Depends(get_db)
):
    """Register a new user and sign them in."""
    issued, user = auth_service.register(
        db, body.email, body.password, body.display_name,
        client_ip(request), device_info(request),
    )
    return _auth_response(response, issued, user)


@router.post("/external-login", response_model=AuthResponse)
async def external_login(
    body: ExternalLoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    """Sign in with an identity verified by an external provider."""
    issued, user = auth_service.external_login(
        db, body.provider, body.provider_key, body.email, body.display_name,
        body.image_url, client_ip(request), device_info(request),
    )
    return _auth_response(response, issued, user)


@router.post("/refresh", response_model=AuthResponse)
async def refresh(request: Request, response: Response, db: Session = Depends(get_db)):
    """Rotate the refresh cookie and return a new access token."""
    token = request.cookies.get(settings.REFRESH_COOKIE_NAME, "")
    try:
        issued = session_service.refresh(db, token, client_ip(request), device_info(request))
    except UnauthorizedError as exc:
        # Invalid, expired and reused tokens all look the same from outside
        logger.info("Refresh rejected: %s", type(exc).__name__)
        rejected = JSONResponse(status_code=401, content={"detail": "Not authenticated"})
        clear_refresh_cookie(rejected)
        return rejected
    except ForbiddenError as exc:
        # Disabled account
        rejected = JSONResponse(status_code=403, content={"detail": exc.message})
        clear_refresh_cookie(rejected)
        return rejected

    user = auth_service.get_user(db, issued.user_id)
    return _auth_response(response, issued, user)


@router.post("/logout", response_model=MessageResponse)
async def logout(request: Request, response: Response, db: Session = Depends(get_db)):
    """Revoke the refresh cookie. Always succeeds."""
    try:
        session_service.logout(db, request.cookies.get(settings.REFRESH_COOKIE_NAME))
    except InfrastructureError:
        logger.exception("Logout could not revoke refresh token")
    clear_refresh_cookie(response)
    return MessageResponse(message="Logged out successfully")


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    body: ChangePasswordRequest,
    response: Response,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Change the caller's password and sign out all of their sessions."""
    auth_service.change_password(db, principal.user_id, body.current_password, body.new_password)
    clear_refresh_cookie(response)
    return MessageResponse(message="Password changed")


@router.get("/me", response_model=UserOut)
async def get_me(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    """Get current user profile."""
    return identity_service.to_user_out(auth_service.get_user(db, user_id))


@router.post("/confirm-email", response_model=MessageResponse)
async def confirm_email(body: ConfirmEmailRequest, db: Session = Depends(get_db)):
    """Confirm an email address with the token from the confirmation link."""
    auth_service.confirm_email(db, body.email, body.token)
    return MessageResponse(message="Email confirmed")


@router.post("/resend-confirmation", response_model=MessageResponse)
async def resend_confirmation(body: EmailRequest, db: Session = Depends(get_db)):
    auth_service.resend_confirmation(db, body.email)
    return MessageResponse(message="If the account exists and is unconfirmed, a new link has been sent")


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(body: EmailRequest, db: Session = Depends(get_db)):
    """Start a password reset. The answer is the same whether or not the account exists."""
    auth_service.forgot_password(db, body.email)
    return MessageResponse(message="If the account exists, a reset link has been sent")


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    body: ResetPasswordRequest, response: Response, db: Session = Depends(get_db)
):
    """Set a new password from a reset link and sign out every session."""
    auth_service.reset_password(db, body.email, body.token, body.new_password)
    clear_refresh_cookie(response)
    return MessageResponse(message="Password has been reset")
