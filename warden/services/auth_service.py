"""Auth service: login, registration, external login, account security actions."""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from warden.core.exceptions import (
    ForbiddenError, InvalidCredentialError, ResourceNotFoundError, ValidationError,
)
from warden.core.security import hash_password, utcnow
from warden.models.user import User
from warden.schemas.schemas import IssuedSession
from warden.services.account_token_service import (
    EMAIL_CONFIRMATION, PASSWORD_RESET, account_token_service,
)
from warden.services.audit_service import audit_service
from warden.services.identity_service import identity_service
from warden.services.session_service import session_service

logger = logging.getLogger("warden")


class AuthService:
    """Handles primary authentication and hands off to the session service."""

    @staticmethod
    def login(
        db: Session,
        email: str,
        password: str,
        ip: Optional[str] = None,
        device: Optional[str] = None,
    ) -> Tuple[IssuedSession, User]:
        """Authenticate with email and password and issue a session.

        Raises:
            InvalidCredentialError: unknown email or wrong password.
            ForbiddenError: account disabled, email unconfirmed, or locked out.
        """
        user = identity_service.find_by_email(db, email)
        if user is None:
            logger.warning("Failed login attempt for %s", email)
            raise InvalidCredentialError("Invalid email or password")

        if not user.is_active:
            raise ForbiddenError("This account has been disabled")

        if not user.email_confirmed:
            raise ForbiddenError("Please confirm your email address before logging in")

        now = utcnow()
        if identity_service.is_locked_out(user, now):
            logger.warning("Locked out user %s attempted login", email)
            raise ForbiddenError("Account is locked. Please try again later.")

        if not identity_service.verify_password(user, password):
            logger.warning("Failed login attempt for %s", email)
            raise InvalidCredentialError("Invalid email or password")

        user.last_login_at = now
        db.commit()
        logger.info("User %s logged in", user.id)

        return session_service.issue_session(db, user.id, ip, device), user

    @staticmethod
    def register(
        db: Session,
        email: str,
        password: str,
        display_name: Optional[str] = None,
        ip: Optional[str] = None,
        device: Optional[str] = None,
    ) -> Tuple[IssuedSession, User]:
        """Create an account with the default role and sign it in.

        The email stays unconfirmed and a confirmation link is sent. Later
        password logins are refused until the link is used.
        """
        user = identity_service.create_user(db, email, password, display_name)
        logger.info("User %s registered", user.id)
        AuthService.send_confirmation(db, user)
        return session_service.issue_session(db, user.id, ip, device), user

    @staticmethod
    def send_confirmation(db: Session, user: User) -> None:
        token = account_token_service.issue(db, user, EMAIL_CONFIRMATION)
        account_token_service.deliver(user.email, EMAIL_CONFIRMATION, token)

    @staticmethod
    def confirm_email(db: Session, email: str, token: str) -> User:
        """Confirm an email address with the token from the confirmation link.

        Raises:
            ValidationError: unknown email, or a bad, expired or used token.
        """
        user = identity_service.find_by_email(db, email)
        if user is None:
            raise ValidationError("Invalid or expired token")
        if user.email_confirmed:
            return user

        account_token_service.consume(db, user, EMAIL_CONFIRMATION, token)
        identity_service.confirm_email(db, user)
        logger.info("User %s confirmed their email", user.id)
        audit_service.log(
            db, actor_id=user.id, action="user.email_confirmed",
            resource_type="user", resource_id=str(user.id),
        )
        return user

    @staticmethod
    def resend_confirmation(db: Session, email: str) -> None:
        """Send a fresh confirmation link. Unknown or confirmed emails are ignored."""
        user = identity_service.find_by_email(db, email)
        if user is None or user.email_confirmed or not user.is_active:
            logger.info("Confirmation resend skipped for %s", email)
            return
        AuthService.send_confirmation(db, user)

    @staticmethod
    def forgot_password(db: Session, email: str) -> None:
        """Send a password reset link. Unknown or disabled accounts are ignored."""
        user = identity_service.find_by_email(db, email)
        if user is None or not user.is_active:
            logger.info("Password reset requested for unknown or disabled account %s", email)
            return
        token = account_token_service.issue(db, user, PASSWORD_RESET)
        account_token_service.deliver(user.email, PASSWORD_RESET, token)
        audit_service.log(
            db, actor_id=user.id, action="user.password_reset_requested",
            resource_type="user", resource_id=str(user.id),
        )

    @staticmethod
    def reset_password(db: Session, email: str, token: str, new_password: str) -> None:
        """Set a new password from a reset link and sign out every session.

        Raises:
            ValidationError: unknown email, a bad, expired or used token, or
                a password bcrypt cannot take.
        """
        user = identity_service.find_by_email(db, email)
        if user is None:
            raise ValidationError("Invalid or expired token")

        hashed = hash_password(new_password)
        account_token_service.consume(db, user, PASSWORD_RESET, token)
        user.hashed_password = hashed
        user.lockout_end = None
        db.commit()
        logger.info("Password reset for user %s", user.id)
        session_service.revoke_all(db, user.id, reason="password_reset")

    @staticmethod
    def external_login(
        db: Session,
        provider: str,
        provider_key: str,
        email: str,
        display_name: Optional[str] = None,
        image_url: Optional[str] = None,
        ip: Optional[str] = None,
        device: Optional[str] = None,
    ) -> Tuple[IssuedSession, User]:
        """Sign in an identity already verified by an external provider."""
        user = identity_service.find_or_create_external(
            db, provider, provider_key, email, display_name, image_url
        )
        if not user.is_active:
            raise ForbiddenError("This account has been disabled")

        user.last_login_at = utcnow()
        db.commit()
        logger.info("User %s logged in via %s", user.id, provider)

        return session_service.issue_session(db, user.id, ip, device), user

    @staticmethod
    def change_password(
        db: Session, user_id: int, current_password: str, new_password: str
    ) -> None:
        """Change a password and revoke every refresh credential of the user."""
        user = AuthService.get_user(db, user_id)
        if not identity_service.verify_password(user, current_password):
            raise InvalidCredentialError("Current password is incorrect")

        identity_service.set_password(db, user, new_password)
        logger.info("Password changed for user %s", user_id)
        session_service.revoke_all(db, user_id, reason="password_changed")

    @staticmethod
    def set_user_enabled(db: Session, user_id: int, enabled: bool) -> User:
        """Enable or disable an account. Disabling revokes all its sessions."""
        user = AuthService.get_user(db, user_id)
        user.is_active = enabled
        db.commit()

        if not enabled:
            session_service.revoke_all(db, user_id, reason="account_disabled")

        logger.info("User %s has been %s", user_id, "enabled" if enabled else "disabled")
        return user

    @staticmethod
    def get_user(db: Session, user_id: int) -> User:
        """Get a user by id."""
        user = identity_service.find_by_id(db, user_id)
        if not user:
            raise ResourceNotFoundError(f"User {user_id} not found")
        return user

    @staticmethod
    def mark_email_confirmed(db: Session, user_id: int, actor_id: Optional[int] = None) -> User:
        """Confirm a user's email without a token (admin override)."""
        user = AuthService.get_user(db, user_id)
        if not user.email_confirmed:
            identity_service.confirm_email(db, user)
            logger.info("Email of user %s confirmed by %s", user_id, actor_id)
            audit_service.log(
                db, actor_id=actor_id, action="user.email_confirmed",
                resource_type="user", resource_id=str(user_id), detail={"by": "admin"},
            )
        return user

    @staticmethod
    def list_users(
        db: Session, search: Optional[str] = None, page: int = 1, page_size: int = 50
    ) -> Tuple[List[User], int]:
        """Page through users by id, optionally filtered on email or display name."""
        query = db.query(User)
        if search:
            pattern = f"%{search.strip().lower()}%"
            query = query.filter(
                or_(func.lower(User.email).like(pattern), func.lower(User.display_name).like(pattern))
            )
        total = query.count()
        users = query.order_by(User.id).offset((page - 1) * page_size).limit(page_size).all()
        return users, total

    @staticmethod
    def create_user(
        db: Session,
        email: str,
        password: str,
        display_name: Optional[str] = None,
        role_name: Optional[str] = None,
        email_confirmed: bool = True,
        actor_id: Optional[int] = None,
    ) -> User:
        """Create an account on behalf of an administrator."""
        user = identity_service.create_user(
            db, email, password, display_name, role_name=role_name, email_confirmed=email_confirmed,
        )
        if not email_confirmed:
            AuthService.send_confirmation(db, user)
        logger.info("User %s created by %s", user.id, actor_id)
        audit_service.log(
            db, actor_id=actor_id, action="user.created", resource_type="user",
            resource_id=str(user.id), detail={"roles": identity_service.role_names(user)},
        )
        return user


auth_service = AuthService()
