"""Account token service: single-use tokens for email confirmation and password reset."""

import logging
import secrets
from datetime import timedelta
from urllib.parse import urlencode

from sqlalchemy import update
from sqlalchemy.orm import Session

from warden.core.config import settings
from warden.core.exceptions import ValidationError
from warden.core.security import hash_token, utcnow
from warden.models.account_token import AccountToken
from warden.models.user import User

logger = logging.getLogger("warden")

EMAIL_CONFIRMATION = "email_confirmation"
PASSWORD_RESET = "password_reset"

_LINK_PATHS = {
    EMAIL_CONFIRMATION: "/confirm-email",
    PASSWORD_RESET: "/reset-password",
}


class AccountTokenService:
    """Issues and consumes one-time account tokens.

    Issuing a token for a purpose invalidates the user's earlier unused
    tokens for that purpose, so only the most recent link works.
    """

    @staticmethod
    def _lifetime(purpose: str) -> timedelta:
        if purpose == EMAIL_CONFIRMATION:
            return timedelta(hours=settings.EMAIL_CONFIRMATION_EXPIRY_HOURS)
        if purpose == PASSWORD_RESET:
            return timedelta(minutes=settings.PASSWORD_RESET_EXPIRY_MINUTES)
        raise ValueError(f"Unknown account token purpose: {purpose}")

    @staticmethod
    def issue(db: Session, user: User, purpose: str) -> str:
        """Store a new token for ``user`` and return the raw value. Commits."""
        now = utcnow()
        lifetime = AccountTokenService._lifetime(purpose)
        db.execute(
            update(AccountToken)
            .where(
                AccountToken.user_id == user.id,
                AccountToken.purpose == purpose,
                AccountToken.used_at.is_(None),
            )
            .values(used_at=now)
        )
        token = secrets.token_urlsafe(32)
        db.add(AccountToken(
            user_id=user.id,
            purpose=purpose,
            token_hash=hash_token(token),
            created_at=now,
            expires_at=now + lifetime,
        ))
        db.commit()
        return token

    @staticmethod
    def consume(db: Session, user: User, purpose: str, token: str) -> None:
        """Mark a token used. Does not commit.

        Raises:
            ValidationError: unknown, mismatched, expired or already used token.
        """
        now = utcnow()
        row = (
            db.query(AccountToken)
            .filter(AccountToken.token_hash == hash_token(token))
            .first()
        )
        if row is None or row.user_id != user.id or row.purpose != purpose:
            raise ValidationError("Invalid or expired token")
        if not row.is_usable(now):
            raise ValidationError("Invalid or expired token")

        # Conditional so two concurrent uses of the same token cannot both pass
        result = db.execute(
            update(AccountToken)
            .where(AccountToken.id == row.id, AccountToken.used_at.is_(None))
            .values(used_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ValidationError("Invalid or expired token")

    @staticmethod
    def deliver(email: str, purpose: str, token: str) -> None:
        """Hand the link to the mail transport.

        No transport is wired in; the link is written to the log.
        """
        link = "{}{}?{}".format(
            settings.ACCOUNT_LINK_BASE_URL.rstrip("/"),
            _LINK_PATHS[purpose],
            urlencode({"email": email, "token": token}),
        )
        logger.info("Account link for %s (%s): %s", email, purpose, link)


account_token_service = AccountTokenService()
