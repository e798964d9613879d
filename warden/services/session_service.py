"""Session service: refresh credential issuance, rotation, and revocation.

A refresh credential is single use. ``refresh`` swaps it for a new one and
links the old row to its successor. Presenting a credential that was
already rotated or revoked is treated as theft: every credential of the
owner is revoked before the request is refused.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from warden.core.config import settings
from warden.core.exceptions import (
    ForbiddenError, InfrastructureError, InvalidTokenError, ResourceNotFoundError,
    TokenExpiredError, TokenReuseError,
)
from warden.core.security import hash_token, mint_access_token, mint_refresh_token, utcnow
from warden.db.stores import credential_store
from warden.models.refresh_credential import RefreshCredential
from warden.models.user import User
from warden.schemas.schemas import IssuedSession
from warden.services.audit_service import audit_service
from warden.services.identity_service import identity_service

logger = logging.getLogger("warden")


class SessionService:
    """Orchestrates the refresh credential lifecycle."""

    @staticmethod
    def _mint(
        db: Session,
        user: User,
        now: datetime,
        ip: Optional[str],
        device: Optional[str],
    ) -> Tuple[IssuedSession, RefreshCredential]:
        """Mint both tokens and stage the new credential. Does not commit."""
        access_token, access_expires = mint_access_token(
            user.id, user.email, identity_service.role_names(user)
        )
        refresh_token = mint_refresh_token()
        refresh_expires = now + timedelta(days=settings.REFRESH_TOKEN_EXPIRY_DAYS)

        credential = credential_store.add(
            db,
            owner_id=user.id,
            token_hash=hash_token(refresh_token),
            created_at=now,
            expires_at=refresh_expires,
            device_info=device,
            ip=ip,
        )
        issued = IssuedSession(
            user_id=user.id,
            credential_id=credential.id,
            access_token=access_token,
            access_token_expires_at=access_expires,
            refresh_token=refresh_token,
            refresh_token_expires_at=refresh_expires,
        )
        return issued, credential

    @staticmethod
    def issue_session(
        db: Session,
        user_id: int,
        ip: Optional[str] = None,
        device: Optional[str] = None,
    ) -> IssuedSession:
        """Issue a fresh access token and refresh credential for a user.

        Called after any successful primary authentication.
        """
        user = identity_service.find_by_id(db, user_id)
        if user is None:
            raise ResourceNotFoundError(f"User {user_id} not found")

        try:
            issued, _ = SessionService._mint(db, user, utcnow(), ip, device)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise InfrastructureError("Could not issue session") from exc

        logger.info("Issued session %s for user %s", issued.credential_id, user_id)
        audit_service.log(
            db,
            actor_id=user_id,
            action="session.issued",
            resource_type="session",
            resource_id=str(issued.credential_id),
            ip_address=ip,
            user_agent=device,
        )
        return issued

    @staticmethod
    def refresh(
        db: Session,
        presented_token: str,
        ip: Optional[str] = None,
        device: Optional[str] = None,
    ) -> IssuedSession:
        """Rotate a refresh credential into a brand-new session.

        Raises:
            InvalidTokenError: no credential matches the token.
            TokenReuseError: the credential was already rotated or revoked;
                all of the owner's credentials have been revoked.
            TokenExpiredError: the credential is unrevoked but expired.
            ForbiddenError: the owning account has been disabled.
        """
        now = utcnow()
        record = credential_store.find_by_hash(db, hash_token(presented_token or ""))

        if record is None:
            logger.warning("Refresh token not found")
            raise InvalidTokenError("Invalid refresh token")

        record_id, owner_id = record.id, record.owner_id

        if record.revoked_at is not None:
            SessionService._handle_reuse(db, owner_id, record_id, ip, device)
            raise TokenReuseError(owner_id=owner_id)

        if now >= record.expires_at:
            logger.warning("Expired refresh credential %s presented for user %s", record_id, owner_id)
            raise TokenExpiredError("Refresh token has expired")

        user = identity_service.find_by_id(db, owner_id)
        if user is None or not user.is_active:
            raise ForbiddenError("User account is disabled")

        try:
            issued, successor = SessionService._mint(db, user, now, ip, device)
            # Conditional on the old row still being unrevoked; the successor
            # insert and the rotation commit or roll back together.
            rotated = credential_store.rotate(db, record_id, successor.id, now)
            if rotated:
                db.commit()
            else:
                db.rollback()
        except SQLAlchemyError as exc:
            db.rollback()
            raise InfrastructureError("Could not rotate refresh token") from exc

        if not rotated:
            # Another request rotated this credential between our read and write
            SessionService._handle_reuse(db, owner_id, record_id, ip, device)
            raise TokenReuseError(owner_id=owner_id)

        logger.info(
            "Refresh credential %s rotated to %s for user %s",
            record_id, issued.credential_id, owner_id,
        )
        audit_service.log(
            db,
            actor_id=owner_id,
            action="session.rotated",
            resource_type="session",
            resource_id=str(record_id),
            detail={"replaced_by_id": issued.credential_id},
            ip_address=ip,
            user_agent=device,
        )
        return issued

    @staticmethod
    def _handle_reuse(
        db: Session,
        owner_id: int,
        credential_id: int,
        ip: Optional[str],
        device: Optional[str],
    ) -> None:
        logger.warning(
            "Attempted reuse of refresh credential %s for user %s. Possible token theft.",
            credential_id, owner_id,
        )
        revoked = SessionService.revoke_all(db, owner_id, reason="reuse_detected")
        audit_service.log(
            db,
            actor_id=owner_id,
            action="session.reuse_detected",
            resource_type="session",
            resource_id=str(credential_id),
            detail={"revoked": revoked},
            ip_address=ip,
            user_agent=device,
        )

    @staticmethod
    def logout(db: Session, presented_token: Optional[str]) -> None:
        """Revoke the presented credential if it is active.

        Unknown, expired and already revoked tokens are ignored so the
        caller cannot learn whether a token existed.
        """
        if not presented_token:
            return

        now = utcnow()
        record = credential_store.find_by_hash(db, hash_token(presented_token))
        if record is None or not record.is_active(now):
            return

        record_id, owner_id = record.id, record.owner_id
        try:
            revoked = credential_store.revoke(db, record_id, now)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise InfrastructureError("Could not revoke refresh token") from exc

        if revoked:
            logger.info("User %s logged out, refresh credential %s revoked", owner_id, record_id)
            audit_service.log(
                db,
                actor_id=owner_id,
                action="session.logout",
                resource_type="session",
                resource_id=str(record_id),
            )

    @staticmethod
    def revoke_all(db: Session, user_id: int, reason: str = "manual") -> int:
        """Revoke every unrevoked credential of a user. Safe to re-run.

        Returns the number of credentials newly revoked.
        """
        try:
            revoked = credential_store.revoke_active_for_owner(db, user_id, utcnow())
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise InfrastructureError("Could not revoke refresh tokens") from exc

        logger.info("Revoked %d refresh credentials for user %s (%s)", revoked, user_id, reason)
        audit_service.log(
            db,
            actor_id=user_id,
            action="session.revoked_all",
            resource_type="user",
            resource_id=str(user_id),
            detail={"reason": reason, "revoked": revoked},
        )
        return revoked

    @staticmethod
    def list_active(db: Session, user_id: int) -> List[RefreshCredential]:
        """Currently active credentials of a user, oldest first."""
        now = utcnow()
        return [c for c in credential_store.list_for_owner(db, user_id) if c.is_active(now)]


session_service = SessionService()
