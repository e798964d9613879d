"""Refresh credential model."""

from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from warden.db.base import Base


class RefreshCredential(Base):
    """One issued refresh token.

    Only the SHA-256 digest of the token is stored. Rows are never deleted:
    rotation and revocation set ``revoked_at`` (and ``replaced_by_id`` on
    rotation) so the chain stays auditable.
    """
    __tablename__ = "refresh_credentials"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    created_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    revoked_at = Column(DateTime, nullable=True)
    replaced_by_id = Column(Integer, ForeignKey("refresh_credentials.id"), nullable=True)
    device_info = Column(String(500), nullable=True)
    ip = Column(String(45), nullable=True)

    def is_active(self, now: datetime) -> bool:
        return self.revoked_at is None and now < self.expires_at

    @property
    def state(self) -> str:
        """Stored lifecycle state; expiry is derived separately."""
        if self.revoked_at is None:
            return "active"
        if self.replaced_by_id is not None:
            return "rotated"
        return "revoked"
