"""One-time account token model (email confirmation, password reset)."""

from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from warden.db.base import Base


class AccountToken(Base):
    """A single-use token mailed to the account owner.

    As with refresh credentials, only the SHA-256 digest is stored.
    """
    __tablename__ = "account_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    purpose = Column(String(32), nullable=False)
    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    created_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime, nullable=True)

    def is_usable(self, now: datetime) -> bool:
        return self.used_at is None and now < self.expires_at
