"""Audit log model: append-only."""

from sqlalchemy import Column, Integer, String, Text, DateTime, func
from warden.db.base import Base


class AuditLog(Base):
    """Immutable audit trail for authentication and permission events.

    This table is APPEND-ONLY: no UPDATE or DELETE operations should ever
    be performed on it (enforced at application level).
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    actor_id = Column(Integer, nullable=True, index=True)  # no FK: survives user deletion
    action = Column(String(100), nullable=False, index=True)  # e.g. "session.rotated"
    resource_type = Column(String(50), nullable=False, index=True)  # session, role, user
    resource_id = Column(String(100), nullable=True)
    detail_json = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False, index=True)
