"""Navigation tree, page action, and role grant models."""

import enum

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, Enum, UniqueConstraint, func,
)
from warden.db.base import Base


class NodeKind(str, enum.Enum):
    section = "section"
    item = "item"
    sub_item = "sub_item"


# Required parent kind per node kind; sections are roots.
PARENT_KIND = {
    NodeKind.section: None,
    NodeKind.item: NodeKind.section,
    NodeKind.sub_item: NodeKind.item,
}


class NavigationNode(Base):
    """Section, item or sub-item of the three-level navigation tree."""
    __tablename__ = "navigation_nodes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(Enum(NodeKind), nullable=False, index=True)
    parent_id = Column(Integer, ForeignKey("navigation_nodes.id", ondelete="CASCADE"), nullable=True, index=True)
    name = Column(String(100), nullable=False)
    icon = Column(String(100), nullable=True)
    route = Column(String(255), nullable=True, index=True)  # never set on sections
    display_order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_visible_to_all = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)


class PageAction(Base):
    """Operation exposed by an item or sub-item page, e.g. "create" or "export"."""
    __tablename__ = "page_actions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_node_id = Column(Integer, ForeignKey("navigation_nodes.id", ondelete="CASCADE"), nullable=False, index=True)
    code = Column(String(50), nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(String(255), nullable=True)
    display_order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)


class RoleNavigationGrant(Base):
    """Role access to a single navigation node."""
    __tablename__ = "role_navigation_grants"
    __table_args__ = (UniqueConstraint("role_id", "target_id", name="uq_role_navigation_grant"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    role_id = Column(Integer, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True)
    target_id = Column(Integer, ForeignKey("navigation_nodes.id", ondelete="CASCADE"), nullable=False)
    target_kind = Column(Enum(NodeKind), nullable=False)
    has_access = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)


class RoleActionGrant(Base):
    """Role permission to perform a page action."""
    __tablename__ = "role_action_grants"
    __table_args__ = (UniqueConstraint("role_id", "action_id", name="uq_role_action_grant"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    role_id = Column(Integer, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True)
    action_id = Column(Integer, ForeignKey("page_actions.id", ondelete="CASCADE"), nullable=False)
    is_enabled = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)
