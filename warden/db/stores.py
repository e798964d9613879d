"""Data access for refresh credentials and the permission model.

Stores only read and write rows. They never commit; the calling service
owns the transaction.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Set

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from warden.core.exceptions import ResourceNotFoundError, ValidationError
from warden.models.navigation import (
    PARENT_KIND, NavigationNode, NodeKind, PageAction, RoleActionGrant, RoleNavigationGrant,
)
from warden.models.refresh_credential import RefreshCredential
from warden.models.role import Role


class CredentialStore:
    """Persistence for refresh credentials."""

    @staticmethod
    def add(
        db: Session,
        owner_id: int,
        token_hash: str,
        created_at: datetime,
        expires_at: datetime,
        device_info: Optional[str] = None,
        ip: Optional[str] = None,
    ) -> RefreshCredential:
        """Insert a new active credential and flush so its id is assigned."""
        credential = RefreshCredential(
            owner_id=owner_id,
            token_hash=token_hash,
            created_at=created_at,
            expires_at=expires_at,
            device_info=device_info[:500] if device_info else None,
            ip=ip[:45] if ip else None,
        )
        db.add(credential)
        db.flush()
        return credential

    @staticmethod
    def find_by_hash(db: Session, token_hash: str) -> Optional[RefreshCredential]:
        return db.execute(
            select(RefreshCredential).where(RefreshCredential.token_hash == token_hash)
        ).scalar_one_or_none()

    @staticmethod
    def get(db: Session, credential_id: int) -> Optional[RefreshCredential]:
        return db.get(RefreshCredential, credential_id)

    @staticmethod
    def list_for_owner(db: Session, owner_id: int) -> List[RefreshCredential]:
        return list(
            db.execute(
                select(RefreshCredential)
                .where(RefreshCredential.owner_id == owner_id)
                .order_by(RefreshCredential.id)
            ).scalars()
        )

    @staticmethod
    def rotate(db: Session, credential_id: int, successor_id: int, now: datetime) -> bool:
        """Mark a credential rotated, only if it is still unrevoked.

        Returns False when another caller already rotated or revoked it.
        """
        result = db.execute(
            update(RefreshCredential)
            .where(
                RefreshCredential.id == credential_id,
                RefreshCredential.revoked_at.is_(None),
            )
            .values(revoked_at=now, replaced_by_id=successor_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def revoke(db: Session, credential_id: int, now: datetime) -> bool:
        """Revoke a single credential if it is still unrevoked."""
        result = db.execute(
            update(RefreshCredential)
            .where(
                RefreshCredential.id == credential_id,
                RefreshCredential.revoked_at.is_(None),
            )
            .values(revoked_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def revoke_active_for_owner(db: Session, owner_id: int, now: datetime) -> int:
        """Revoke every unrevoked credential of an owner. Returns the count."""
        result = db.execute(
            update(RefreshCredential)
            .where(
                RefreshCredential.owner_id == owner_id,
                RefreshCredential.revoked_at.is_(None),
            )
            .values(revoked_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount


class PermissionStore:
    """Persistence for the navigation tree, page actions and role grants."""

    # ---- Roles ----

    @staticmethod
    def role_ids_for_names(db: Session, names: Iterable[str]) -> List[int]:
        names = list(names)
        if not names:
            return []
        return list(db.execute(select(Role.id).where(Role.name.in_(names))).scalars())

    @staticmethod
    def get_role(db: Session, role_id: int) -> Optional[Role]:
        return db.get(Role, role_id)

    # ---- Tree ----

    @staticmethod
    def list_nodes(db: Session, active_only: bool = False) -> List[NavigationNode]:
        """All nodes in insertion order."""
        query = select(NavigationNode).order_by(NavigationNode.id)
        if active_only:
            query = query.where(NavigationNode.is_active.is_(True))
        return list(db.execute(query).scalars())

    @staticmethod
    def get_node(db: Session, node_id: int) -> Optional[NavigationNode]:
        return db.get(NavigationNode, node_id)

    @staticmethod
    def find_routed_node(db: Session, route: str) -> Optional[NavigationNode]:
        """Active item or sub-item with an exact route match; items win ties."""
        candidates = db.execute(
            select(NavigationNode)
            .where(
                NavigationNode.route == route,
                NavigationNode.is_active.is_(True),
                NavigationNode.kind.in_([NodeKind.item, NodeKind.sub_item]),
            )
            .order_by(NavigationNode.id)
        ).scalars().all()
        for kind in (NodeKind.item, NodeKind.sub_item):
            for node in candidates:
                if node.kind == kind:
                    return node
        return None

    @staticmethod
    def add_node(
        db: Session,
        kind: NodeKind,
        name: str,
        parent_id: Optional[int] = None,
        route: Optional[str] = None,
        icon: Optional[str] = None,
        display_order: int = 0,
        is_active: bool = True,
        is_visible_to_all: bool = False,
    ) -> NavigationNode:
        """Insert a node after checking it fits the three-level shape."""
        kind = NodeKind(kind)
        expected_parent = PARENT_KIND[kind]
        if expected_parent is None:
            if parent_id is not None:
                raise ValidationError("Sections cannot have a parent")
            if route:
                raise ValidationError("Sections cannot have a route")
        else:
            parent = db.get(NavigationNode, parent_id) if parent_id is not None else None
            if parent is None:
                raise ResourceNotFoundError(f"Parent node {parent_id} not found")
            if parent.kind != expected_parent:
                raise ValidationError(
                    f"A {kind.value} must be placed under a {expected_parent.value}"
                )
        if kind == NodeKind.sub_item and not (route and route.strip()):
            raise ValidationError("Sub-items require a route")

        node = NavigationNode(
            kind=kind,
            parent_id=parent_id,
            name=name,
            icon=icon,
            route=route or None,
            display_order=display_order,
            is_active=is_active,
            is_visible_to_all=is_visible_to_all,
        )
        db.add(node)
        db.flush()
        return node

    # ---- Actions ----

    @staticmethod
    def list_actions(db: Session, active_only: bool = False) -> List[PageAction]:
        query = select(PageAction).order_by(PageAction.id)
        if active_only:
            query = query.where(PageAction.is_active.is_(True))
        return list(db.execute(query).scalars())

    @staticmethod
    def get_action(db: Session, action_id: int) -> Optional[PageAction]:
        return db.get(PageAction, action_id)

    @staticmethod
    def find_action(db: Session, route: str, code: str) -> Optional[PageAction]:
        """Active action by code on an active item or sub-item with this route."""
        return db.execute(
            select(PageAction)
            .join(NavigationNode, PageAction.owner_node_id == NavigationNode.id)
            .where(
                PageAction.code == code,
                PageAction.is_active.is_(True),
                NavigationNode.route == route,
                NavigationNode.is_active.is_(True),
                NavigationNode.kind.in_([NodeKind.item, NodeKind.sub_item]),
            )
            .order_by(NavigationNode.kind, PageAction.id)
        ).scalars().first()

    @staticmethod
    def add_action(
        db: Session,
        owner_node_id: int,
        code: str,
        name: str,
        description: Optional[str] = None,
        display_order: int = 0,
        is_active: bool = True,
    ) -> PageAction:
        owner = db.get(NavigationNode, owner_node_id)
        if owner is None:
            raise ResourceNotFoundError(f"Node {owner_node_id} not found")
        if owner.kind == NodeKind.section:
            raise ValidationError("Actions belong to items or sub-items, not sections")
        action = PageAction(
            owner_node_id=owner_node_id,
            code=code,
            name=name,
            description=description,
            display_order=display_order,
            is_active=is_active,
        )
        db.add(action)
        db.flush()
        return action

    # ---- Grants ----

    @staticmethod
    def granted_node_ids(db: Session, role_ids: Iterable[int]) -> Set[int]:
        role_ids = list(role_ids)
        if not role_ids:
            return set()
        return set(
            db.execute(
                select(RoleNavigationGrant.target_id).where(
                    RoleNavigationGrant.role_id.in_(role_ids),
                    RoleNavigationGrant.has_access.is_(True),
                )
            ).scalars()
        )

    @staticmethod
    def enabled_action_ids(db: Session, role_ids: Iterable[int]) -> Set[int]:
        role_ids = list(role_ids)
        if not role_ids:
            return set()
        return set(
            db.execute(
                select(RoleActionGrant.action_id).where(
                    RoleActionGrant.role_id.in_(role_ids),
                    RoleActionGrant.is_enabled.is_(True),
                )
            ).scalars()
        )

    @staticmethod
    def has_node_grant(db: Session, role_ids: Iterable[int], node_id: int) -> bool:
        role_ids = list(role_ids)
        if not role_ids:
            return False
        return db.execute(
            select(RoleNavigationGrant.id).where(
                RoleNavigationGrant.role_id.in_(role_ids),
                RoleNavigationGrant.target_id == node_id,
                RoleNavigationGrant.has_access.is_(True),
            ).limit(1)
        ).first() is not None

    @staticmethod
    def has_action_grant(db: Session, role_ids: Iterable[int], action_id: int) -> bool:
        role_ids = list(role_ids)
        if not role_ids:
            return False
        return db.execute(
            select(RoleActionGrant.id).where(
                RoleActionGrant.role_id.in_(role_ids),
                RoleActionGrant.action_id == action_id,
                RoleActionGrant.is_enabled.is_(True),
            ).limit(1)
        ).first() is not None

    @staticmethod
    def upsert_navigation_grant(
        db: Session, role_id: int, node: NavigationNode, has_access: bool
    ) -> RoleNavigationGrant:
        """Create or overwrite the single grant row for (role, node)."""
        grant = db.execute(
            select(RoleNavigationGrant).where(
                RoleNavigationGrant.role_id == role_id,
                RoleNavigationGrant.target_id == node.id,
            )
        ).scalar_one_or_none()
        if grant is None:
            grant = RoleNavigationGrant(
                role_id=role_id, target_id=node.id, target_kind=node.kind,
            )
            db.add(grant)
        grant.has_access = has_access
        db.flush()
        return grant

    @staticmethod
    def upsert_action_grant(
        db: Session, role_id: int, action_id: int, is_enabled: bool
    ) -> RoleActionGrant:
        """Create or overwrite the single grant row for (role, action)."""
        grant = db.execute(
            select(RoleActionGrant).where(
                RoleActionGrant.role_id == role_id,
                RoleActionGrant.action_id == action_id,
            )
        ).scalar_one_or_none()
        if grant is None:
            grant = RoleActionGrant(role_id=role_id, action_id=action_id)
            db.add(grant)
        grant.is_enabled = is_enabled
        db.flush()
        return grant

    @staticmethod
    def navigation_grants_for_role(db: Session, role_id: int) -> List[RoleNavigationGrant]:
        return list(
            db.execute(
                select(RoleNavigationGrant).where(RoleNavigationGrant.role_id == role_id)
            ).scalars()
        )

    @staticmethod
    def action_grants_for_role(db: Session, role_id: int) -> List[RoleActionGrant]:
        return list(
            db.execute(
                select(RoleActionGrant).where(RoleActionGrant.role_id == role_id)
            ).scalars()
        )


credential_store = CredentialStore()
permission_store = PermissionStore()
