"""Permission service: menu resolution, route/action checks, grant administration."""

import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from warden.core.exceptions import InfrastructureError, ResourceNotFoundError
from warden.db.stores import permission_store
from warden.models.navigation import NavigationNode, NodeKind, PageAction
from warden.schemas.schemas import (
    ActionPermission, ItemPermission, MenuStructure, PageActionOut, RolePermissions,
    SectionPermission, StructureItem, StructureSection, StructureSubItem,
    SubItemPermission, UpdateRolePermissionsRequest, UserMenu, UserMenuItem,
    UserMenuSection, UserMenuSubItem,
)
from warden.services.audit_service import audit_service

logger = logging.getLogger("warden")


def _by_display_order(rows):
    # sorted() is stable, so equal display_order keeps insertion order
    return sorted(rows, key=lambda row: row.display_order)


def _children_index(nodes: Iterable[NavigationNode]) -> Dict[Optional[int], List[NavigationNode]]:
    """Group nodes by parent id, each group ordered for display."""
    index: Dict[Optional[int], List[NavigationNode]] = {}
    for node in nodes:
        index.setdefault(node.parent_id, []).append(node)
    return {parent: _by_display_order(group) for parent, group in index.items()}


def _actions_index(actions: Iterable[PageAction]) -> Dict[int, List[PageAction]]:
    index: Dict[int, List[PageAction]] = {}
    for action in actions:
        index.setdefault(action.owner_node_id, []).append(action)
    return {owner: _by_display_order(group) for owner, group in index.items()}


class PermissionResolver:
    """Computes what a set of roles may see and do.

    Every call reads current stored state; nothing is cached between calls.
    Roles are passed in explicitly by the caller.
    """

    @staticmethod
    def resolve_user_menu(db: Session, roles: Iterable[str]) -> UserMenu:
        """Build the navigation subtree visible to the union of ``roles``.

        A node is included only if it is active, is visible to all or
        granted to one of the roles, and its parent was included. Items
        without a route and without visible sub-items are dropped, as are
        sections left without items.
        """
        role_ids = permission_store.role_ids_for_names(db, roles)
        granted = permission_store.granted_node_ids(db, role_ids)
        enabled = permission_store.enabled_action_ids(db, role_ids)

        children = _children_index(permission_store.list_nodes(db, active_only=True))
        actions = _actions_index(
            a for a in permission_store.list_actions(db, active_only=True) if a.id in enabled
        )

        def visible(node: NavigationNode, kind: NodeKind) -> bool:
            return node.kind == kind and (node.is_visible_to_all or node.id in granted)

        def action_codes(node: NavigationNode) -> List[str]:
            return [a.code for a in actions.get(node.id, [])]

        menu = UserMenu()
        for section in children.get(None, []):
            if not visible(section, NodeKind.section):
                continue

            items = []
            for item in children.get(section.id, []):
                if not visible(item, NodeKind.item):
                    continue

                sub_items = [
                    UserMenuSubItem(
                        id=sub.id,
                        name=sub.name,
                        icon=sub.icon,
                        route=sub.route,
                        display_order=sub.display_order,
                        actions=action_codes(sub),
                    )
                    for sub in children.get(item.id, [])
                    if visible(sub, NodeKind.sub_item)
                ]
                if not sub_items and not item.route:
                    continue

                items.append(UserMenuItem(
                    id=item.id,
                    name=item.name,
                    icon=item.icon,
                    route=item.route,
                    display_order=item.display_order,
                    actions=action_codes(item),
                    sub_items=sub_items,
                ))

            if items:
                menu.sections.append(UserMenuSection(
                    id=section.id,
                    name=section.name,
                    icon=section.icon,
                    display_order=section.display_order,
                    items=items,
                ))
        return menu

    @staticmethod
    def has_route_access(db: Session, roles: Iterable[str], route: str) -> bool:
        """True if the active item or sub-item at ``route`` is open to these roles."""
        node = permission_store.find_routed_node(db, route)
        if node is None:
            return False
        if node.is_visible_to_all:
            return True
        role_ids = permission_store.role_ids_for_names(db, roles)
        return permission_store.has_node_grant(db, role_ids, node.id)

    @staticmethod
    def can_perform_action(
        db: Session, roles: Iterable[str], route: str, action_code: str
    ) -> bool:
        """True if one of the roles has an enabled grant for the action on ``route``."""
        action = permission_store.find_action(db, route, action_code)
        if action is None:
            return False
        role_ids = permission_store.role_ids_for_names(db, roles)
        return permission_store.has_action_grant(db, role_ids, action.id)


class PermissionAdminService:
    """Read and edit role grants over the full navigation tree."""

    @staticmethod
    def get_menu_structure(db: Session) -> MenuStructure:
        """Complete tree, inactive nodes and actions included."""
        children = _children_index(permission_store.list_nodes(db))
        actions = _actions_index(permission_store.list_actions(db))

        def action_list(node):
            return [PageActionOut.model_validate(a) for a in actions.get(node.id, [])]

        return MenuStructure(sections=[
            StructureSection(
                id=section.id,
                name=section.name,
                icon=section.icon,
                display_order=section.display_order,
                is_active=section.is_active,
                is_visible_to_all=section.is_visible_to_all,
                items=[
                    StructureItem(
                        id=item.id,
                        name=item.name,
                        icon=item.icon,
                        route=item.route,
                        display_order=item.display_order,
                        is_active=item.is_active,
                        is_visible_to_all=item.is_visible_to_all,
                        actions=action_list(item),
                        sub_items=[
                            StructureSubItem(
                                id=sub.id,
                                name=sub.name,
                                icon=sub.icon,
                                route=sub.route,
                                display_order=sub.display_order,
                                is_active=sub.is_active,
                                is_visible_to_all=sub.is_visible_to_all,
                                actions=action_list(sub),
                            )
                            for sub in children.get(item.id, [])
                        ],
                    )
                    for item in children.get(section.id, [])
                ],
            )
            for section in children.get(None, [])
        ])

    @staticmethod
    def get_role_permissions(db: Session, role_id: int) -> RolePermissions:
        """Full tree annotated with one role's own grants."""
        role = permission_store.get_role(db, role_id)
        if role is None:
            raise ResourceNotFoundError(f"Role {role_id} not found")

        granted = {
            g.target_id for g in permission_store.navigation_grants_for_role(db, role_id)
            if g.has_access
        }
        enabled = {
            g.action_id for g in permission_store.action_grants_for_role(db, role_id)
            if g.is_enabled
        }
        children = _children_index(permission_store.list_nodes(db))
        actions = _actions_index(permission_store.list_actions(db))

        def action_list(node):
            return [
                ActionPermission(id=a.id, code=a.code, name=a.name, is_enabled=a.id in enabled)
                for a in actions.get(node.id, [])
            ]

        sections = []
        for section in children.get(None, []):
            items = []
            for item in children.get(section.id, []):
                items.append(ItemPermission(
                    id=item.id,
                    name=item.name,
                    route=item.route,
                    has_access=item.id in granted,
                    is_visible_to_all=item.is_visible_to_all,
                    actions=action_list(item),
                    sub_items=[
                        SubItemPermission(
                            id=sub.id,
                            name=sub.name,
                            route=sub.route,
                            has_access=sub.id in granted,
                            is_visible_to_all=sub.is_visible_to_all,
                            actions=action_list(sub),
                        )
                        for sub in children.get(item.id, [])
                    ],
                ))
            sections.append(SectionPermission(
                id=section.id,
                name=section.name,
                has_access=section.id in granted,
                is_visible_to_all=section.is_visible_to_all,
                items=items,
            ))
        return RolePermissions(role_id=role.id, role_name=role.name, sections=sections)

    @staticmethod
    def update_role_permissions(
        db: Session,
        role_id: int,
        body: UpdateRolePermissionsRequest,
        actor_id: Optional[int] = None,
    ) -> None:
        """Upsert the role's grants in one transaction.

        Grant rows are overwritten in place. If a concurrent writer inserts the
        same key first, the transaction is retried once and then updates.
        """
        # Last entry wins when the same key is sent twice
        navigation = {u.node_id: u.has_access for u in body.navigation}
        action_updates = {u.action_id: u.is_enabled for u in body.actions}

        for attempt in range(2):
            try:
                PermissionAdminService._apply_grants(db, role_id, navigation, action_updates)
                db.commit()
                break
            except IntegrityError as exc:
                db.rollback()
                if attempt:
                    raise InfrastructureError("Could not update role permissions") from exc
                logger.info("Grant insert for role %s raced with another writer, retrying", role_id)
            except SQLAlchemyError as exc:
                db.rollback()
                raise InfrastructureError("Could not update role permissions") from exc
            except ResourceNotFoundError:
                db.rollback()
                raise

        logger.info(
            "Updated permissions for role %s (%d navigation, %d action grants)",
            role_id, len(navigation), len(action_updates),
        )
        audit_service.log(
            db,
            actor_id=actor_id,
            action="permissions.updated",
            resource_type="role",
            resource_id=str(role_id),
            detail={"navigation": navigation, "actions": action_updates},
        )

    @staticmethod
    def _apply_grants(db, role_id, navigation, action_updates) -> None:
        if permission_store.get_role(db, role_id) is None:
            raise ResourceNotFoundError(f"Role {role_id} not found")

        for node_id, has_access in navigation.items():
            node = permission_store.get_node(db, node_id)
            if node is None:
                raise ResourceNotFoundError(f"Navigation node {node_id} not found")
            permission_store.upsert_navigation_grant(db, role_id, node, has_access)

        for action_id, is_enabled in action_updates.items():
            if permission_store.get_action(db, action_id) is None:
                raise ResourceNotFoundError(f"Action {action_id} not found")
            permission_store.upsert_action_grant(db, role_id, action_id, is_enabled)


permission_resolver = PermissionResolver()
permission_admin_service = PermissionAdminService()
