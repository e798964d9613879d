"""Seed a starter navigation tree with grants for the default roles."""

from sqlalchemy.orm import Session
from warden.core.config import settings
from warden.db.stores import permission_store
from warden.models.navigation import NavigationNode, NodeKind
from warden.models.role import Role


def seed_navigation(db: Session) -> None:
    """Create the starter tree on an empty database."""
    if db.query(NavigationNode).count():
        print("ℹ️  Navigation already present, skipping.")
        return

    admin = db.query(Role).filter(Role.name == settings.ADMIN_ROLE).first()
    user = db.query(Role).filter(Role.name == settings.DEFAULT_ROLE).first()
    if not admin or not user:
        print("⚠️  Default roles not found. Run seed_roles first.")
        return

    general = permission_store.add_node(
        db, NodeKind.section, "General", icon="home", display_order=1, is_visible_to_all=True,
    )
    permission_store.add_node(
        db, NodeKind.item, "Dashboard", parent_id=general.id, route="/dashboard",
        icon="dashboard", display_order=1, is_visible_to_all=True,
    )
    profile = permission_store.add_node(
        db, NodeKind.item, "Profile", parent_id=general.id, route="/profile",
        icon="person", display_order=2,
    )

    administration = permission_store.add_node(
        db, NodeKind.section, "Administration", icon="settings", display_order=2,
    )
    users = permission_store.add_node(
        db, NodeKind.item, "Users", parent_id=administration.id, route="/admin/users",
        icon="group", display_order=1,
    )
    security = permission_store.add_node(
        db, NodeKind.item, "Security", parent_id=administration.id,
        icon="shield", display_order=2,
    )
    menus = permission_store.add_node(
        db, NodeKind.sub_item, "Menus", parent_id=security.id, route="/admin/menus",
        display_order=1,
    )
    roles = permission_store.add_node(
        db, NodeKind.sub_item, "Role permissions", parent_id=security.id,
        route="/admin/roles", display_order=2,
    )

    edit_profile = permission_store.add_action(db, profile.id, "edit", "Edit profile")
    user_actions = [
        permission_store.add_action(db, users.id, code, name, display_order=order)
        for order, (code, name) in enumerate(
            [("create", "Create user"), ("edit", "Edit user"),
             ("disable", "Disable user"), ("export", "Export users")],
            start=1,
        )
    ]
    edit_roles = permission_store.add_action(db, roles.id, "edit", "Edit role permissions")

    for node in (administration, users, security, menus, roles, profile):
        permission_store.upsert_navigation_grant(db, admin.id, node, True)
    permission_store.upsert_navigation_grant(db, user.id, profile, True)

    for action in user_actions + [edit_roles, edit_profile]:
        permission_store.upsert_action_grant(db, admin.id, action.id, True)
    permission_store.upsert_action_grant(db, user.id, edit_profile.id, True)

    db.commit()
    print("✅ Seeded navigation tree")
