"""Seed the admin user from env vars."""

from sqlalchemy.orm import Session
from warden.models.role import Role
from warden.models.user import User
from warden.core.security import hash_password
from warden.core.config import settings


def seed_super_admin(db: Session) -> None:
    """Create the admin user, holding both default roles, if not already present."""
    roles = db.query(Role).filter(Role.name.in_([settings.ADMIN_ROLE, settings.DEFAULT_ROLE])).all()
    if len(roles) < 2:
        print("⚠️  Default roles not found. Run seed_roles first.")
        return

    existing = db.query(User).filter(User.email == settings.SUPER_ADMIN_EMAIL).first()
    if existing:
        print(f"ℹ️  Admin '{settings.SUPER_ADMIN_EMAIL}' already exists, skipping.")
        return

    admin = User(
        email=settings.SUPER_ADMIN_EMAIL,
        hashed_password=hash_password(settings.SUPER_ADMIN_PASSWORD),
        display_name="Administrator",
        is_active=True,
        email_confirmed=True,
    )
    admin.roles.extend(roles)
    db.add(admin)
    db.commit()
    print(f"✅ Created admin: {settings.SUPER_ADMIN_EMAIL}")
