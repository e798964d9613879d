"""Seed default roles into the database."""

from sqlalchemy.orm import Session
from warden.core.config import settings
from warden.models.role import Role


def seed_roles(db: Session) -> None:
    """Insert default roles if they don't already exist."""
    roles_data = [
        {"name": settings.ADMIN_ROLE, "description": "Full system access"},
        {"name": settings.DEFAULT_ROLE, "description": "Standard user access"},
    ]

    for role_data in roles_data:
        existing = db.query(Role).filter(Role.name == role_data["name"]).first()
        if not existing:
            db.add(Role(**role_data))

    db.commit()
    print(f"✅ Seeded {len(roles_data)} roles")
