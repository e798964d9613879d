"""Identity service: the account lookups and checks the auth core depends on."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from warden.core.config import settings
from warden.core.exceptions import ResourceConflictError, ResourceNotFoundError
from warden.core.security import hash_password, verify_password
from warden.models.role import Role
from warden.models.user import ExternalLogin, User
from warden.schemas.schemas import UserOut


class IdentityService:
    """Thin account store with bcrypt password checks.

    Registration policy, lockout thresholds and password complexity are
    not handled here; lockout is only read from ``lockout_end``.
    """

    @staticmethod
    def find_by_email(db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()

    @staticmethod
    def find_by_id(db: Session, user_id: int) -> Optional[User]:
        return db.get(User, user_id)

    @staticmethod
    def verify_password(user: User, password: str) -> bool:
        return verify_password(password, user.hashed_password)

    @staticmethod
    def role_names(user: User) -> List[str]:
        return [role.name for role in user.roles]

    @staticmethod
    def is_locked_out(user: User, now: datetime) -> bool:
        return user.lockout_end is not None and user.lockout_end > now

    @staticmethod
    def create_user(
        db: Session,
        email: str,
        password: Optional[str],
        display_name: Optional[str] = None,
        role_name: Optional[str] = None,
        email_confirmed: bool = False,
    ) -> User:
        """Create a new user with a single role (the default role if none given)."""
        email = email.strip().lower()
        if IdentityService.find_by_email(db, email):
            raise ResourceConflictError(f"User with email {email} already exists")

        role_name = role_name or settings.DEFAULT_ROLE
        role = db.query(Role).filter(Role.name == role_name).first()
        if not role:
            raise ResourceNotFoundError(f"Role '{role_name}' not found")

        user = User(
            email=email,
            hashed_password=hash_password(password) if password else None,
            display_name=display_name or email.split("@")[0],
            email_confirmed=email_confirmed,
            is_active=True,
        )
        user.roles.append(role)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def add_role(db: Session, user: User, role_name: str) -> None:
        role = db.query(Role).filter(Role.name == role_name).first()
        if not role:
            raise ResourceNotFoundError(f"Role '{role_name}' not found")
        if role not in user.roles:
            user.roles.append(role)
            db.commit()

    @staticmethod
    def confirm_email(db: Session, user: User) -> None:
        user.email_confirmed = True
        db.commit()

    @staticmethod
    def set_password(db: Session, user: User, new_password: str) -> None:
        user.hashed_password = hash_password(new_password)
        db.commit()

    @staticmethod
    def find_or_create_external(
        db: Session,
        provider: str,
        provider_key: str,
        email: str,
        display_name: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> User:
        """Resolve an externally verified identity to a local user.

        Looks up the provider link first, then the email. New users are
        created with a confirmed email and the default role. The provider
        link is added when missing.
        """
        link = (
            db.query(ExternalLogin)
            .filter(ExternalLogin.provider == provider, ExternalLogin.provider_key == provider_key)
            .first()
        )
        if link is not None:
            user = link.user
        else:
            user = IdentityService.find_by_email(db, email)
            if user is None:
                user = IdentityService.create_user(
                    db, email, None, display_name, email_confirmed=True,
                )
            db.add(ExternalLogin(user_id=user.id, provider=provider, provider_key=provider_key))

        if image_url and user.image_url != image_url:
            user.image_url = image_url
        db.commit()
        return user

    @staticmethod
    def to_user_out(user: User) -> UserOut:
        return UserOut(
            id=user.id,
            email=user.email,
            display_name=user.display_name,
            image_url=user.image_url,
            email_confirmed=user.email_confirmed,
            is_active=user.is_active,
            roles=IdentityService.role_names(user),
        )


identity_service = IdentityService()
