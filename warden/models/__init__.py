"""Models package: import all models so metadata.create_all can discover them."""

from warden.models.role import Role, UserRole
from warden.models.user import User, ExternalLogin
from warden.models.refresh_credential import RefreshCredential
from warden.models.account_token import AccountToken
from warden.models.navigation import (
    NodeKind, NavigationNode, PageAction, RoleNavigationGrant, RoleActionGrant
)
from warden.models.audit_log import AuditLog

__all__ = [
    "Role", "UserRole", "User", "ExternalLogin", "RefreshCredential", "AccountToken",
    "NodeKind", "NavigationNode", "PageAction",
    "RoleNavigationGrant", "RoleActionGrant", "AuditLog",
]
