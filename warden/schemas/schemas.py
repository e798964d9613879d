"""Pydantic schemas for API request/response serialization."""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


# ---- Identity ----
class Principal(BaseModel):
    """Authenticated caller as read from a verified access token."""
    user_id: int
    email: str = ""
    roles: List[str] = []


class UserOut(BaseModel):
    id: int
    email: str
    display_name: str
    image_url: Optional[str] = None
    email_confirmed: bool = False
    is_active: bool = True
    roles: List[str] = []


# ---- Auth ----
class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)

class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=8, max_length=72)
    display_name: Optional[str] = None

class ExternalLoginRequest(BaseModel):
    """Identity already validated against the external provider."""
    provider: str = Field(..., min_length=1)
    provider_key: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    display_name: Optional[str] = None
    image_url: Optional[str] = None

class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=72)

class EmailRequest(BaseModel):
    email: str = Field(..., min_length=3)

class ConfirmEmailRequest(BaseModel):
    email: str = Field(..., min_length=3)
    token: str = Field(..., min_length=1)

class ResetPasswordRequest(BaseModel):
    email: str = Field(..., min_length=3)
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=72)

class IssuedSession(BaseModel):
    """Result of issuing or rotating a session. Never returned as-is over HTTP."""
    user_id: int
    credential_id: int
    access_token: str
    access_token_expires_at: datetime
    refresh_token: str
    refresh_token_expires_at: datetime

class AuthResponse(BaseModel):
    """Body of login/refresh responses; the refresh token travels in a cookie."""
    access_token: str
    access_token_expires_at: datetime
    token_type: str = "bearer"
    user: Optional[UserOut] = None

class MessageResponse(BaseModel):
    message: str


# ---- User menu ----
class UserMenuSubItem(BaseModel):
    id: int
    name: str
    icon: Optional[str] = None
    route: str
    display_order: int
    actions: List[str] = []

class UserMenuItem(BaseModel):
    id: int
    name: str
    icon: Optional[str] = None
    route: Optional[str] = None
    display_order: int
    actions: List[str] = []
    sub_items: List[UserMenuSubItem] = []

class UserMenuSection(BaseModel):
    id: int
    name: str
    icon: Optional[str] = None
    display_order: int
    items: List[UserMenuItem] = []

class UserMenu(BaseModel):
    sections: List[UserMenuSection] = []

class AccessCheckOut(BaseModel):
    route: str
    action: Optional[str] = None
    allowed: bool


# ---- Menu structure (admin) ----
class PageActionOut(BaseModel):
    id: int
    owner_node_id: int
    code: str
    name: str
    description: Optional[str] = None
    display_order: int
    is_active: bool

    class Config:
        from_attributes = True

class StructureSubItem(BaseModel):
    id: int
    name: str
    icon: Optional[str] = None
    route: str
    display_order: int
    is_active: bool
    is_visible_to_all: bool
    actions: List[PageActionOut] = []

class StructureItem(BaseModel):
    id: int
    name: str
    icon: Optional[str] = None
    route: Optional[str] = None
    display_order: int
    is_active: bool
    is_visible_to_all: bool
    actions: List[PageActionOut] = []
    sub_items: List[StructureSubItem] = []

class StructureSection(BaseModel):
    id: int
    name: str
    icon: Optional[str] = None
    display_order: int
    is_active: bool
    is_visible_to_all: bool
    items: List[StructureItem] = []

class MenuStructure(BaseModel):
    sections: List[StructureSection] = []


# ---- Role permissions (admin) ----
class ActionPermission(BaseModel):
    id: int
    code: str
    name: str
    is_enabled: bool

class SubItemPermission(BaseModel):
    id: int
    name: str
    route: str
    has_access: bool
    is_visible_to_all: bool
    actions: List[ActionPermission] = []

class ItemPermission(BaseModel):
    id: int
    name: str
    route: Optional[str] = None
    has_access: bool
    is_visible_to_all: bool
    actions: List[ActionPermission] = []
    sub_items: List[SubItemPermission] = []

class SectionPermission(BaseModel):
    id: int
    name: str
    has_access: bool
    is_visible_to_all: bool
    items: List[ItemPermission] = []

class RolePermissions(BaseModel):
    role_id: int
    role_name: str
    sections: List[SectionPermission] = []

class NavigationAccessUpdate(BaseModel):
    node_id: int
    has_access: bool

class ActionAccessUpdate(BaseModel):
    action_id: int
    is_enabled: bool

class UpdateRolePermissionsRequest(BaseModel):
    navigation: List[NavigationAccessUpdate] = []
    actions: List[ActionAccessUpdate] = []


# ---- Admin ----
class UserEnabledRequest(BaseModel):
    enabled: bool

class RevokeSessionsOut(BaseModel):
    user_id: int
    revoked: int

class AuditLogOut(BaseModel):
    id: int
    actor_id: Optional[int] = None
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    detail_json: Optional[str] = None
    ip_address: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class AdminCreateUserRequest(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=8, max_length=72)
    display_name: Optional[str] = None
    role_name: Optional[str] = None
    email_confirmed: bool = True

class UserListOut(BaseModel):
    items: List[UserOut]
    total: int
    page: int
    page_size: int
