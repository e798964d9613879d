"""Admin API router: role permissions, users, session revocation, account status, audit."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from warden.core.security import require_admin
from warden.db.session import get_db
from warden.schemas.schemas import (
    AdminCreateUserRequest, AuditLogOut, MenuStructure, MessageResponse, Principal,
    RevokeSessionsOut, RolePermissions, UpdateRolePermissionsRequest, UserEnabledRequest,
    UserListOut, UserOut,
)
from warden.services.audit_service import audit_service
from warden.services.auth_service import auth_service
from warden.services.identity_service import identity_service
from warden.services.permission_service import permission_admin_service
from warden.services.session_service import session_service

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/menu", response_model=MenuStructure)
async def get_menu_structure(
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    """Full navigation tree including inactive nodes (admin only)."""
    return permission_admin_service.get_menu_structure(db)


@router.get("/roles/{role_id}/permissions", response_model=RolePermissions)
async def get_role_permissions(
    role_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    return permission_admin_service.get_role_permissions(db, role_id)


@router.put("/roles/{role_id}/permissions", response_model=MessageResponse)
async def update_role_permissions(
    role_id: int,
    body: UpdateRolePermissionsRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    """Overwrite a role's navigation and action grants (admin only)."""
    permission_admin_service.update_role_permissions(db, role_id, body, actor_id=principal.user_id)
    return MessageResponse(message="Permissions updated")


@router.get("/users", response_model=UserListOut)
async def list_users(
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    users, total = auth_service.list_users(db, search=search, page=page, page_size=page_size)
    return UserListOut(
        items=[identity_service.to_user_out(u) for u in users],
        total=total, page=page, page_size=page_size,
    )


@router.post("/users", response_model=UserOut, status_code=201)
async def create_user(
    body: AdminCreateUserRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    """Create an account with a chosen role (admin only)."""
    user = auth_service.create_user(
        db, body.email, body.password, body.display_name, body.role_name,
        body.email_confirmed, actor_id=principal.user_id,
    )
    return identity_service.to_user_out(user)


@router.get("/users/{user_id}", response_model=UserOut)
async def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    return identity_service.to_user_out(auth_service.get_user(db, user_id))


@router.post("/users/{user_id}/confirm-email", response_model=UserOut)
async def confirm_user_email(
    user_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    """Mark a user's email as confirmed (admin only)."""
    user = auth_service.mark_email_confirmed(db, user_id, actor_id=principal.user_id)
    return identity_service.to_user_out(user)


@router.post("/users/{user_id}/revoke-sessions", response_model=RevokeSessionsOut)
async def revoke_user_sessions(
    user_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    """Sign a user out everywhere (admin only)."""
    auth_service.get_user(db, user_id)
    revoked = session_service.revoke_all(db, user_id, reason="admin")
    return RevokeSessionsOut(user_id=user_id, revoked=revoked)


@router.put("/users/{user_id}/enabled", response_model=UserOut)
async def set_user_enabled(
    user_id: int,
    body: UserEnabledRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    user = auth_service.set_user_enabled(db, user_id, body.enabled)
    return identity_service.to_user_out(user)


@router.get("/audit")
async def get_audit_logs(
    action: Optional[str] = Query(None),
    resource_type: Optional[str] = Query(None),
    resource_id: Optional[str] = Query(None),
    actor_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    """Query the audit trail (admin only)."""
    result = audit_service.query_logs(
        db, actor_id=actor_id, action=action, resource_type=resource_type,
        resource_id=resource_id, page=page, page_size=page_size,
    )
    return {
        "logs": [AuditLogOut.model_validate(entry) for entry in result["logs"]],
        "total": result["total"],
        "page": result["page"],
    }
