"""Menu API router: the caller's navigation tree and point permission checks."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from warden.core.security import get_current_principal
from warden.db.session import get_db
from warden.schemas.schemas import AccessCheckOut, Principal, UserMenu
from warden.services.permission_service import permission_resolver

router = APIRouter(prefix="/menu", tags=["menu"])


@router.get("", response_model=UserMenu)
async def get_user_menu(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Navigation sections, items and sub-items visible to the caller's roles."""
    return permission_resolver.resolve_user_menu(db, principal.roles)


@router.get("/route-access", response_model=AccessCheckOut)
async def check_route_access(
    route: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    allowed = permission_resolver.has_route_access(db, principal.roles, route)
    return AccessCheckOut(route=route, allowed=allowed)


@router.get("/action-access", response_model=AccessCheckOut)
async def check_action_access(
    route: str = Query(..., min_length=1),
    action: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    allowed = permission_resolver.can_perform_action(db, principal.roles, route, action)
    return AccessCheckOut(route=route, action=action, allowed=allowed)
