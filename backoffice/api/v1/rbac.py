# ================================
# RBAC API ROUTES (api/v1/rbac.py)
# ================================

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.orm import Session
from backoffice.dependencies import (
    get_db, get_auth_context, get_current_active_user, require_permission, require_any_permission, protected_action
)
from backoffice.schemas.rbac import (
    PermissionCreate, PermissionUpdate, PermissionResponse,
    RoleCreate, RoleUpdate, RoleResponse, EffectivePermissionsResponse
)
from backoffice.schemas.base import SuccessResponse
from backoffice.services.authorization_service import AuthorizationContext
from backoffice.services.rbac_service import RBACService
from backoffice.models.user import User
from backoffice.core.exceptions import AppException
from typing import List, Optional
import uuid

router = APIRouter()

def _role_response(role, user_count: int) -> RoleResponse:
    response = RoleResponse.model_validate(role)
    response.user_count = user_count
    return response

# ================================
# PERMISSION MANAGEMENT
# ================================

@router.get("/permissions", response_model=List[PermissionResponse])
async def list_permissions(
    resource: Optional[str] = Query(None, description="Filter by resource"),
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    _: User = Depends(require_any_permission(
        ("permissions", "read"), ("roles", "create"), ("roles", "update")
    ))
):
    """Role editors need the catalogue too"""
    permissions = RBACService.list_permissions(db, resource=resource, include_inactive=include_inactive)
    return [PermissionResponse.model_validate(p) for p in permissions]

@router.post("/permissions", response_model=PermissionResponse, status_code=status.HTTP_201_CREATED)
async def create_permission(
    permission_data: PermissionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(protected_action("permissions", "create"))
):
    try:
        permission = RBACService.create_permission(db, permission_data, current_user)
        db.commit()
        return PermissionResponse.model_validate(permission)

    except AppException:
        db.rollback()
        raise

@router.put("/permissions/{permission_id}", response_model=PermissionResponse)
async def update_permission(
    permission_update: PermissionUpdate,
    permission_id: uuid.UUID = Path(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(protected_action("permissions", "update"))
):
    """Update description or soft-disable (is_active=false)"""
    try:
        permission = RBACService.update_permission(db, permission_id, permission_update, current_user)
        db.commit()
        return PermissionResponse.model_validate(permission)

    except AppException:
        db.rollback()
        raise

@router.delete("/permissions/{permission_id}", response_model=SuccessResponse)
async def delete_permission(
    permission_id: uuid.UUID = Path(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(protected_action("permissions", "delete"))
):
    """Hard delete; refused with 409 while any role holds the permission"""
    try:
        result = RBACService.delete_permission(db, permission_id, current_user)
        db.commit()
        return SuccessResponse(message=result["message"])

    except AppException:
        db.rollback()
        raise

# ================================
# ROLE MANAGEMENT
# ================================

@router.get("/roles", response_model=List[RoleResponse])
async def list_roles(
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("roles", "read"))
):
    return [_role_response(role, count) for role, count in RBACService.list_roles(db, include_inactive)]

@router.get("/roles/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: uuid.UUID = Path(...),
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("roles", "read"))
):
    role = RBACService.get_role(db, role_id)
    return _role_response(role, RBACService.count_role_users(db, role.id))

@router.post("/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    role_data: RoleCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(protected_action("roles", "create"))
):
    try:
        role = RBACService.create_role(db, role_data, current_user)
        db.commit()
        role = RBACService.get_role(db, role.id)
        return _role_response(role, 0)

    except AppException:
        db.rollback()
        raise

@router.put("/roles/{role_id}", response_model=RoleResponse)
async def update_role(
    role_update: RoleUpdate,
    role_id: uuid.UUID = Path(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(protected_action("roles", "update"))
):
    try:
        role = RBACService.update_role(db, role_id, role_update, current_user)
        db.commit()
        role = RBACService.get_role(db, role_id)
        return _role_response(role, RBACService.count_role_users(db, role_id))

    except AppException:
        db.rollback()
        raise

@router.delete("/roles/{role_id}", response_model=SuccessResponse)
async def delete_role(
    role_id: uuid.UUID = Path(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(protected_action("roles", "delete"))
):
    try:
        result = RBACService.delete_role(db, role_id, current_user)
        db.commit()
        return SuccessResponse(message=result["message"])

    except AppException:
        db.rollback()
        raise

# ================================
# CURRENT USER
# ================================

@router.get("/me/permissions", response_model=EffectivePermissionsResponse)
async def my_permissions(
    current_user: User = Depends(get_current_active_user),
    context: AuthorizationContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    """Effective permission set of the caller"""
    if context.permissions.universal:
        names = [p.name for p in RBACService.list_permissions(db)]
    else:
        names = context.permissions.names()

    return EffectivePermissionsResponse(
        user_id=current_user.id,
        is_admin=current_user.is_admin,
        roles=[role.name for role in current_user.roles if role.is_active],
        permissions=names
    )
