# ================================
# USER MANAGEMENT API ROUTES (api/v1/users.py)
# ================================

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.orm import Session
from backoffice.dependencies import get_db, require_permission, protected_action
from backoffice.schemas.user import UserResponse, UserListResponse, UserCreate, UserRoleUpdate, UserStatusUpdate
from backoffice.schemas.base import SuccessResponse
from backoffice.services.user_service import UserService
from backoffice.models.user import User
from backoffice.core.exceptions import AppException
from typing import Optional
import uuid

router = APIRouter()

@router.get("", response_model=UserListResponse)
async def list_users(
    search: Optional[str] = Query(None, description="Search in name and email"),
    is_active: Optional[bool] = Query(None),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    _: User = Depends(require_permission("users", "read"))
):
    users, total = UserService.list_users(db, search, is_active, page, page_size)
    return UserListResponse(
        items=[UserResponse.model_validate(u) for u in users],
        total=total,
        page=page,
        page_size=page_size
    )

@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(protected_action("users", "create"))
):
    try:
        user = UserService.create_user(db, user_data, current_user)
        db.commit()
        db.refresh(user)
        return UserResponse.model_validate(user)

    except AppException:
        db.rollback()
        raise

@router.put("/{user_id}/role", response_model=UserResponse)
async def update_user_role(
    role_update: UserRoleUpdate,
    user_id: uuid.UUID = Path(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(protected_action("users", "update"))
):
    """Replace every role of the user with the given one"""
    try:
        user = UserService.update_user_role(db, user_id, role_update.role_id, current_user)
        db.commit()
        db.refresh(user)
        return UserResponse.model_validate(user)

    except Exception:
        db.rollback()
        raise

@router.put("/{user_id}/status", response_model=UserResponse)
async def update_user_status(
    status_update: UserStatusUpdate,
    user_id: uuid.UUID = Path(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(protected_action("users", "update"))
):
    try:
        user = UserService.update_user_status(db, user_id, status_update.is_active, current_user)
        db.commit()
        db.refresh(user)
        return UserResponse.model_validate(user)

    except AppException:
        db.rollback()
        raise

@router.delete("/{user_id}", response_model=SuccessResponse)
async def delete_user(
    user_id: uuid.UUID = Path(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(protected_action("users", "delete"))
):
    """Soft delete (deactivation)"""
    try:
        result = UserService.delete_user(db, user_id, current_user)
        db.commit()
        return SuccessResponse(message=result["message"], data={"user_id": result["user_id"]})

    except AppException:
        db.rollback()
        raise
