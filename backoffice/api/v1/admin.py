# ================================
# ADMIN API ROUTES (api/v1/admin.py)
# ================================

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session
from backoffice.dependencies import (
    get_db, api_rate_limit, validate_csrf, require_admin, require_all_permissions, require_resource_access
)
from backoffice.schemas.base import SuccessResponse
from backoffice.services.session_service import SessionService
from backoffice.models.audit import AuditLog
from backoffice.models.rbac import Permission, Role
from backoffice.models.user import User
from typing import Optional

router = APIRouter()

@router.get("/unauthorized")
async def access_denied_view(
    resource: Optional[str] = Query(None),
    action: Optional[str] = Query(None)
):
    """Access-denied surface that denied browser requests are redirected to"""
    content = {
        "status": "unauthorized",
        "message": "You don't have permission to access this page. Contact an administrator if you need access."
    }
    if resource and action:
        content["required_permission"] = f"{resource}:{action}"
    return content

@router.get("/overview")
async def dashboard_overview(
    db: Session = Depends(get_db),
    _: User = Depends(require_resource_access("dashboard"))
):
    """Counts for the console dashboard"""
    return {
        "users": db.query(func.count(User.id)).scalar(),
        "active_users": db.query(func.count(User.id)).filter(User.is_active.is_(True)).scalar(),
        "roles": db.query(func.count(Role.id)).filter(Role.is_active.is_(True)).scalar(),
        "permissions": db.query(func.count(Permission.id)).filter(Permission.is_active.is_(True)).scalar()
    }

@router.get("/audit-logs")
async def recent_audit_logs(
    action: Optional[str] = Query(None, description="Filter by action, e.g. ACCESS_DENIED"),
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
    _: User = Depends(require_all_permissions(("users", "read"), ("settings", "read")))
):
    query = db.query(AuditLog)
    if action:
        query = query.filter(AuditLog.action == action)
    entries = query.order_by(AuditLog.created_at.desc()).limit(limit).all()

    return [
        {
            "id": str(entry.id),
            "action": entry.action,
            "user_id": str(entry.user_id) if entry.user_id else None,
            "resource_type": entry.resource_type,
            "resource_id": entry.resource_id,
            "details": entry.details,
            "ip_address": entry.ip_address,
            "created_at": entry.created_at.isoformat() if entry.created_at else None
        }
        for entry in entries
    ]

@router.post(
    "/sessions/purge",
    response_model=SuccessResponse,
    dependencies=[Depends(api_rate_limit), Depends(validate_csrf)]
)
async def purge_expired_sessions(
    db: Session = Depends(get_db),
    _: User = Depends(require_admin)
):
    """Delete every expired session row"""
    purged = SessionService.purge_expired_sessions(db)
    db.commit()
    return SuccessResponse(message=f"Purged {purged} expired session(s)", data={"purged": purged})
