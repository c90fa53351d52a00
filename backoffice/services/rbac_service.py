# ================================
# RBAC SERVICE (services/rbac_service.py)
# ================================

from sqlalchemy.orm import Session, selectinload
from sqlalchemy import func
from backoffice.models.rbac import Permission, Role, RolePermission, UserRole
from backoffice.models.user import User
from backoffice.schemas.rbac import PermissionCreate, PermissionUpdate, RoleCreate, RoleUpdate
from backoffice.core.exceptions import ConflictError, NotFoundError, ValidationError
from backoffice.utils.audit import audit_logger
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple
import uuid
import logging

logger = logging.getLogger(__name__)

PermissionKey = Tuple[str, str]

class PermissionSet:
    """Effective (resource, action) pairs of one user.

    ``universal`` marks global administrators: every pair is a member,
    including pairs that do not exist as rows yet.
    """

    __slots__ = ("pairs", "universal")

    def __init__(self, pairs: Iterable[PermissionKey] = (), universal: bool = False):
        self.pairs: FrozenSet[PermissionKey] = frozenset(pairs)
        self.universal = universal

    @classmethod
    def all(cls) -> "PermissionSet":
        return cls(universal=True)

    def allows(self, resource: str, action: str) -> bool:
        return self.universal or (resource, action) in self.pairs

    def __contains__(self, key: PermissionKey) -> bool:
        return self.allows(*key)

    def __eq__(self, other) -> bool:
        if not isinstance(other, PermissionSet):
            return NotImplemented
        return self.universal == other.universal and self.pairs == other.pairs

    def __hash__(self):
        return hash((self.universal, self.pairs))

    def resources(self) -> set:
        return {resource for resource, _ in self.pairs}

    def names(self) -> List[str]:
        return sorted(f"{resource}:{action}" for resource, action in self.pairs)

    def __repr__(self):
        if self.universal:
            return "<PermissionSet(*)>"
        return f"<PermissionSet({self.names()})>"

class RBACService:
    """Service for Role-Based Access Control operations"""

    # ================================
    # PERMISSION RESOLUTION
    # ================================

    @staticmethod
    def compute_effective_permissions(user: Optional[User]) -> PermissionSet:
        """Union of the permissions of every active role the user holds.

        Global admins short-circuit to the universal set. Inactive roles and
        inactive permissions contribute nothing.
        """
        if user is None:
            return PermissionSet()
        if user.is_admin:
            return PermissionSet.all()

        pairs = set()
        for user_role in user.user_roles:
            role = user_role.role
            if role is None or not role.is_active:
                continue
            for role_permission in role.role_permissions:
                permission = role_permission.permission
                if permission is not None and permission.is_active:
                    pairs.add((permission.resource, permission.action))

        return PermissionSet(pairs)

    @staticmethod
    def has_permission(
        user: Optional[User],
        resource: str,
        action: str,
        permissions: Optional[PermissionSet] = None
    ) -> bool:
        """Membership test against the effective permission set"""
        if user is None:
            return False
        if permissions is None:
            permissions = RBACService.compute_effective_permissions(user)
        return permissions.allows(resource, action)

    @staticmethod
    def has_any_permission(
        user: Optional[User],
        required: Iterable[PermissionKey],
        permissions: Optional[PermissionSet] = None
    ) -> bool:
        if user is None:
            return False
        if permissions is None:
            permissions = RBACService.compute_effective_permissions(user)
        return any(permissions.allows(r, a) for r, a in required)

    @staticmethod
    def has_all_permissions(
        user: Optional[User],
        required: Iterable[PermissionKey],
        permissions: Optional[PermissionSet] = None
    ) -> bool:
        if user is None:
            return False
        if permissions is None:
            permissions = RBACService.compute_effective_permissions(user)
        return all(permissions.allows(r, a) for r, a in required)

    @staticmethod
    def can_access_resource(
        user: Optional[User],
        resource: str,
        permissions: Optional[PermissionSet] = None
    ) -> bool:
        """True if the user holds any action on the resource"""
        if user is None:
            return False
        if permissions is None:
            permissions = RBACService.compute_effective_permissions(user)
        return permissions.universal or resource in permissions.resources()

    @staticmethod
    def list_roles_for_user(db: Session, user_id: uuid.UUID) -> List[Role]:
        return db.query(Role).join(UserRole, UserRole.role_id == Role.id).filter(
            UserRole.user_id == user_id
        ).order_by(Role.name).all()

    @staticmethod
    def list_permissions_for_role(db: Session, role_id: uuid.UUID) -> List[Permission]:
        return db.query(Permission).join(
            RolePermission, RolePermission.permission_id == Permission.id
        ).filter(RolePermission.role_id == role_id).order_by(Permission.resource, Permission.action).all()

    # ================================
    # PERMISSION MANAGEMENT
    # ================================

    @staticmethod
    def list_permissions(
        db: Session,
        resource: Optional[str] = None,
        include_inactive: bool = False
    ) -> List[Permission]:
        query = db.query(Permission)
        if resource:
            query = query.filter(Permission.resource == resource.lower())
        if not include_inactive:
            query = query.filter(Permission.is_active.is_(True))
        return query.order_by(Permission.resource, Permission.action).all()

    @staticmethod
    def get_permission(db: Session, permission_id: uuid.UUID) -> Permission:
        permission = db.query(Permission).filter(Permission.id == permission_id).first()
        if not permission:
            raise NotFoundError("Permission not found", "PERMISSION_NOT_FOUND")
        return permission

    @staticmethod
    def create_permission(
        db: Session,
        permission_data: PermissionCreate,
        current_user: Optional[User] = None
    ) -> Permission:
        """Create a new permission"""
        existing = db.query(Permission).filter(
            Permission.resource == permission_data.resource,
            Permission.action == permission_data.action
        ).first()

        if existing:
            raise ConflictError(
                f'Permission "{existing.name}" already exists', "PERMISSION_EXISTS"
            )

        permission = Permission(
            resource=permission_data.resource,
            action=permission_data.action,
            description=permission_data.description,
            is_active=True
        )

        db.add(permission)
        db.flush()

        audit_logger.log_auth_event(
            db, "PERMISSION_CREATED", current_user.id if current_user else None,
            {"permission": permission.name},
            resource_type="permission", resource_id=permission.id
        )

        return permission

    @staticmethod
    def update_permission(
        db: Session,
        permission_id: uuid.UUID,
        permission_update: PermissionUpdate,
        current_user: Optional[User] = None
    ) -> Permission:
        """Update description or soft-disable a permission"""
        permission = RBACService.get_permission(db, permission_id)

        update_data = {}
        if permission_update.description is not None:
            permission.description = permission_update.description
            update_data["description"] = permission_update.description
        if permission_update.is_active is not None:
            permission.is_active = permission_update.is_active
            update_data["is_active"] = permission_update.is_active

        db.flush()

        audit_logger.log_auth_event(
            db, "PERMISSION_UPDATED", current_user.id if current_user else None,
            {"permission": permission.name, "updates": update_data},
            resource_type="permission", resource_id=permission.id
        )

        return permission

    @staticmethod
    def delete_permission(
        db: Session,
        permission_id: uuid.UUID,
        current_user: Optional[User] = None
    ) -> Dict[str, str]:
        """Hard-delete a permission no role references.

        A referenced permission is refused with a ConflictError naming every
        referencing role; nothing is written in that case.
        """
        permission = RBACService.get_permission(db, permission_id)

        blocking_roles = [
            name for (name,) in db.query(Role.name).join(
                RolePermission, RolePermission.role_id == Role.id
            ).filter(
                RolePermission.permission_id == permission.id
            ).order_by(Role.name).all()
        ]

        if blocking_roles:
            raise ConflictError(
                f'Cannot delete permission "{permission.name}" as it is currently assigned '
                f'to the following roles: {", ".join(blocking_roles)}',
                "PERMISSION_IN_USE",
                blocking_roles=blocking_roles
            )

        permission_name = permission.name
        db.delete(permission)
        db.flush()

        audit_logger.log_auth_event(
            db, "PERMISSION_DELETED", current_user.id if current_user else None,
            {"permission": permission_name},
            resource_type="permission", resource_id=permission_id
        )

        return {"message": f'Permission "{permission_name}" deleted successfully'}

    # ================================
    # ROLE MANAGEMENT
    # ================================

    @staticmethod
    def list_roles(db: Session, include_inactive: bool = False) -> List[Tuple[Role, int]]:
        """Roles with their permissions and the number of holders"""
        user_counts = dict(
            db.query(UserRole.role_id, func.count(UserRole.id)).group_by(UserRole.role_id).all()
        )

        query = db.query(Role).options(
            selectinload(Role.role_permissions).selectinload(RolePermission.permission)
        )
        if not include_inactive:
            query = query.filter(Role.is_active.is_(True))

        return [(role, user_counts.get(role.id, 0)) for role in query.order_by(Role.name).all()]

    @staticmethod
    def get_role(db: Session, role_id: uuid.UUID) -> Role:
        role = db.query(Role).options(
            selectinload(Role.role_permissions).selectinload(RolePermission.permission)
        ).filter(Role.id == role_id).first()
        if not role:
            raise NotFoundError("Role not found", "ROLE_NOT_FOUND")
        return role

    @staticmethod
    def count_role_users(db: Session, role_id: uuid.UUID) -> int:
        return db.query(func.count(UserRole.id)).filter(UserRole.role_id == role_id).scalar() or 0

    @staticmethod
    def create_role(db: Session, role_data: RoleCreate, current_user: Optional[User] = None) -> Role:
        """Create a new role with its permission set"""
        RBACService._ensure_role_name_available(db, role_data.name)
        permissions = RBACService._resolve_permissions(db, role_data.permission_ids)

        role = Role(
            name=role_data.name,
            description=role_data.description,
            is_active=True
        )
        db.add(role)
        db.flush()  # Get role.id

        for permission in permissions:
            db.add(RolePermission(role_id=role.id, permission_id=permission.id))
        db.flush()
        db.refresh(role)

        audit_logger.log_auth_event(
            db, "ROLE_CREATED", current_user.id if current_user else None,
            {
                "role_name": role.name,
                "permissions": [p.name for p in permissions]
            },
            resource_type="role", resource_id=role.id
        )

        return role

    @staticmethod
    def update_role(
        db: Session,
        role_id: uuid.UUID,
        role_update: RoleUpdate,
        current_user: Optional[User] = None
    ) -> Role:
        """Update an existing role; a given permission list replaces the old one"""
        role = RBACService.get_role(db, role_id)

        old_values = {
            "name": role.name,
            "description": role.description,
            "is_active": role.is_active,
            "permissions": [p.name for p in role.permissions]
        }

        update_data = {}
        if role_update.name is not None and role_update.name != role.name:
            RBACService._ensure_role_name_available(db, role_update.name, exclude_id=role.id)
            role.name = role_update.name
            update_data["name"] = role_update.name
        if role_update.description is not None:
            role.description = role_update.description
            update_data["description"] = role_update.description
        if role_update.is_active is not None:
            role.is_active = role_update.is_active
            update_data["is_active"] = role_update.is_active

        if role_update.permission_ids is not None:
            permissions = RBACService._resolve_permissions(db, role_update.permission_ids)
            db.query(RolePermission).filter(RolePermission.role_id == role.id).delete(synchronize_session=False)
            for permission in permissions:
                db.add(RolePermission(role_id=role.id, permission_id=permission.id))
            update_data["permissions"] = [p.name for p in permissions]

        db.flush()
        db.expire(role)
        role = RBACService.get_role(db, role_id)

        audit_logger.log_auth_event(
            db, "ROLE_UPDATED", current_user.id if current_user else None,
            {"old_values": old_values, "updates": update_data},
            resource_type="role", resource_id=role.id
        )

        return role

    @staticmethod
    def delete_role(db: Session, role_id: uuid.UUID, current_user: Optional[User] = None) -> Dict[str, str]:
        """Deactivate a role that nobody holds any more"""
        role = RBACService.get_role(db, role_id)

        user_count = RBACService.count_role_users(db, role.id)
        if user_count > 0:
            raise ConflictError(
                f'Cannot delete role "{role.name}" as it is assigned to {user_count} user(s)',
                "ROLE_IN_USE"
            )

        role.is_active = False
        db.flush()

        audit_logger.log_auth_event(
            db, "ROLE_DELETED", current_user.id if current_user else None,
            {"role_name": role.name, "soft_delete": True},
            resource_type="role", resource_id=role.id
        )

        return {"message": f'Role "{role.name}" deleted successfully'}

    # ================================
    # HELPERS
    # ================================

    @staticmethod
    def _ensure_role_name_available(db: Session, name: str, exclude_id: Optional[uuid.UUID] = None):
        query = db.query(Role).filter(func.lower(Role.name) == name.lower())
        if exclude_id is not None:
            query = query.filter(Role.id != exclude_id)
        if query.first():
            raise ConflictError("A role with this name already exists", "ROLE_EXISTS")

    @staticmethod
    def _resolve_permissions(db: Session, permission_ids: List[uuid.UUID]) -> List[Permission]:
        """Load permissions by id; all must exist and be active"""
        unique_ids = list(dict.fromkeys(permission_ids))
        permissions = db.query(Permission).filter(
            Permission.id.in_(unique_ids),
            Permission.is_active.is_(True)
        ).all()

        if len(permissions) != len(unique_ids):
            raise ValidationError("One or more selected permissions are invalid", "INVALID_PERMISSIONS")

        return permissions
