# ================================
# MODEL UTILITIES (models/utils.py)
# ================================

from sqlalchemy.orm import Session
from backoffice.models.rbac import Permission, Role, RolePermission
from typing import Dict, List, Tuple

PERMISSION_RESOURCES = [
    "products", "categories", "appointments", "customers", "testimonials",
    "users", "roles", "permissions", "settings", "about", "faqs", "home",
    "seo", "operations", "banners", "services", "dashboard",
]

PERMISSION_ACTIONS = ["create", "read", "update", "delete", "manage"]

# Staff work on the catalogue and bookings but never delete or administer
STAFF_RESOURCES = ["products", "categories", "appointments", "customers", "testimonials", "services"]
STAFF_ACTIONS = ["create", "read", "update"]

def create_default_permissions(db: Session) -> List[Permission]:
    """Erstellt Standard-Berechtigungen für das System (idempotent)"""
    existing: Dict[Tuple[str, str], Permission] = {
        (p.resource, p.action): p for p in db.query(Permission).all()
    }

    permissions = []
    for resource in PERMISSION_RESOURCES:
        for action in PERMISSION_ACTIONS:
            permission = existing.get((resource, action))
            if permission is None:
                permission = Permission(
                    resource=resource,
                    action=action,
                    description=f"{action.capitalize()} {resource}",
                    is_active=True
                )
                db.add(permission)
            permissions.append(permission)

    db.flush()
    return permissions

def create_default_roles(db: Session) -> Dict[str, Role]:
    """Seeds the 'admin' role (every permission) and the 'staff' role"""
    permissions = {(p.resource, p.action): p for p in create_default_permissions(db)}

    role_definitions = {
        "admin": ("Full access to the admin console", list(permissions.keys())),
        "staff": (
            "Catalogue, bookings and customer care",
            [(r, a) for r in STAFF_RESOURCES for a in STAFF_ACTIONS] + [("dashboard", "read")]
        ),
    }

    roles = {}
    for name, (description, pairs) in role_definitions.items():
        role = db.query(Role).filter(Role.name == name).first()
        if role is None:
            role = Role(name=name, description=description, is_active=True)
            db.add(role)
            db.flush()

        assigned = {rp.permission_id for rp in db.query(RolePermission).filter(RolePermission.role_id == role.id)}
        for pair in pairs:
            permission = permissions[pair]
            if permission.id not in assigned:
                db.add(RolePermission(role_id=role.id, permission_id=permission.id))

        roles[name] = role

    db.flush()
    return roles
