#!/usr/bin/env python3
"""
Seed default permissions and roles

Creates every resource:action permission of the admin console plus the
'admin' and 'staff' roles. Safe to run repeatedly.

Usage:
    python utility_scripts/seed_permissions.py
"""

import sys
from pathlib import Path

# Add the project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

from backoffice.core.database import SessionLocal
from backoffice.models.rbac import Permission, RolePermission
from backoffice.models.utils import create_default_roles


def main() -> int:
    print("🔧 Seeding permissions and roles...")
    db = SessionLocal()
    try:
        roles = create_default_roles(db)
        db.commit()

        print(f"✅ Permissions: {db.query(Permission).count()}")
        for name, role in roles.items():
            count = db.query(RolePermission).filter(RolePermission.role_id == role.id).count()
            print(f"✅ Role '{name}': {count} permissions")
        return 0
    except Exception as e:
        db.rollback()
        print(f"❌ Seeding failed: {e}")
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
