#!/usr/bin/env python3
"""
Super Admin Initialization Script

Creates the database tables, seeds permissions and roles, and creates the
initial administrator (is_admin=True, member of the 'admin' role).

Usage:
    python utility_scripts/init_super_admin.py [--force]

Environment Variables (from .env file):
    - DATABASE_URL: database connection string
    - SUPER_ADMIN_EMAIL: Email for super admin (optional, will prompt)
    - SUPER_ADMIN_PASSWORD: Password for super admin (optional, will prompt)
    - SUPER_ADMIN_NAME: Display name (optional)
"""

import os
import sys
import getpass
import re
from typing import Optional
from pathlib import Path

# Add the project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from backoffice.core.database import SessionLocal, engine
from backoffice.core.security import get_password_hash
from backoffice.models import Base
from backoffice.models.user import User
from backoffice.models.rbac import UserRole
from backoffice.models.utils import create_default_roles
from backoffice.utils.audit import audit_logger


class SuperAdminInitializer:
    """Handles super admin initialization"""

    def __init__(self):
        self.db: Optional[Session] = None

    def __enter__(self):
        self.db = SessionLocal()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.db:
            self.db.close()

    def validate_email(self, email: str) -> bool:
        pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        return re.match(pattern, email) is not None

    def validate_password(self, password: str) -> tuple[bool, str]:
        """Validate password strength"""
        if len(password) < 8:
            return False, "Password must be at least 8 characters long"
        if not re.search(r'[A-Za-z]', password):
            return False, "Password must contain at least one letter"
        if not re.search(r'\d', password):
            return False, "Password must contain at least one number"
        return True, "Password is valid"

    def get_user_input(self) -> dict:
        """Get user input for super admin creation"""
        print("=== Super Admin Initialization ===\n")

        email = os.getenv('SUPER_ADMIN_EMAIL')
        while not email or not self.validate_email(email):
            email = input("Super Admin Email: ").strip()
            if not self.validate_email(email):
                print("❌ Invalid email format. Please try again.")
                email = None

        password = os.getenv('SUPER_ADMIN_PASSWORD')
        while not password:
            password = getpass.getpass("Super Admin Password: ")
            is_valid, message = self.validate_password(password)
            if not is_valid:
                print(f"❌ {message}")
                password = None
                continue
            if password != getpass.getpass("Confirm Password: "):
                print("❌ Passwords do not match.")
                password = None

        name = os.getenv('SUPER_ADMIN_NAME') or input("Name [Administrator]: ").strip() or "Administrator"

        return {'email': email.lower(), 'password': password, 'name': name}

    def create_database_tables(self):
        print("🔧 Creating database tables...")
        Base.metadata.create_all(bind=engine)
        print("✅ Database tables created successfully")

    def create_super_admin(self, admin_data: dict, force: bool = False) -> User:
        """Create the super admin user and give it the 'admin' role"""
        print("🔧 Seeding roles and creating super admin user...")

        try:
            roles = create_default_roles(self.db)

            existing_user = self.db.query(User).filter(User.email == admin_data['email']).first()
            if existing_user and not force:
                print(f"⚠️  User with email {admin_data['email']} already exists")
                self.db.commit()
                return existing_user

            user = existing_user or User(email=admin_data['email'])
            user.name = admin_data['name']
            user.password_hash = get_password_hash(admin_data['password'])
            user.is_admin = True
            user.is_active = True
            self.db.add(user)
            self.db.flush()

            has_admin_role = self.db.query(UserRole).filter(
                UserRole.user_id == user.id, UserRole.role_id == roles["admin"].id
            ).first()
            if not has_admin_role:
                self.db.add(UserRole(user_id=user.id, role_id=roles["admin"].id))

            audit_logger.log_auth_event(
                self.db, "USER_CREATED", user.id,
                {"email": user.email, "is_admin": True, "source": "init_super_admin"},
                user_agent="System Initialization Script",
                resource_type="user", resource_id=user.id
            )

            self.db.commit()
            print(f"✅ Super admin ready: {admin_data['email']}")
            return user

        except IntegrityError as e:
            self.db.rollback()
            print(f"❌ Failed to create super admin (integrity error): {e}")
            raise

    def run(self, force: bool = False):
        print("🚀 Starting Super Admin Initialization\n")
        self.create_database_tables()
        admin_data = self.get_user_input()
        self.create_super_admin(admin_data, force=force)


def main():
    force = "--force" in sys.argv
    try:
        with SuperAdminInitializer() as initializer:
            initializer.run(force=force)
    except KeyboardInterrupt:
        print("\n❌ Initialization cancelled")
        sys.exit(1)
    except Exception as e:
        print(f"❌ Initialization failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
