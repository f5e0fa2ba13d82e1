#!/usr/bin/env python3
"""
Staff User Seed Script
Creates (or promotes) a staff account for the warranty admin surface.

Usage:
    python -m scripts.seed_admin <username> <password> [email] [role]

    role is "admin" (default) or "staff".

Example:
    python -m scripts.seed_admin admin securepassword123 admin@example.com
"""
import sys
import os
from typing import Optional
from uuid import uuid4

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.orm import Session
from app.database import SessionLocal, init_db
from app.models.db_models import UserDB, UserRole
from app.auth import hash_password


def create_staff_user(
    username: str,
    password: str,
    email: Optional[str] = None,
    role: str = UserRole.ADMIN.value,
    session_factory=SessionLocal,
) -> bool:
    """Create a staff user, or change the role of an existing one."""
    db: Session = session_factory()
    try:
        existing = db.query(UserDB).filter(UserDB.username == username).first()

        if existing:
            if existing.role == role:
                print(f"Error: Username '{username}' already exists with role '{role}'.")
                return False
            existing.role = role
            existing.is_active = True
            db.commit()
            print(f"Changed role of existing user '{username}' to {role}.")
            return True

        user = UserDB(
            id=str(uuid4()),
            username=username,
            email=email,
            password_hash=hash_password(password),
            role=role,
            is_active=True,
        )

        db.add(user)
        db.commit()

        print("Staff user created successfully!")
        print(f"  Username: {username}")
        print(f"  Email: {email or '-'}")
        print(f"  Role: {role}")
        return True

    except Exception as e:
        print(f"Error creating staff user: {e}")
        db.rollback()
        return False
    finally:
        db.close()


def main():
    if len(sys.argv) not in (3, 4, 5):
        print(__doc__)
        sys.exit(1)

    username = sys.argv[1]
    password = sys.argv[2]
    email = sys.argv[3] if len(sys.argv) > 3 else None
    role = sys.argv[4] if len(sys.argv) > 4 else UserRole.ADMIN.value

    # Basic validation
    if len(password) < 8:
        print("Error: Password must be at least 8 characters.")
        sys.exit(1)

    if email is not None and "@" not in email:
        print("Error: Invalid email format.")
        sys.exit(1)

    if role not in (UserRole.ADMIN.value, UserRole.STAFF.value):
        print("Error: Role must be 'admin' or 'staff'.")
        sys.exit(1)

    # Ensure tables exist
    init_db()
    success = create_staff_user(username, password, email, role)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
