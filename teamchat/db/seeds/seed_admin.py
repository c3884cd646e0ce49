"""Seed the initial admin user from env vars."""

from sqlalchemy.orm import Session
from teamchat.models.user import User
from teamchat.models.role import Role
from teamchat.core.security import hash_password
from teamchat.core.config import settings


def seed_admin(db: Session) -> None:
    """Create the initial admin user if not already present."""
    admin_role = db.query(Role).filter(Role.name == "admin").first()
    if not admin_role:
        print("⚠️  admin role not found. Run seed_roles first.")
        return

    existing = db.query(User).filter(User.username == settings.INITIAL_ADMIN_USERNAME).first()
    if existing:
        print(f"ℹ️  Admin '{settings.INITIAL_ADMIN_USERNAME}' already exists, skipping.")
        return

    admin = User(
        username=settings.INITIAL_ADMIN_USERNAME,
        hashed_password=hash_password(settings.INITIAL_ADMIN_PASSWORD),
        display_name="Administrator",
        is_active=True,
    )
    admin.roles = ["admin"]
    db.add(admin)
    db.commit()
    print(f"✅ Created admin: {settings.INITIAL_ADMIN_USERNAME}")
