"""Seed default roles into the database."""

from sqlalchemy.orm import Session
from teamchat.models.role import Role

DEFAULT_ROLES = [
    {
        "name": "admin",
        "description": "Full system access: users, channels, settings and backups",
        "permissions": {
            "user_management": True,
            "channel_management": True,
            "system_settings": True,
            "backup_management": True,
        },
        "channel_default": {"read": True, "write": True, "manage": True},
    },
    {
        "name": "moderator",
        "description": "Manage channels and moderate messages",
        "permissions": {"channel_management": True, "message_moderation": True},
        "channel_default": {"read": True, "write": True, "manage": False},
    },
    {
        "name": "member",
        "description": "Post messages and upload files",
        "permissions": {"message_send": True, "file_upload": True},
        "channel_default": {"read": True, "write": True, "manage": False},
    },
    {
        "name": "viewer",
        "description": "Read-only access",
        "permissions": {"message_read": True},
        "channel_default": {"read": True, "write": False, "manage": False},
    },
]


def seed_roles(db: Session) -> None:
    """Insert default roles if they don't already exist."""
    created = 0
    for role_data in DEFAULT_ROLES:
        existing = db.query(Role).filter(Role.name == role_data["name"]).first()
        if existing:
            continue
        role = Role(name=role_data["name"], description=role_data["description"])
        role.permissions = role_data["permissions"]
        role.channel_permissions = {"default": dict(role_data["channel_default"])}
        db.add(role)
        created += 1

    db.commit()
    print(f"✅ Seeded {created} of {len(DEFAULT_ROLES)} roles")
