"""Seed the general channel and default system settings."""

import json

from sqlalchemy.orm import Session
from teamchat.core.config import settings
from teamchat.models.channel import Channel, ChannelVisibility
from teamchat.models.system_setting import SystemSetting
from teamchat.models.user import User

DEFAULT_SETTINGS = [
    ("admin_key", lambda: settings.ADMIN_KEY, "Registration admin key"),
    ("max_file_size", lambda: settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024, "Maximum upload size in bytes"),
    ("backup_schedule", lambda: settings.BACKUP_SCHEDULE, "Cron expression for scheduled backups"),
]


def seed_defaults(db: Session) -> None:
    """Create the ``general`` channel and any missing system settings."""
    if not db.query(Channel).filter(Channel.name == "general").first():
        admin = db.query(User).filter(User.username == settings.INITIAL_ADMIN_USERNAME).first()
        channel = Channel(
            name="general",
            description="Company-wide announcements and chat",
            visibility=ChannelVisibility.public,
            created_by=admin.id if admin else None,
        )
        channel.allowed_roles = ["admin", "moderator", "member", "viewer"]
        db.add(channel)
        print("✅ Created channel: general")

    for key, value, description in DEFAULT_SETTINGS:
        if not db.query(SystemSetting).filter(SystemSetting.key == key).first():
            db.add(SystemSetting(key=key, value=json.dumps(value()), description=description))

    db.commit()
    print("✅ System settings seeded")
