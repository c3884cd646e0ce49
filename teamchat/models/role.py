"""Role model for RBAC."""

import json

from sqlalchemy import Column, String, Text, DateTime, func
from teamchat.db.base import Base, generate_uuid, load_json

DEFAULT_CHANNEL_PERMISSION = {"read": True, "write": False, "manage": False}
CHANNEL_ACCESS_TYPES = ("read", "write", "manage")


class Role(Base):
    """Named bundle of global permission flags and per-channel overrides.

    ``channel_permissions`` maps a channel id (or ``"default"``) to a
    ``{read, write, manage}`` dict. The ``default`` entry is always present
    when read through the property.
    """
    __tablename__ = "roles"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(50), unique=True, nullable=False, index=True)
    description = Column(String(255), nullable=True)
    permissions_json = Column(Text, nullable=True)  # {"permission_name": bool}
    channel_permissions_json = Column(Text, nullable=True)  # {"default"|channel_id: {read, write, manage}}
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def permissions(self) -> dict:
        return load_json(self.permissions_json, {})

    @permissions.setter
    def permissions(self, value: dict) -> None:
        self.permissions_json = json.dumps(value or {})

    @property
    def channel_permissions(self) -> dict:
        overrides = load_json(self.channel_permissions_json, {})
        if not isinstance(overrides.get("default"), dict):
            overrides["default"] = dict(DEFAULT_CHANNEL_PERMISSION)
        return overrides

    @channel_permissions.setter
    def channel_permissions(self, value: dict) -> None:
        overrides = dict(value or {})
        overrides.setdefault("default", dict(DEFAULT_CHANNEL_PERMISSION))
        self.channel_permissions_json = json.dumps(overrides)
