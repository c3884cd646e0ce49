"""Channel model."""

import enum
import json

from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Enum, func
from teamchat.db.base import Base, generate_uuid, load_json


class ChannelVisibility(str, enum.Enum):
    public = "public"
    private = "private"


class Channel(Base):
    """Chat channel, open to everyone (public) or gated by role (private)."""
    __tablename__ = "channels"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=True)
    visibility = Column(Enum(ChannelVisibility), default=ChannelVisibility.public, nullable=False)
    allowed_roles_json = Column(Text, nullable=False, default="[]")
    created_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def allowed_roles(self) -> list:
        return load_json(self.allowed_roles_json, [])

    @allowed_roles.setter
    def allowed_roles(self, value: list) -> None:
        self.allowed_roles_json = json.dumps(list(dict.fromkeys(value or [])))
