"""User model."""

import json

from sqlalchemy import Column, String, Text, Boolean, DateTime, func
from teamchat.db.base import Base, generate_uuid, load_json


class User(Base):
    """Chat user holding one or more role names."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    username = Column(String(50), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    display_name = Column(String(100), nullable=False)
    avatar_url = Column(String(500), nullable=True)
    roles_json = Column(Text, nullable=False, default='["member"]')
    is_active = Column(Boolean, default=True, nullable=False)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def roles(self) -> list:
        return load_json(self.roles_json, [])

    @roles.setter
    def roles(self, value: list) -> None:
        # keep first occurrence order, drop duplicates
        self.roles_json = json.dumps(list(dict.fromkeys(value or [])))

    def has_role(self, role_name: str) -> bool:
        return role_name in self.roles
