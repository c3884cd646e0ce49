"""Message model."""

import enum
import json

from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey, Enum, func
from teamchat.db.base import Base, generate_uuid, load_json


class MessageType(str, enum.Enum):
    text = "text"
    file = "file"
    system = "system"


class Message(Base):
    """A message posted in a channel, optionally a reply inside a thread."""
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    channel_id = Column(String(36), ForeignKey("channels.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    type = Column(Enum(MessageType), default=MessageType.text, nullable=False)
    thread_id = Column(String(36), nullable=True, index=True)
    parent_message_id = Column(String(36), ForeignKey("messages.id"), nullable=True)
    mentions_json = Column(Text, nullable=True)  # list of usernames
    reactions_json = Column(Text, nullable=True)  # [{"emoji", "users", "count"}]
    attachments_json = Column(Text, nullable=True)
    is_edited = Column(Boolean, default=False, nullable=False)
    edited_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False, index=True)

    @property
    def mentions(self) -> list:
        return load_json(self.mentions_json, [])

    @mentions.setter
    def mentions(self, value: list) -> None:
        self.mentions_json = json.dumps(value or [])

    @property
    def reactions(self) -> list:
        return load_json(self.reactions_json, [])

    @reactions.setter
    def reactions(self, value: list) -> None:
        self.reactions_json = json.dumps(value or [])

    @property
    def attachments(self) -> list:
        return load_json(self.attachments_json, [])

    @attachments.setter
    def attachments(self, value: list) -> None:
        self.attachments_json = json.dumps(value or [], default=str)
