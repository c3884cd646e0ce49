"""Message service — posting, threads, reactions, mentions and search."""

import logging
import re
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

from sqlalchemy.orm import Session

from teamchat.core.config import settings
from teamchat.core.exceptions import (
    AuthorizationError, ResourceNotFoundError, ValidationError,
)
from teamchat.db.base import contains_pattern
from teamchat.models.message import Message, MessageType
from teamchat.models.user import User
from teamchat.services import realtime
from teamchat.services.channel_service import channel_service

logger = logging.getLogger(__name__)

MENTION_PATTERN = re.compile(r"@([a-zA-Z0-9_-]+)")
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
MODERATOR_ROLES = ("admin", "moderator")


def extract_mentions(content: str) -> List[str]:
    """Usernames referenced as ``@name``, in first-seen order."""
    return list(dict.fromkeys(MENTION_PATTERN.findall(content or "")))


def add_reaction(reactions: List[dict], emoji: str, user_id: str) -> List[dict]:
    """Return reactions with ``user_id`` added under ``emoji``; no-op if already present."""
    updated = [dict(r, users=list(r.get("users", []))) for r in reactions]
    for entry in updated:
        if entry.get("emoji") == emoji:
            if user_id not in entry["users"]:
                entry["users"].append(user_id)
            entry["count"] = len(entry["users"])
            return updated
    updated.append({"emoji": emoji, "users": [user_id], "count": 1})
    return updated


def remove_reaction(reactions: List[dict], emoji: str, user_id: str) -> List[dict]:
    """Return reactions without ``user_id`` under ``emoji``; empty entries are dropped."""
    updated = []
    for r in reactions:
        users = list(r.get("users", []))
        if r.get("emoji") == emoji:
            users = [u for u in users if u != user_id]
            if not users:
                continue
        updated.append({"emoji": r.get("emoji"), "users": users, "count": len(users)})
    return updated


def author_summary(user: Optional[User]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {
        "id": user.id,
        "username": user.username,
        "display_name": user.display_name,
        "avatar_url": user.avatar_url,
        "roles": user.roles,
    }


def serialize_message(message: Message, author: Optional[User] = None) -> Dict[str, Any]:
    return {
        "id": message.id,
        "channel_id": message.channel_id,
        "user_id": message.user_id,
        "content": message.content,
        "type": message.type.value if message.type else MessageType.text.value,
        "thread_id": message.thread_id,
        "parent_message_id": message.parent_message_id,
        "mentions": message.mentions,
        "reactions": message.reactions,
        "attachments": message.attachments,
        "is_edited": message.is_edited,
        "edited_at": message.edited_at,
        "created_at": message.created_at,
        "user": author_summary(author),
    }


class MessageService:
    """Channel messages. Every mutation is broadcast to the channel."""

    def __init__(self, broadcaster=None):
        self._broadcaster = broadcaster

    @property
    def broadcaster(self):
        return self._broadcaster or realtime.broadcaster

    # ---- helpers ----

    @staticmethod
    def _validate_content(content: str) -> str:
        if content is None or not content.strip():
            raise ValidationError("Message content is required")
        if len(content) > settings.MESSAGE_MAX_LENGTH:
            raise ValidationError(
                f"Message content must be at most {settings.MESSAGE_MAX_LENGTH} characters"
            )
        return content

    @staticmethod
    def _authors(db: Session, messages: List[Message]) -> Dict[str, User]:
        ids = {m.user_id for m in messages}
        if not ids:
            return {}
        return {u.id: u for u in db.query(User).filter(User.id.in_(ids)).all()}

    def _serialize_many(self, db: Session, messages: List[Message]) -> List[Dict[str, Any]]:
        authors = self._authors(db, messages)
        return [serialize_message(m, authors.get(m.user_id)) for m in messages]

    @staticmethod
    def _valid_mentions(db: Session, usernames: List[str]) -> List[str]:
        if not usernames:
            return []
        existing = {
            name for (name,) in db.query(User.username).filter(
                User.username.in_(usernames), User.is_active == True,  # noqa: E712
            ).all()
        }
        return [u for u in usernames if u in existing]

    @staticmethod
    def find(db: Session, message_id: Any) -> Optional[Message]:
        if not isinstance(message_id, str) or not message_id:
            return None
        return db.query(Message).filter(Message.id == message_id).first()

    @staticmethod
    def get_or_404(db: Session, message_id: str) -> Message:
        message = MessageService.find(db, message_id)
        if not message:
            raise ResourceNotFoundError("Message not found")
        return message

    @staticmethod
    def _require_channel(db: Session, channel_id: str, user: User, access_type: str, detail: str) -> None:
        if channel_service.find(db, channel_id) is None:
            raise ResourceNotFoundError("Channel not found")
        if not channel_service.can_access(db, channel_id, user.roles, access_type):
            raise AuthorizationError(detail)

    # ---- operations ----

    def create(
        self,
        db: Session,
        user: User,
        channel_id: str,
        content: str,
        type: MessageType = MessageType.text,
        thread_id: Optional[str] = None,
        parent_message_id: Optional[str] = None,
        mentions: Optional[List[str]] = None,
        attachments: Optional[List[dict]] = None,
    ) -> Dict[str, Any]:
        self._validate_content(content)
        self._require_channel(db, channel_id, user, "write", "You do not have permission to post in this channel")

        if parent_message_id:
            parent = self.find(db, parent_message_id)
            if parent is None:
                raise ResourceNotFoundError("Parent message not found")
            if parent.channel_id != channel_id:
                raise ValidationError("Parent message belongs to another channel")
            thread_id = thread_id or parent.thread_id or parent.id

        requested = mentions if mentions is not None else extract_mentions(content)
        message = Message(
            channel_id=channel_id,
            user_id=user.id,
            content=content,
            type=MessageType(type),
            thread_id=thread_id,
            parent_message_id=parent_message_id,
        )
        message.mentions = self._valid_mentions(db, list(dict.fromkeys(requested)))
        message.reactions = []
        message.attachments = attachments or []
        db.add(message)
        db.commit()
        db.refresh(message)

        payload = serialize_message(message, user)
        event = realtime.THREAD_MESSAGE if thread_id else realtime.MESSAGE_NEW
        self.broadcaster.broadcast(channel_id, event, payload)
        logger.debug("Message %s posted to channel %s", message.id, channel_id)
        return payload

    def list_by_channel(
        self,
        db: Session,
        user: User,
        channel_id: str,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
        thread_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Newest first. Without ``thread_id`` only top-level messages are listed."""
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(f"Limit must be between 1 and {MAX_PAGE_SIZE}")
        if offset < 0:
            raise ValidationError("Offset must be a positive integer")
        self._require_channel(db, channel_id, user, "read", "You do not have permission to read this channel")

        query = db.query(Message).filter(Message.channel_id == channel_id)
        if thread_id:
            query = query.filter(Message.thread_id == thread_id)
        else:
            query = query.filter(Message.parent_message_id.is_(None))
        messages = (
            query.order_by(Message.created_at.desc(), Message.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return {
            "messages": self._serialize_many(db, messages),
            "pagination": {"limit": limit, "offset": offset, "has_more": len(messages) == limit},
        }

    def get(self, db: Session, user: User, message_id: str) -> Dict[str, Any]:
        message = self.get_or_404(db, message_id)
        if not channel_service.can_access(db, message.channel_id, user.roles, "read"):
            raise AuthorizationError("You do not have permission to view this message")
        return self._serialize_many(db, [message])[0]

    def update(self, db: Session, user: User, message_id: str, content: str) -> Dict[str, Any]:
        self._validate_content(content)
        message = self.get_or_404(db, message_id)
        is_author = message.user_id == user.id
        if not is_author and not set(MODERATOR_ROLES) & set(user.roles):
            raise AuthorizationError("You do not have permission to edit this message")

        message.content = content
        message.mentions = self._valid_mentions(db, extract_mentions(content))
        message.is_edited = True
        message.edited_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(message)

        payload = self._serialize_many(db, [message])[0]
        self.broadcaster.broadcast(message.channel_id, realtime.MESSAGE_UPDATED, payload)
        return payload

    def delete(self, db: Session, user: User, message_id: str) -> None:
        message = self.get_or_404(db, message_id)
        if message.user_id != user.id and not set(MODERATOR_ROLES) & set(user.roles):
            raise AuthorizationError("You can only delete your own messages")
        channel_id = message.channel_id
        # replies go with their parent
        db.query(Message).filter(Message.parent_message_id == message.id).delete(synchronize_session=False)
        db.delete(message)
        db.commit()
        self.broadcaster.broadcast(channel_id, realtime.MESSAGE_DELETED, {"id": message_id})

    def thread(self, db: Session, user: User, parent_id: str) -> List[Dict[str, Any]]:
        """Replies to ``parent_id`` in chronological order."""
        parent = self.find(db, parent_id)
        if parent is None:
            raise ResourceNotFoundError("Parent message not found")
        if not channel_service.can_access(db, parent.channel_id, user.roles, "read"):
            raise AuthorizationError("You do not have permission to view this thread")
        replies = (
            db.query(Message)
            .filter(Message.parent_message_id == parent_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
            .all()
        )
        return self._serialize_many(db, replies)

    def _react(self, db: Session, user: User, message_id: str, emoji: str, adding: bool) -> Dict[str, Any]:
        if not emoji or len(emoji) > 32:
            raise ValidationError("Emoji is required")
        message = self.get_or_404(db, message_id)
        if not channel_service.can_access(db, message.channel_id, user.roles, "read"):
            raise AuthorizationError("You do not have permission to react to this message")
        if adding:
            message.reactions = add_reaction(message.reactions, emoji, user.id)
        else:
            message.reactions = remove_reaction(message.reactions, emoji, user.id)
        db.commit()
        db.refresh(message)
        self.broadcaster.broadcast(
            message.channel_id,
            realtime.REACTION_UPDATED,
            {"message_id": message.id, "reactions": message.reactions},
        )
        return self._serialize_many(db, [message])[0]

    def add_reaction(self, db: Session, user: User, message_id: str, emoji: str) -> Dict[str, Any]:
        return self._react(db, user, message_id, emoji, adding=True)

    def remove_reaction(self, db: Session, user: User, message_id: str, emoji: str) -> Dict[str, Any]:
        return self._react(db, user, message_id, emoji, adding=False)

    def search(
        self,
        db: Session,
        user: User,
        query: str,
        channel_id: Optional[str] = None,
        limit: int = 20,
    ) -> List[Dict[str, Any]]:
        """Substring search, restricted to channels the user can read."""
        if not query or not query.strip():
            raise ValidationError("Search query is required")
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(f"Limit must be between 1 and {MAX_PAGE_SIZE}")
        if channel_id and not channel_service.can_access(db, channel_id, user.roles, "read"):
            raise AuthorizationError("You do not have permission to search in this channel")

        q = db.query(Message).filter(Message.content.ilike(contains_pattern(query.strip()), escape="\\"))
        if channel_id:
            q = q.filter(Message.channel_id == channel_id)
        candidates = q.order_by(Message.created_at.desc(), Message.id.desc()).all()

        readable: Dict[str, bool] = {}
        results = []
        for m in candidates:
            if m.channel_id not in readable:
                readable[m.channel_id] = channel_service.can_access(db, m.channel_id, user.roles, "read")
            if readable[m.channel_id]:
                results.append(m)
            if len(results) >= limit:
                break
        return self._serialize_many(db, results)


message_service = MessageService()
