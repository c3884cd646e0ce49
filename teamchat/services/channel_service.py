"""Channel service — channel CRUD, statistics, and channel-level authorization."""

import logging
from typing import Optional, Dict, Any, Iterable, List

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from teamchat.core.exceptions import ResourceNotFoundError, ValidationError
from teamchat.db.base import contains_pattern
from teamchat.models.channel import Channel, ChannelVisibility
from teamchat.models.message import Message
from teamchat.models.role import CHANNEL_ACCESS_TYPES
from teamchat.models.user import User

logger = logging.getLogger(__name__)


def can_access_channel(channel: Optional[Channel], role_names: Iterable[str], access_type: str = "read") -> bool:
    """Resolve read/write/manage access to one channel.

    Public channels admit every authenticated principal for every access type,
    ``manage`` included. Private channels admit a principal holding at least
    one of ``allowed_roles``; role overlap grants all three access types.
    """
    if channel is None or access_type not in CHANNEL_ACCESS_TYPES:
        return False
    if channel.visibility == ChannelVisibility.public:
        return True
    return bool(set(role_names or ()) & set(channel.allowed_roles))


class ChannelService:
    """Manages channels and answers channel access questions."""

    @staticmethod
    def find(db: Session, channel_id: Any) -> Optional[Channel]:
        """Return the channel or None; malformed ids are simply not found."""
        if not isinstance(channel_id, str) or not channel_id:
            return None
        return db.query(Channel).filter(Channel.id == channel_id).first()

    @staticmethod
    def get(db: Session, channel_id: str) -> Channel:
        channel = ChannelService.find(db, channel_id)
        if not channel:
            raise ResourceNotFoundError("Channel not found")
        return channel

    @staticmethod
    def can_access(db: Session, channel_id: Any, role_names: Iterable[str], access_type: str = "read") -> bool:
        """Re-read the channel and decide; never raises."""
        try:
            channel = ChannelService.find(db, channel_id)
        except SQLAlchemyError:
            logger.exception("Channel lookup failed for %s", channel_id)
            return False
        if channel is None:
            logger.debug("Channel %s not found", channel_id)
            return False
        return can_access_channel(channel, role_names, access_type)

    @staticmethod
    def create(
        db: Session,
        name: str,
        visibility: ChannelVisibility,
        allowed_roles: List[str],
        created_by: Optional[str],
        description: Optional[str] = None,
    ) -> Channel:
        if not allowed_roles:
            raise ValidationError("allowed_roles must contain at least one role")
        channel = Channel(
            name=name,
            description=description or "",
            visibility=visibility,
            created_by=created_by,
        )
        channel.allowed_roles = allowed_roles
        db.add(channel)
        db.commit()
        db.refresh(channel)
        return channel

    @staticmethod
    def list_accessible(
        db: Session,
        role_names: Iterable[str],
        visibility: Optional[ChannelVisibility] = None,
        search: Optional[str] = None,
    ) -> List[Channel]:
        """Channels the principal can read, ordered by name."""
        query = db.query(Channel)
        if visibility:
            query = query.filter(Channel.visibility == ChannelVisibility(visibility))
        if search:
            query = query.filter(Channel.name.ilike(contains_pattern(search), escape="\\"))
        role_names = list(role_names or ())
        return [c for c in query.order_by(Channel.name).all() if can_access_channel(c, role_names, "read")]

    @staticmethod
    def list_all(db: Session) -> List[Channel]:
        return db.query(Channel).order_by(Channel.created_at.desc()).all()

    @staticmethod
    def update(db: Session, channel_id: str, **changes) -> Channel:
        """Apply name / description / visibility / allowed_roles changes."""
        channel = ChannelService.get(db, channel_id)
        if changes.get("name"):
            channel.name = changes["name"]
        if changes.get("description") is not None:
            channel.description = changes["description"]
        if changes.get("visibility"):
            channel.visibility = ChannelVisibility(changes["visibility"])
        if changes.get("allowed_roles") is not None:
            if not changes["allowed_roles"]:
                raise ValidationError("allowed_roles must contain at least one role")
            channel.allowed_roles = changes["allowed_roles"]
        db.commit()
        db.refresh(channel)
        return channel

    @staticmethod
    def update_allowed_roles(db: Session, channel_id: str, allowed_roles: List[str]) -> Channel:
        return ChannelService.update(db, channel_id, allowed_roles=allowed_roles)

    @staticmethod
    def delete(db: Session, channel_id: str) -> None:
        channel = ChannelService.get(db, channel_id)
        db.query(Message).filter(Message.channel_id == channel.id).delete(synchronize_session=False)
        db.delete(channel)
        db.commit()

    @staticmethod
    def stats(db: Session, channel_id: str) -> Dict[str, Any]:
        """Message count, member count, and last activity for a channel."""
        channel = ChannelService.get(db, channel_id)
        message_count = db.query(Message).filter(Message.channel_id == channel.id).count()
        last_activity = (
            db.query(func.max(Message.created_at))
            .filter(Message.channel_id == channel.id)
            .scalar()
        )
        allowed = set(channel.allowed_roles)
        active_users = db.query(User).filter(User.is_active == True).all()  # noqa: E712
        member_count = sum(1 for u in active_users if allowed & set(u.roles))
        return {
            "message_count": message_count,
            "member_count": member_count,
            "last_activity": last_activity,
        }


channel_service = ChannelService()
