"""Models package — import all models so metadata.create_all can discover them."""

from teamchat.models.role import Role
from teamchat.models.user import User
from teamchat.models.channel import Channel, ChannelVisibility
from teamchat.models.message import Message, MessageType
from teamchat.models.file_meta import FileMeta
from teamchat.models.system_setting import RefreshToken, SystemSetting

__all__ = [
    "Role", "User", "Channel", "ChannelVisibility",
    "Message", "MessageType", "FileMeta",
    "RefreshToken", "SystemSetting",
]
