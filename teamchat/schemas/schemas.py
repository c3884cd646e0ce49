"""Pydantic schemas for API request/response serialization."""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime

from teamchat.models.channel import ChannelVisibility
from teamchat.models.message import MessageType
from teamchat.services.backup_sinks import BackupMethod


# ---- Auth ----
class LoginRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=1, max_length=128)

class TokenResponse(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    user: Optional[Dict[str, Any]] = None

class RefreshRequest(BaseModel):
    refresh_token: str

class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=8, max_length=128)
    display_name: str = Field(..., min_length=1, max_length=100)
    admin_key: str = Field(..., min_length=1)

class AdminKeyRequest(BaseModel):
    admin_key: str = Field(..., min_length=1)

class AdminKeyUpdate(BaseModel):
    new_key: str = Field(..., min_length=8)


# ---- User ----
class UserOut(BaseModel):
    id: str
    username: str
    display_name: str
    avatar_url: Optional[str] = None
    roles: List[str] = []
    is_active: bool = True
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class MeResponse(BaseModel):
    user: UserOut
    permissions: List[str] = []

class UserListResponse(BaseModel):
    users: List[UserOut]
    total: int
    page: int

class UserRolesUpdate(BaseModel):
    roles: List[str] = Field(..., min_length=1)

class UserUpdateRequest(BaseModel):
    display_name: Optional[str] = Field(None, min_length=1, max_length=100)
    avatar_url: Optional[str] = None
    is_active: Optional[bool] = None

class UserStats(BaseModel):
    total: int
    active: int
    inactive: int
    by_role: Dict[str, int]


# ---- Role ----
class ChannelPermission(BaseModel):
    read: bool = False
    write: bool = False
    manage: bool = False

class RoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=255)
    permissions: Dict[str, bool] = {}
    channel_permissions: Dict[str, ChannelPermission] = {}

class RoleUpdate(BaseModel):
    description: Optional[str] = Field(None, max_length=255)
    permissions: Optional[Dict[str, bool]] = None

class RoleOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    permissions: Dict[str, bool] = {}
    channel_permissions: Dict[str, Dict[str, bool]] = {}
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ChannelAccessOut(BaseModel):
    role: str
    channel_id: str
    access_type: str
    has_access: bool


# ---- Channel ----
class ChannelCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    visibility: ChannelVisibility = ChannelVisibility.public
    allowed_roles: List[str] = Field(..., min_length=1)

class ChannelUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    visibility: Optional[ChannelVisibility] = None
    allowed_roles: Optional[List[str]] = None

class ChannelRolesUpdate(BaseModel):
    allowed_roles: List[str] = Field(..., min_length=1)

class ChannelOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    visibility: ChannelVisibility
    allowed_roles: List[str] = []
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ChannelStats(BaseModel):
    message_count: int
    member_count: int
    last_activity: Optional[datetime] = None


# ---- Message ----
class MessageCreate(BaseModel):
    channel_id: str
    content: str = Field(..., min_length=1, max_length=2000)
    type: MessageType = MessageType.text
    thread_id: Optional[str] = None
    parent_message_id: Optional[str] = None
    mentions: Optional[List[str]] = None
    attachments: Optional[List[Dict[str, Any]]] = None

class MessageUpdate(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)

class ReactionRequest(BaseModel):
    emoji: str = Field(..., min_length=1, max_length=32)

class Reaction(BaseModel):
    emoji: str
    users: List[str]
    count: int

class MessageOut(BaseModel):
    id: str
    channel_id: str
    user_id: str
    content: str
    type: MessageType
    thread_id: Optional[str] = None
    parent_message_id: Optional[str] = None
    mentions: List[str] = []
    reactions: List[Reaction] = []
    attachments: List[Dict[str, Any]] = []
    is_edited: bool = False
    edited_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    user: Optional[Dict[str, Any]] = None

class Pagination(BaseModel):
    limit: int
    offset: int
    has_more: bool

class MessageListResponse(BaseModel):
    messages: List[MessageOut]
    pagination: Pagination


# ---- File ----
class FileOut(BaseModel):
    id: str
    original_name: str
    mime_type: str
    size_bytes: int
    checksum_md5: Optional[str] = None
    uploaded_by: str
    channel_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class FileDownload(BaseModel):
    file: FileOut
    url: str


# ---- Backup ----
class BackupRequest(BaseModel):
    method: BackupMethod = BackupMethod.both
    retry: bool = False
    max_retries: int = Field(3, ge=1, le=10)

class BackupTestRequest(BaseModel):
    method: BackupMethod = BackupMethod.both


# ---- Generic ----
class MessageResponse(BaseModel):
    message: str
    detail: Optional[str] = None
