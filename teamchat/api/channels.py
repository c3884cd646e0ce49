"""Channels API router — listing, CRUD, allowed roles and statistics."""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from teamchat.db.session import get_db
from teamchat.schemas.schemas import (
    ChannelCreate, ChannelUpdate, ChannelRolesUpdate, ChannelOut, ChannelStats, MessageResponse,
)
from teamchat.services.channel_service import channel_service
from teamchat.core.security import (
    get_current_user, RequirePermission, RequireAnyPermission,
    require_channel_read, require_channel_manage,
)
from teamchat.models.channel import ChannelVisibility
from teamchat.models.user import User

router = APIRouter(prefix="/channels", tags=["channels"])

require_channel_management = RequirePermission("channel_management")


@router.get("/", response_model=List[ChannelOut])
async def list_channels(
    visibility: Optional[ChannelVisibility] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Channels the caller can read."""
    return channel_service.list_accessible(db, user.roles, visibility, search)


@router.get("/all", response_model=List[ChannelOut])
async def list_all_channels(db: Session = Depends(get_db), user: User = Depends(require_channel_management)):
    return channel_service.list_all(db)


@router.get("/{channel_id}", response_model=ChannelOut)
async def get_channel(channel_id: str, db: Session = Depends(get_db), user: User = Depends(require_channel_read)):
    return channel_service.get(db, channel_id)


@router.post("/", response_model=ChannelOut, status_code=201)
async def create_channel(
    body: ChannelCreate,
    db: Session = Depends(get_db),
    user: User = Depends(RequireAnyPermission(["channel_management", "system_settings"])),
):
    return channel_service.create(
        db, body.name, body.visibility, body.allowed_roles, user.id, body.description
    )


@router.put("/{channel_id}", response_model=ChannelOut)
async def update_channel(
    channel_id: str,
    body: ChannelUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_channel_manage),
):
    return channel_service.update(db, channel_id, **body.model_dump(exclude_unset=True))


@router.put("/{channel_id}/permissions", response_model=ChannelOut)
async def update_channel_roles(
    channel_id: str,
    body: ChannelRolesUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_channel_management),
):
    """Replace the roles allowed into a channel."""
    return channel_service.update_allowed_roles(db, channel_id, body.allowed_roles)


@router.delete("/{channel_id}", response_model=MessageResponse)
async def delete_channel(
    channel_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_channel_management),
):
    channel_service.delete(db, channel_id)
    return MessageResponse(message="Channel deleted successfully")


@router.get("/{channel_id}/stats", response_model=ChannelStats)
async def channel_stats(channel_id: str, db: Session = Depends(get_db), user: User = Depends(require_channel_read)):
    return channel_service.stats(db, channel_id)
