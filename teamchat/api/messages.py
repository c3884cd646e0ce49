"""Messages API router — post, list, edit, delete, threads, reactions, search."""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from teamchat.db.session import get_db
from teamchat.schemas.schemas import (
    MessageCreate, MessageUpdate, MessageOut, MessageListResponse, ReactionRequest, MessageResponse,
)
from teamchat.services.message_service import message_service
from teamchat.core.security import get_current_user
from teamchat.models.user import User

router = APIRouter(prefix="/messages", tags=["messages"])


@router.post("/", response_model=MessageOut, status_code=201)
async def create_message(
    body: MessageCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Post a message or thread reply; requires write access to the channel."""
    return message_service.create(
        db, user,
        channel_id=body.channel_id,
        content=body.content,
        type=body.type,
        thread_id=body.thread_id,
        parent_message_id=body.parent_message_id,
        mentions=body.mentions,
        attachments=body.attachments,
    )


@router.get("/search", response_model=List[MessageOut])
async def search_messages(
    q: str = Query(..., min_length=1),
    channel_id: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return message_service.search(db, user, q, channel_id, limit)


@router.get("/channel/{channel_id}", response_model=MessageListResponse)
async def list_channel_messages(
    channel_id: str,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    thread_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Newest first; ``has_more`` is set when a full page came back."""
    return message_service.list_by_channel(db, user, channel_id, limit, offset, thread_id)


@router.get("/thread/{parent_id}", response_model=List[MessageOut])
async def get_thread(parent_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return message_service.thread(db, user, parent_id)


@router.get("/{message_id}", response_model=MessageOut)
async def get_message(message_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return message_service.get(db, user, message_id)


@router.put("/{message_id}", response_model=MessageOut)
async def update_message(
    message_id: str,
    body: MessageUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Edit content (author, admin or moderator)."""
    return message_service.update(db, user, message_id, body.content)


@router.delete("/{message_id}", response_model=MessageResponse)
async def delete_message(message_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    message_service.delete(db, user, message_id)
    return MessageResponse(message="Message deleted successfully")


@router.post("/{message_id}/reactions", response_model=MessageOut)
async def add_reaction(
    message_id: str,
    body: ReactionRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return message_service.add_reaction(db, user, message_id, body.emoji)


@router.delete("/{message_id}/reactions/{emoji}", response_model=MessageOut)
async def remove_reaction(
    message_id: str,
    emoji: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return message_service.remove_reaction(db, user, message_id, emoji)
