"""Roles API router — role CRUD and per-channel permission overrides."""

from typing import List
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from teamchat.db.session import get_db
from teamchat.schemas.schemas import (
    RoleCreate, RoleUpdate, RoleOut, ChannelPermission, ChannelAccessOut, MessageResponse,
)
from teamchat.services.role_service import role_service
from teamchat.core.security import get_current_user, require_admin
from teamchat.models.user import User

router = APIRouter(prefix="/roles", tags=["roles"])


@router.get("/", response_model=List[RoleOut])
async def list_roles(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return role_service.list_roles(db)


@router.get("/{role_id}", response_model=RoleOut)
async def get_role(role_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return role_service.get(db, role_id)


@router.post("/", response_model=RoleOut, status_code=201)
async def create_role(body: RoleCreate, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    """Create a role (admin only)."""
    return role_service.create(
        db,
        body.name,
        body.description,
        body.permissions,
        {cid: perm.model_dump() for cid, perm in body.channel_permissions.items()},
    )


@router.put("/{role_id}", response_model=RoleOut)
async def update_role(
    role_id: str,
    body: RoleUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return role_service.update(db, role_id, body.description, body.permissions)


@router.delete("/{role_id}", response_model=MessageResponse)
async def delete_role(role_id: str, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    """Delete a custom role. System roles are protected."""
    role_service.delete(db, role_id)
    return MessageResponse(message="Role deleted successfully")


@router.put("/{role_id}/channels/default", response_model=RoleOut)
async def update_default_channel_permission(
    role_id: str,
    body: ChannelPermission,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return role_service.update_default_channel_permission(db, role_id, body.model_dump())


@router.put("/{role_id}/channels/{channel_id}", response_model=RoleOut)
async def set_channel_permission(
    role_id: str,
    channel_id: str,
    body: ChannelPermission,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return role_service.set_channel_permission(db, role_id, channel_id, body.model_dump())


@router.delete("/{role_id}/channels/{channel_id}", response_model=RoleOut)
async def remove_channel_permission(
    role_id: str,
    channel_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return role_service.remove_channel_permission(db, role_id, channel_id)


@router.get("/{role_name}/channels/{channel_id}/access", response_model=ChannelAccessOut)
async def check_channel_access(
    role_name: str,
    channel_id: str,
    access_type: str = Query("read", pattern="^(read|write|manage)$"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Resolve a role's per-channel override (falling back to its default)."""
    return ChannelAccessOut(
        role=role_name,
        channel_id=channel_id,
        access_type=access_type,
        has_access=role_service.has_channel_access(db, role_name, channel_id, access_type),
    )
