"""Users API router — listing, search, roles and deactivation."""

from typing import List
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from teamchat.db.session import get_db
from teamchat.schemas.schemas import (
    UserOut, UserListResponse, UserRolesUpdate, UserUpdateRequest, UserStats,
)
from teamchat.services.user_service import user_service
from teamchat.core.security import require_admin, require_moderator
from teamchat.models.user import User

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/", response_model=UserListResponse)
async def list_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """List all users (admin only)."""
    result = user_service.list_users(db, page, page_size)
    return UserListResponse(
        users=[UserOut.model_validate(u) for u in result["users"]],
        total=result["total"],
        page=result["page"],
    )


@router.get("/stats", response_model=UserStats)
async def user_stats(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    """Totals, active/inactive split and counts per role."""
    return user_service.stats(db)


@router.get("/search/{query}", response_model=List[UserOut])
async def search_users(
    query: str,
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    moderator: User = Depends(require_moderator),
):
    """Search users by username or display name (moderator or admin)."""
    return user_service.search(db, query, limit)


@router.get("/{user_id}", response_model=UserOut)
async def get_user(user_id: str, db: Session = Depends(get_db), moderator: User = Depends(require_moderator)):
    return user_service.get(db, user_id)


@router.put("/{user_id}/roles", response_model=UserOut)
async def update_user_roles(
    user_id: str,
    body: UserRolesUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Replace a user's roles. Removing admin from the last active admin is refused."""
    return user_service.update_roles(db, user_id, body.roles)


@router.put("/{user_id}", response_model=UserOut)
async def update_user(
    user_id: str,
    body: UserUpdateRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return user_service.update(
        db, user_id, admin.id,
        display_name=body.display_name,
        avatar_url=body.avatar_url,
        is_active=body.is_active,
    )


@router.delete("/{user_id}", response_model=UserOut)
async def deactivate_user(
    user_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Deactivate a user (admin only). Users are never hard-deleted."""
    return user_service.deactivate(db, user_id, admin.id)
