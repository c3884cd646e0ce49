"""Admin API router — system settings, health and statistics."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from teamchat.db.session import get_db
from teamchat.schemas.schemas import AdminKeyUpdate, MessageResponse
from teamchat.services.auth_service import auth_service
from teamchat.services.cache_service import cache_service
from teamchat.models.channel import Channel
from teamchat.models.file_meta import FileMeta
from teamchat.models.message import Message
from teamchat.models.role import Role
from teamchat.models.user import User
from teamchat.core.security import require_admin

router = APIRouter(prefix="/admin", tags=["admin"])


@router.put("/settings/admin-key", response_model=MessageResponse)
async def update_admin_key(
    body: AdminKeyUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    """Rotate the registration admin key (admin only)."""
    auth_service.update_admin_key(db, body.new_key, user)
    return MessageResponse(message="Admin key updated")


@router.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """System health check — DB and Redis."""
    db_ok = False
    try:
        db.execute(text("SELECT 1"))
        db_ok = True
    except SQLAlchemyError:
        db_ok = False

    redis_ok = cache_service.health_check()

    return {
        "database": "ok" if db_ok else "error",
        "redis": "ok" if redis_ok else "error",
        "status": "healthy" if db_ok else "degraded",
    }


@router.get("/stats")
async def system_stats(
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    """Get system-level statistics."""
    return {
        "total_users": db.query(User).count(),
        "total_roles": db.query(Role).count(),
        "total_channels": db.query(Channel).count(),
        "total_messages": db.query(Message).count(),
        "total_files": db.query(FileMeta).count(),
    }
