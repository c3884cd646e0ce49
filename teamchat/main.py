"""FastAPI main application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect, status
from fastapi.responses import JSONResponse

from teamchat.core.config import settings
from teamchat.core.middleware import setup_middleware
from teamchat.core.exceptions import TeamChatError
from teamchat.core.security import decode_token
from teamchat.db.session import SessionLocal
from teamchat.models.user import User
from teamchat.services.channel_service import channel_service
from teamchat.services.realtime import broadcaster, ws_manager

from teamchat.api.auth import router as auth_router
from teamchat.api.users import router as users_router
from teamchat.api.roles import router as roles_router
from teamchat.api.channels import router as channels_router
from teamchat.api.messages import router as messages_router
from teamchat.api.files import router as files_router
from teamchat.api.backup import router as backup_router
from teamchat.api.admin import router as admin_router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("teamchat")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("🚀 Starting TeamChat API")
    broadcaster.attach_loop(asyncio.get_running_loop())

    # Ensure MinIO bucket exists
    try:
        from teamchat.services.file_service import file_service
        file_service.ensure_bucket()
        logger.info("✅ MinIO bucket ready")
    except Exception as e:
        logger.warning(f"⚠️  MinIO not available: {e}")

    # Redis check
    from teamchat.services.cache_service import cache_service
    if cache_service.health_check():
        logger.info("✅ Redis connected")
    else:
        logger.warning("⚠️  Redis not available")

    yield

    logger.info("🔻 Shutting down TeamChat API")


app = FastAPI(
    title="TeamChat API",
    description="Team chat backend with role-based access control and database backups",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Middleware
setup_middleware(app)


# Domain errors carry their own HTTP status
@app.exception_handler(TeamChatError)
async def teamchat_exception_handler(request: Request, exc: TeamChatError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
    )

# Register routers
app.include_router(auth_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(roles_router, prefix="/api")
app.include_router(channels_router, prefix="/api")
app.include_router(messages_router, prefix="/api")
app.include_router(files_router, prefix="/api")
app.include_router(backup_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/api/health")
async def health():
    """Quick health check endpoint."""
    return {"status": "ok"}


def authorize_socket(token: str, channel_id: str) -> Optional[User]:
    """Resolve the token's user if they may read the channel. The session is closed before returning."""
    try:
        payload = decode_token(token, expected_type="access")
    except HTTPException:
        return None

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.id == payload.get("sub")).first()
        if not user or not user.is_active:
            return None
        if not channel_service.can_access(db, channel_id, user.roles, "read"):
            return None
        db.expunge(user)
        return user
    finally:
        db.close()


@app.websocket("/ws/channels/{channel_id}")
async def websocket_channel(websocket: WebSocket, channel_id: str, token: str = Query("")):
    """Live channel events. Requires a valid access token and read access."""
    user = await asyncio.to_thread(authorize_socket, token, channel_id)
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await ws_manager.connect(websocket, channel_id)
    logger.debug("User %s joined channel %s", user.username, channel_id)
    try:
        while True:
            # clients may send "ping" to keep the socket open
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        logger.debug("User %s left channel %s", user.username, channel_id)
    finally:
        ws_manager.disconnect(websocket, channel_id)
