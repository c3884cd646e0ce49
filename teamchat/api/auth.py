"""Auth API router — login, register, refresh, logout, me, admin key."""

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from teamchat.db.session import get_db
from teamchat.schemas.schemas import (
    LoginRequest, RegisterRequest, RefreshRequest, AdminKeyRequest,
    TokenResponse, UserOut, MeResponse, MessageResponse,
)
from teamchat.services.auth_service import auth_service
from teamchat.services.access_control import access_control
from teamchat.core.rate_limiter import (
    login_rate_limit, register_rate_limit, refresh_rate_limit, admin_key_rate_limit,
)
from teamchat.core.security import get_current_user, decode_token
from teamchat.core.exceptions import AuthenticationError
from teamchat.models.user import User

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse, dependencies=[Depends(login_rate_limit)])
async def login(body: LoginRequest, db: Session = Depends(get_db)):
    """Authenticate and return JWT tokens."""
    try:
        return auth_service.authenticate(db, body.username, body.password)
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail=str(e))


@router.post(
    "/register", response_model=TokenResponse, status_code=201,
    dependencies=[Depends(register_rate_limit)],
)
async def register(body: RegisterRequest, db: Session = Depends(get_db)):
    """Register a new member account (requires the admin key)."""
    try:
        return auth_service.register(
            db, body.username, body.password, body.display_name, body.admin_key
        )
    except AuthenticationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/refresh", response_model=TokenResponse, dependencies=[Depends(refresh_rate_limit)])
async def refresh(body: RefreshRequest, db: Session = Depends(get_db)):
    """Refresh access token."""
    try:
        return auth_service.refresh_access_token(db, body.refresh_token)
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail=str(e))


@router.post("/logout", response_model=MessageResponse)
async def logout(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Revoke all refresh tokens."""
    auth_service.logout(db, user.id)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=MeResponse)
async def get_me(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Current user profile with the union of granted permissions."""
    permissions = sorted(access_control.get_permissions(db, user.roles))
    return MeResponse(user=UserOut.model_validate(user), permissions=permissions)


@router.post("/validate-admin-key", dependencies=[Depends(admin_key_rate_limit)])
async def validate_admin_key(body: AdminKeyRequest, db: Session = Depends(get_db)):
    """Check a registration admin key without creating an account."""
    return {"valid": auth_service.validate_admin_key(db, body.admin_key)}


@router.get("/check-token")
async def check_token(request: Request):
    """Report whether the bearer token in the request is valid."""
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return {"valid": False, "error": "No token provided"}
    try:
        payload = decode_token(header[len("Bearer "):], expected_type="access")
    except HTTPException as e:
        return {"valid": False, "error": e.detail}
    return {"valid": True, "user": {"id": payload.get("sub"), "username": payload.get("username")}}
