"""JWT authentication and RBAC authorization helpers."""

import uuid

import bcrypt
from datetime import datetime, timedelta, timezone
from typing import Optional, List, Sequence

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from teamchat.core.config import settings
from teamchat.core.exceptions import forbidden, not_found, unauthorized
from teamchat.db.session import get_db
from teamchat.models.user import User
from teamchat.services.access_control import access_control
from teamchat.services.channel_service import channel_service

# JWT bearer scheme
security_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    pwd_bytes = password.encode("utf-8")
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(pwd_bytes, salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    pwd_bytes = plain_password.encode("utf-8")
    hashed_bytes = hashed_password.encode("utf-8")
    return bcrypt.checkpw(pwd_bytes, hashed_bytes)


def _encode(data: dict, expire: datetime, token_type: str) -> str:
    to_encode = data.copy()
    to_encode.update({
        "exp": expire,
        "iat": datetime.now(timezone.utc),
        "iss": settings.JWT_ISSUER,
        "aud": settings.JWT_AUDIENCE,
        "type": token_type,
    })
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.JWT_EXPIRY_MINUTES)
    )
    return _encode(data, expire, "access")


def create_refresh_token(data: dict) -> str:
    """Create a JWT refresh token."""
    expire = datetime.now(timezone.utc) + timedelta(days=settings.REFRESH_TOKEN_EXPIRY_DAYS)
    # unique per token; stored hashes must not collide
    return _encode({**data, "jti": str(uuid.uuid4())}, expire, "refresh")


def decode_token(token: str, expected_type: Optional[str] = None) -> dict:
    """Decode and validate a JWT token (signature, expiry, issuer, audience)."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
        )
    except JWTError:
        raise unauthorized("Invalid or expired token")
    if expected_type and payload.get("type") != expected_type:
        raise unauthorized("Invalid token type")
    return payload


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
) -> str:
    """Extract user_id from the JWT Bearer token."""
    if credentials is None:
        raise unauthorized("Access token required")
    payload = decode_token(credentials.credentials, expected_type="access")
    user_id = payload.get("sub")
    if not user_id:
        raise unauthorized("Invalid token payload")
    return str(user_id)


def get_current_user(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> User:
    """Load the authenticated user; roles always come from storage, not the token."""
    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        raise unauthorized("User not found or inactive")
    return user


class RequireRole:
    """Dependency that requires the user to hold one of the given roles."""

    def __init__(self, *roles: str):
        self.roles = set(roles)

    def __call__(self, user: User = Depends(get_current_user)) -> User:
        if not self.roles & set(user.roles):
            raise forbidden()
        return user


class RequirePermission:
    """Dependency that requires a single global permission."""

    def __init__(self, permission: str):
        self.permission = permission

    def __call__(self, user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> User:
        if not access_control.principal_has_permission(db, user.roles, self.permission):
            raise forbidden()
        return user


class RequireAllPermissions:
    """Dependency that requires every listed permission (union across roles)."""

    def __init__(self, permissions: Sequence[str]):
        self.permissions: List[str] = list(permissions)

    def __call__(self, user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> User:
        if not access_control.principal_has_all_permissions(db, user.roles, self.permissions):
            raise forbidden()
        return user


class RequireAnyPermission:
    """Dependency that requires at least one listed permission."""

    def __init__(self, permissions: Sequence[str]):
        self.permissions: List[str] = list(permissions)

    def __call__(self, user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> User:
        if not access_control.principal_has_any_permission(db, user.roles, self.permissions):
            raise forbidden()
        return user


class RequireChannelAccess:
    """Dependency guarding routes with a ``channel_id`` path parameter."""

    def __init__(self, access_type: str = "read"):
        self.access_type = access_type

    def __call__(
        self,
        channel_id: str,
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> User:
        if channel_service.find(db, channel_id) is None:
            raise not_found("Channel not found")
        if not channel_service.can_access(db, channel_id, user.roles, self.access_type):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"No {self.access_type} access to this channel",
            )
        return user


# Convenience dependency factories
require_admin = RequireRole("admin")
require_moderator = RequireRole("admin", "moderator")
require_channel_read = RequireChannelAccess("read")
require_channel_write = RequireChannelAccess("write")
require_channel_manage = RequireChannelAccess("manage")
