"""Auth service — JWT login, registration, refresh and the admin key."""

from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
import hashlib
import hmac
import json
import logging
import re

from sqlalchemy.orm import Session

from teamchat.core.config import settings
from teamchat.core.exceptions import (
    AuthenticationError, AuthorizationError, ResourceConflictError, ValidationError,
)
from teamchat.core.security import (
    hash_password, verify_password,
    create_access_token, create_refresh_token, decode_token,
)
from teamchat.models.system_setting import RefreshToken, SystemSetting
from teamchat.models.user import User

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{3,50}$")
ADMIN_KEY_SETTING = "admin_key"
MIN_ADMIN_KEY_LENGTH = 8


def validate_password(password: str) -> List[str]:
    """Return the list of password policy violations (empty when valid)."""
    errors = []
    if len(password) < 8:
        errors.append("Password must be at least 8 characters long")
    if len(password) > 128:
        errors.append("Password must be less than 128 characters")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")
    return errors


def _token_hash(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def _user_payload(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "display_name": user.display_name,
        "avatar_url": user.avatar_url,
        "roles": user.roles,
        "is_active": user.is_active,
    }


class AuthService:
    """Handles authentication, registration and the registration admin key."""

    @staticmethod
    def _issue_tokens(db: Session, user: User) -> Dict[str, Any]:
        token_data = {
            "sub": str(user.id),
            "username": user.username,
            "roles": user.roles,
        }
        access_token = create_access_token(token_data)
        refresh_token_str = create_refresh_token(token_data)

        # Store refresh token hash
        rt = RefreshToken(
            user_id=user.id,
            token_hash=_token_hash(refresh_token_str),
            expires_at=datetime.fromtimestamp(decode_token(refresh_token_str)["exp"], tz=timezone.utc),
        )
        db.add(rt)
        return {
            "access_token": access_token,
            "refresh_token": refresh_token_str,
            "token_type": "bearer",
            "user": _user_payload(user),
        }

    @staticmethod
    def authenticate(db: Session, username: str, password: str) -> Dict[str, Any]:
        """Authenticate user and return JWT tokens.

        Raises:
            AuthenticationError: If credentials are invalid or the account is inactive.
        """
        user = db.query(User).filter(User.username == username).first()
        if not user or not verify_password(password, user.hashed_password):
            raise AuthenticationError("Invalid username or password")

        if not user.is_active:
            raise AuthenticationError("Account is deactivated")

        tokens = AuthService._issue_tokens(db, user)
        user.last_login_at = datetime.now(timezone.utc)
        db.commit()
        logger.info("User %s logged in", user.username)
        return tokens

    @staticmethod
    def register(
        db: Session,
        username: str,
        password: str,
        display_name: str,
        admin_key: str,
    ) -> Dict[str, Any]:
        """Create a ``member`` account. Requires the current admin key."""
        if not AuthService.validate_admin_key(db, admin_key):
            raise AuthenticationError("Invalid admin key")
        if not USERNAME_PATTERN.match(username or ""):
            raise ValidationError(
                "Username must be 3-50 characters of letters, numbers, hyphens and underscores"
            )
        errors = validate_password(password or "")
        if errors:
            raise ValidationError(", ".join(errors))
        if db.query(User).filter(User.username == username).first():
            raise ResourceConflictError("Username already exists")

        user = AuthService.create_user(db, username, password, display_name, ["member"])
        tokens = AuthService._issue_tokens(db, user)
        db.commit()
        logger.info("Registered user %s", username)
        return tokens

    @staticmethod
    def create_user(
        db: Session,
        username: str,
        password: str,
        display_name: str,
        roles: Optional[List[str]] = None,
    ) -> User:
        """Create a new user."""
        if db.query(User).filter(User.username == username).first():
            raise ResourceConflictError(f"User {username} already exists")
        user = User(
            username=username,
            hashed_password=hash_password(password),
            display_name=display_name or username,
            is_active=True,
        )
        user.roles = roles or ["member"]
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def refresh_access_token(db: Session, refresh_token: str) -> Dict[str, Any]:
        """Refresh access token using a valid, unrevoked refresh token."""
        payload = decode_token(refresh_token, expected_type="refresh")
        stored = db.query(RefreshToken).filter(
            RefreshToken.token_hash == _token_hash(refresh_token),
            RefreshToken.revoked_at.is_(None),
        ).first()
        if not stored:
            raise AuthenticationError("Invalid refresh token")

        user = db.query(User).filter(User.id == payload["sub"]).first()
        if not user or not user.is_active:
            raise AuthenticationError("User not found or deactivated")

        token_data = {
            "sub": str(user.id),
            "username": user.username,
            "roles": user.roles,
        }
        return {
            "access_token": create_access_token(token_data),
            "token_type": "bearer",
        }

    @staticmethod
    def logout(db: Session, user_id: str) -> None:
        """Revoke all refresh tokens for a user."""
        db.query(RefreshToken).filter(
            RefreshToken.user_id == user_id,
            RefreshToken.revoked_at.is_(None),
        ).update({"revoked_at": datetime.now(timezone.utc)})
        db.commit()

    @staticmethod
    def get_admin_key(db: Session) -> str:
        """Stored admin key, falling back to ``settings.ADMIN_KEY``."""
        setting = db.query(SystemSetting).filter(SystemSetting.key == ADMIN_KEY_SETTING).first()
        if not setting or not setting.value:
            return settings.ADMIN_KEY
        try:
            value = json.loads(setting.value)
        except ValueError:
            logger.warning("Stored admin key is not valid JSON; using configured key")
            return settings.ADMIN_KEY
        return value if isinstance(value, str) and value else settings.ADMIN_KEY

    @staticmethod
    def validate_admin_key(db: Session, provided_key: Optional[str]) -> bool:
        if not provided_key:
            return False
        return hmac.compare_digest(provided_key.encode(), AuthService.get_admin_key(db).encode())

    @staticmethod
    def update_admin_key(db: Session, new_key: str, current_user: User) -> None:
        if not current_user.has_role("admin"):
            raise AuthorizationError("Unauthorized: Admin role required")
        if len(new_key or "") < MIN_ADMIN_KEY_LENGTH:
            raise ValidationError("Admin key must be at least 8 characters long")

        setting = db.query(SystemSetting).filter(SystemSetting.key == ADMIN_KEY_SETTING).first()
        if setting is None:
            setting = SystemSetting(key=ADMIN_KEY_SETTING, description="Registration admin key")
            db.add(setting)
        setting.value = json.dumps(new_key)
        setting.updated_by = current_user.id
        db.commit()
        logger.info("Admin key updated by %s", current_user.username)

    @staticmethod
    def user_payload(user: User) -> Dict[str, Any]:
        return _user_payload(user)


auth_service = AuthService()
