"""User service — listing, search, role assignment and deactivation."""

import logging
from collections import Counter
from typing import Optional, Dict, Any, List

from sqlalchemy import or_
from sqlalchemy.orm import Session

from teamchat.core.exceptions import (
    InvariantViolationError, ResourceNotFoundError, ValidationError,
)
from teamchat.db.base import contains_pattern
from teamchat.models.role import Role
from teamchat.models.user import User
from teamchat.services.access_control import PolicyDecision, access_control

logger = logging.getLogger(__name__)

MIN_SEARCH_LENGTH = 2


def _enforce(decision: PolicyDecision) -> None:
    """Turn a denied decision into the matching exception."""
    if decision.allowed:
        return
    if decision.code == "not_found":
        raise ResourceNotFoundError(decision.reason)
    raise InvariantViolationError(decision.reason)


class UserService:
    """User administration on top of the access control engine."""

    @staticmethod
    def get(db: Session, user_id: str) -> User:
        user = None
        if isinstance(user_id, str) and user_id:
            user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise ResourceNotFoundError("User not found")
        return user

    @staticmethod
    def list_users(db: Session, page: int = 1, page_size: int = 50) -> Dict[str, Any]:
        total = db.query(User).count()
        users = (
            db.query(User)
            .order_by(User.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return {"users": users, "total": total, "page": page}

    @staticmethod
    def search(db: Session, query: str, limit: int = 20) -> List[User]:
        """Match username or display name, case-insensitively."""
        query = (query or "").strip()
        if len(query) < MIN_SEARCH_LENGTH:
            raise ValidationError("Search query must be at least 2 characters long")
        pattern = contains_pattern(query)
        return (
            db.query(User)
            .filter(or_(User.username.ilike(pattern, escape="\\"), User.display_name.ilike(pattern, escape="\\")))
            .order_by(User.username)
            .limit(limit)
            .all()
        )

    @staticmethod
    def stats(db: Session) -> Dict[str, Any]:
        users = db.query(User).all()
        by_role = Counter(role for u in users for role in u.roles)
        active = sum(1 for u in users if u.is_active)
        return {
            "total": len(users),
            "active": active,
            "inactive": len(users) - active,
            "by_role": dict(by_role),
        }

    @staticmethod
    def update_roles(db: Session, user_id: str, roles: List[str]) -> User:
        """Replace a user's roles, refusing to strip the last active admin."""
        roles = list(dict.fromkeys(roles or []))
        if not roles:
            raise ValidationError("At least one role is required")
        known = {name for (name,) in db.query(Role.name).filter(Role.name.in_(roles)).all()}
        missing = [r for r in roles if r not in known]
        if missing:
            raise ValidationError(f"Unknown role(s): {', '.join(missing)}")

        _enforce(access_control.assert_role_change_allowed(db, user_id, roles))

        user = UserService.get(db, user_id)
        user.roles = roles
        db.commit()
        db.refresh(user)
        logger.info("Updated roles for user %s: %s", user.username, roles)
        return user

    @staticmethod
    def update(
        db: Session,
        user_id: str,
        requesting_user_id: Optional[str],
        display_name: Optional[str] = None,
        avatar_url: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> User:
        user = UserService.get(db, user_id)
        if is_active is False and user.is_active:
            _enforce(access_control.assert_deactivation_allowed(db, user_id, requesting_user_id))
        if display_name is not None:
            user.display_name = display_name
        if avatar_url is not None:
            user.avatar_url = avatar_url
        if is_active is not None:
            user.is_active = is_active
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def deactivate(db: Session, user_id: str, requesting_user_id: Optional[str]) -> User:
        """Mark a user inactive. Self-deactivation and last-admin removal are refused."""
        _enforce(access_control.assert_deactivation_allowed(db, user_id, requesting_user_id))
        user = UserService.get(db, user_id)
        user.is_active = False
        db.commit()
        db.refresh(user)
        logger.info("Deactivated user %s", user.username)
        return user


user_service = UserService()
