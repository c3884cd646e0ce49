"""Role service — role CRUD and per-channel permission overrides."""

import logging
import re
from typing import Optional, Dict, List

from sqlalchemy.orm import Session

from teamchat.core.exceptions import (
    ResourceConflictError, ResourceNotFoundError, ValidationError, AuthorizationError,
)
from teamchat.models.role import Role, CHANNEL_ACCESS_TYPES, DEFAULT_CHANNEL_PERMISSION
from teamchat.services.permission_store import PermissionStore

logger = logging.getLogger(__name__)

ROLE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,50}$")
PROTECTED_ROLES = ("admin", "moderator", "member", "viewer")


def has_channel_access(role: Optional[Role], channel_id: str, access_type: str = "read") -> bool:
    """Per-role channel access: the channel's override if present, else ``default``."""
    if role is None or access_type not in CHANNEL_ACCESS_TYPES:
        return False
    overrides = role.channel_permissions
    entry = overrides.get(channel_id)
    if not isinstance(entry, dict):
        entry = overrides.get("default") or DEFAULT_CHANNEL_PERMISSION
    return entry.get(access_type) is True


def _normalize_channel_permission(value: Dict[str, bool]) -> Dict[str, bool]:
    return {access: bool(value.get(access, False)) for access in CHANNEL_ACCESS_TYPES}


class RoleService:
    """Role management. System roles cannot be deleted."""

    @staticmethod
    def list_roles(db: Session) -> List[Role]:
        return db.query(Role).order_by(Role.name).all()

    @staticmethod
    def get(db: Session, role_id: str) -> Role:
        role = db.query(Role).filter(Role.id == role_id).first()
        if not role:
            raise ResourceNotFoundError("Role not found")
        return role

    @staticmethod
    def get_by_name(db: Session, name: str) -> Role:
        role = PermissionStore(db).find_by_name(name)
        if not role:
            raise ResourceNotFoundError(f"Role '{name}' not found")
        return role

    @staticmethod
    def create(
        db: Session,
        name: str,
        description: Optional[str] = None,
        permissions: Optional[Dict[str, bool]] = None,
        channel_permissions: Optional[Dict[str, Dict[str, bool]]] = None,
    ) -> Role:
        if not ROLE_NAME_PATTERN.match(name or ""):
            raise ValidationError(
                "Role name must be 1-50 characters of letters, numbers, underscores or hyphens"
            )
        if db.query(Role).filter(Role.name == name).first():
            raise ResourceConflictError(f"Role '{name}' already exists")

        role = Role(name=name, description=description or "")
        role.permissions = {k: v is True for k, v in (permissions or {}).items()}
        role.channel_permissions = {
            channel_id: _normalize_channel_permission(entry)
            for channel_id, entry in (channel_permissions or {}).items()
        }
        db.add(role)
        db.commit()
        db.refresh(role)
        logger.info("Created role %s", name)
        return role

    @staticmethod
    def update(
        db: Session,
        role_id: str,
        description: Optional[str] = None,
        permissions: Optional[Dict[str, bool]] = None,
    ) -> Role:
        role = RoleService.get(db, role_id)
        if description is not None:
            role.description = description
        if permissions is not None:
            role.permissions = {k: v is True for k, v in permissions.items()}
        db.commit()
        db.refresh(role)
        return role

    @staticmethod
    def delete(db: Session, role_id: str) -> None:
        role = RoleService.get(db, role_id)
        if role.name in PROTECTED_ROLES:
            raise AuthorizationError(f"System role '{role.name}' cannot be deleted")
        db.delete(role)
        db.commit()
        logger.info("Deleted role %s", role.name)

    @staticmethod
    def set_channel_permission(
        db: Session, role_id: str, channel_id: str, permission: Dict[str, bool]
    ) -> Role:
        """Create or replace one channel override; ``default`` updates the fallback."""
        role = RoleService.get(db, role_id)
        overrides = role.channel_permissions
        overrides[channel_id] = _normalize_channel_permission(permission)
        role.channel_permissions = overrides
        db.commit()
        db.refresh(role)
        return role

    @staticmethod
    def update_default_channel_permission(db: Session, role_id: str, permission: Dict[str, bool]) -> Role:
        return RoleService.set_channel_permission(db, role_id, "default", permission)

    @staticmethod
    def remove_channel_permission(db: Session, role_id: str, channel_id: str) -> Role:
        if channel_id == "default":
            raise ValidationError("Cannot remove the default channel permission")
        role = RoleService.get(db, role_id)
        overrides = role.channel_permissions
        if channel_id not in overrides:
            raise ResourceNotFoundError("Channel permission override not found")
        del overrides[channel_id]
        role.channel_permissions = overrides
        db.commit()
        db.refresh(role)
        return role

    @staticmethod
    def has_channel_access(db: Session, role_name: str, channel_id: str, access_type: str = "read") -> bool:
        """Look up the role and resolve its channel access; any failure denies."""
        role = PermissionStore(db).find_by_name(role_name)
        return has_channel_access(role, channel_id, access_type)


role_service = RoleService()
