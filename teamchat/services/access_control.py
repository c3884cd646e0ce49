"""Access control engine — global permission checks and last-admin protection.

Permission resolution is a set of pure functions over a role map (see
``permission_store.load_role_map``). Lookups that fail for any reason resolve
to "denied"; none of the public checks raise.

``ALL`` and ``ANY`` aggregate differently on purpose:

* ``principal_has_all_permissions`` unions grants across every role first, so
  two partial roles can together satisfy the requirement.
* ``principal_has_permission`` / ``principal_has_any_permission`` stop at the
  first role that grants a match.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from teamchat.models.role import Role
from teamchat.models.user import User
from teamchat.services.permission_store import RoleMap, load_role_map

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"

LAST_ADMIN_ROLE_REMOVAL = "Cannot remove admin role from the last active admin user"
LAST_ADMIN_DEACTIVATION = "Cannot deactivate the last active admin user"
SELF_DEACTIVATION = "Cannot deactivate your own account"
USER_NOT_FOUND = "User not found"


@dataclass(frozen=True)
class PolicyDecision:
    """Structured result of an invariant check."""

    allowed: bool
    reason: Optional[str] = None
    code: str = "ok"  # ok | not_found | invariant_violation

    @classmethod
    def allow(cls) -> "PolicyDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> "PolicyDecision":
        return cls(allowed=False, reason=reason, code="invariant_violation")

    @classmethod
    def not_found(cls, reason: str = USER_NOT_FOUND) -> "PolicyDecision":
        return cls(allowed=False, reason=reason, code="not_found")


# ---- Global permissions ----

def has_permission(role: Optional[Role], permission_name: str) -> bool:
    """True only when the role stores exactly ``True`` for the permission."""
    if role is None:
        return False
    return role.permissions.get(permission_name) is True


def _resolve(role_map: RoleMap, role_names: Iterable[str]) -> List[Role]:
    return [role_map[name] for name in role_names or () if name in role_map]


def principal_has_permission(role_map: RoleMap, role_names: Iterable[str], permission: str) -> bool:
    for role in _resolve(role_map, role_names):
        if has_permission(role, permission):
            return True
    return False


def collect_permissions(role_map: RoleMap, role_names: Iterable[str]) -> Set[str]:
    """Union of every permission granted by any resolved role."""
    granted: Set[str] = set()
    for role in _resolve(role_map, role_names):
        granted.update(name for name, value in role.permissions.items() if value is True)
    return granted


def principal_has_all_permissions(
    role_map: RoleMap, role_names: Iterable[str], permissions: Sequence[str]
) -> bool:
    granted = collect_permissions(role_map, role_names)
    return all(permission in granted for permission in permissions)


def principal_has_any_permission(
    role_map: RoleMap, role_names: Iterable[str], permissions: Sequence[str]
) -> bool:
    for role in _resolve(role_map, role_names):
        for permission in permissions:
            if has_permission(role, permission):
                return True
    return False


# ---- Last-admin invariant ----

def count_active_admins(users: Iterable[User], exclude_user_id: Optional[str] = None) -> int:
    return sum(
        1 for u in users
        if u.is_active and ADMIN_ROLE in u.roles and u.id != exclude_user_id
    )


def check_role_change(target: User, new_roles: Sequence[str], all_users: Iterable[User]) -> PolicyDecision:
    """Refuse to strip ``admin`` from the last active admin."""
    removes_admin = ADMIN_ROLE in target.roles and ADMIN_ROLE not in new_roles
    if removes_admin and count_active_admins(all_users) <= 1:
        return PolicyDecision.deny(LAST_ADMIN_ROLE_REMOVAL)
    return PolicyDecision.allow()


def check_deactivation(
    target: User, requesting_user_id: Optional[str], all_users: Iterable[User]
) -> PolicyDecision:
    """Refuse self-deactivation, and deactivating the only active admin."""
    if requesting_user_id is not None and target.id == requesting_user_id:
        return PolicyDecision.deny(SELF_DEACTIVATION)
    if ADMIN_ROLE in target.roles and count_active_admins(all_users, exclude_user_id=target.id) == 0:
        return PolicyDecision.deny(LAST_ADMIN_DEACTIVATION)
    return PolicyDecision.allow()


class AccessControlService:
    """Session-bound facade used by routes and other services."""

    @staticmethod
    def principal_has_permission(db: Session, role_names: Iterable[str], permission: str) -> bool:
        return principal_has_permission(load_role_map(db), role_names, permission)

    @staticmethod
    def principal_has_any_permission(db: Session, role_names: Iterable[str], permissions: Sequence[str]) -> bool:
        return principal_has_any_permission(load_role_map(db), role_names, permissions)

    @staticmethod
    def principal_has_all_permissions(db: Session, role_names: Iterable[str], permissions: Sequence[str]) -> bool:
        return principal_has_all_permissions(load_role_map(db), role_names, permissions)

    @staticmethod
    def get_permissions(db: Session, role_names: Iterable[str]) -> Set[str]:
        return collect_permissions(load_role_map(db), role_names)

    @staticmethod
    def assert_role_change_allowed(db: Session, user_id: str, new_roles: Sequence[str]) -> PolicyDecision:
        try:
            target = db.query(User).filter(User.id == user_id).first()
            if target is None:
                return PolicyDecision.not_found()
            return check_role_change(target, new_roles, db.query(User).all())
        except SQLAlchemyError:
            logger.exception("Role change check failed for user %s", user_id)
            return PolicyDecision.deny("Unable to verify admin invariant")

    @staticmethod
    def assert_deactivation_allowed(
        db: Session, target_user_id: str, requesting_user_id: Optional[str]
    ) -> PolicyDecision:
        try:
            target = db.query(User).filter(User.id == target_user_id).first()
            if target is None:
                return PolicyDecision.not_found()
            return check_deactivation(target, requesting_user_id, db.query(User).all())
        except SQLAlchemyError:
            logger.exception("Deactivation check failed for user %s", target_user_id)
            return PolicyDecision.deny("Unable to verify admin invariant")


access_control = AccessControlService()
