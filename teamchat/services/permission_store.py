"""Permission store — read-only role lookups keyed by role name."""

import logging
from typing import Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from teamchat.models.role import Role

logger = logging.getLogger(__name__)

RoleMap = Dict[str, Role]


def load_role_map(db: Session) -> RoleMap:
    """Load every role into a name -> Role map for the current request.

    A storage failure yields an empty map, so every check made against it
    resolves to "denied".
    """
    try:
        return {role.name: role for role in db.query(Role).all()}
    except SQLAlchemyError:
        logger.exception("Failed to load roles; denying by default")
        return {}


class PermissionStore:
    """Role data access bound to one session."""

    def __init__(self, db: Session):
        self.db = db

    def role_map(self) -> RoleMap:
        return load_role_map(self.db)

    def find_by_name(self, name: str) -> Optional[Role]:
        try:
            return self.db.query(Role).filter(Role.name == name).first()
        except SQLAlchemyError:
            logger.exception("Failed to look up role %s", name)
            return None

    def get_channel_permissions(self, role_name: str) -> Optional[dict]:
        role = self.find_by_name(role_name)
        return role.channel_permissions if role else None
