"""Declarative base shared by all ORM models."""

import json
import uuid

from sqlalchemy.orm import declarative_base

Base = declarative_base()


def generate_uuid() -> str:
    """Primary key default for string UUID columns."""
    return str(uuid.uuid4())


def load_json(raw, default):
    """Parse a ``*_json`` Text column, falling back to ``default`` on bad data."""
    if not raw:
        return default
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return default
    return value if isinstance(value, type(default)) else default


def contains_pattern(term: str) -> str:
    """``ilike`` pattern matching ``term`` literally anywhere, with backslash as the escape character."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
