# apps/core/services/validation.py
"""
Input checks shared by the services. They never touch storage.
"""

import uuid
from typing import Any, Optional

from .exceptions import ValidationError


def as_uuid(value: Any, field: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        raise ValidationError(f"'{value}' is not a valid id", field=field)


def optional_uuid(value: Any, field: str) -> Optional[uuid.UUID]:
    if value in (None, ''):
        return None
    return as_uuid(value, field)


def require_actor(actor_id: Any) -> uuid.UUID:
    """Every write is attributed to an authenticated caller."""
    if actor_id in (None, ''):
        raise ValidationError("An authenticated caller is required for this operation", field='actor_id')
    return as_uuid(actor_id, 'actor_id')


def positive_int(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer", field=field)
    return value
