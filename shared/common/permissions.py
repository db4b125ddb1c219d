# shared/common/permissions.py
"""
Permission classes for the clinic API.

Roles arrive with the caller identity (JWT ``roles`` claim or the gateway's
``X-User-Role`` header). Any authenticated caller may book and pay; bulk
cancellation and ledger repairs are reserved to clinic administrators.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List

from rest_framework import permissions
from rest_framework.request import Request

if TYPE_CHECKING:
    from rest_framework.views import APIView

logger = logging.getLogger(__name__)

ADMIN_ROLES = ('admin', 'clinic_admin')


def caller_roles(request: Request) -> List[str]:
    """Roles of the caller, from the user object or the raw claims."""
    roles = getattr(request.user, 'roles', None)
    if roles is None and isinstance(request.auth, dict):
        roles = request.auth.get('roles')
    return list(roles or [])


class IsAuthenticated(permissions.BasePermission):
    """Caller identity was established by one of the authentication classes."""

    def has_permission(self, request: Request, view: APIView) -> bool:
        return bool(request.user and getattr(request.user, 'is_authenticated', False))


class IsClinicAdmin(IsAuthenticated):
    """Clinic administrators: bulk operations and ledger corrections."""

    message = 'This operation requires a clinic administrator.'

    def has_permission(self, request: Request, view: APIView) -> bool:
        if not super().has_permission(request, view):
            return False

        if set(caller_roles(request)) & set(ADMIN_ROLES):
            return True

        logger.info(
            f"Administrator role required for {view.__class__.__name__}.{getattr(view, 'action', None)}",
            extra={'user_id': str(getattr(request.user, 'id', None)), 'roles': caller_roles(request)}
        )
        return False
