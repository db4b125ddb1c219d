# shared/common/authentication.py
"""
Caller authentication.

The service does not issue credentials. It accepts either a bearer JWT
signed with ``JWT_SETTINGS`` or, behind the API gateway, the identity
headers the gateway sets after authenticating the caller. Either way the
caller id must be a UUID: it is stored as ``created_by`` / ``cancelled_by``
on every record the caller writes.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

import jwt
from django.conf import settings
from rest_framework import authentication, exceptions
from rest_framework.request import Request

logger = logging.getLogger(__name__)


class Caller:
    """Authenticated caller, built from JWT claims or gateway headers."""

    is_active = True
    is_authenticated = True
    is_anonymous = False

    def __init__(self, claims: Dict[str, Any]):
        try:
            self.id = uuid.UUID(str(claims.get('sub')))
        except ValueError:
            raise exceptions.AuthenticationFailed('Caller identity must be a UUID')
        self.claims = claims
        self.roles: List[str] = list(claims.get('roles') or [])
        self.email = claims.get('email')

    def __str__(self) -> str:
        return f"Caller({self.id})"

    def has_role(self, role: str) -> bool:
        return role in self.roles


class JWTAuthentication(authentication.BaseAuthentication):
    """
    Bearer token authentication.

    ``exp``, ``iat``, ``sub`` and ``iss`` are required; the issuer must
    match ``JWT_SETTINGS['ISSUER']``.
    """

    keyword = 'Bearer'

    def authenticate(self, request: Request) -> Optional[Tuple[Caller, Dict]]:
        auth_header = authentication.get_authorization_header(request)
        if not auth_header:
            return None

        try:
            parts = auth_header.decode('utf-8').split()
        except UnicodeDecodeError:
            raise exceptions.AuthenticationFailed('Invalid token header encoding')

        if not parts or parts[0].lower() != self.keyword.lower():
            return None
        if len(parts) != 2:
            raise exceptions.AuthenticationFailed('Invalid token header format')

        return self.authenticate_token(parts[1])

    def authenticate_token(self, token: str) -> Tuple[Caller, Dict]:
        jwt_settings = settings.JWT_SETTINGS
        try:
            claims = jwt.decode(
                token,
                jwt_settings['VERIFYING_KEY'],
                algorithms=[jwt_settings['ALGORITHM']],
                issuer=jwt_settings['ISSUER'],
                options={'require': ['exp', 'iat', 'sub', 'iss']}
            )
        except jwt.ExpiredSignatureError:
            raise exceptions.AuthenticationFailed('Token has expired')
        except jwt.InvalidTokenError as e:
            logger.warning(f"Rejected bearer token: {e}")
            raise exceptions.AuthenticationFailed('Invalid token')

        return Caller(claims), claims

    def authenticate_header(self, request: Request) -> str:
        return self.keyword


class GatewayHeaderAuthentication(authentication.BaseAuthentication):
    """
    Trusts ``X-User-ID`` and the comma-separated ``X-User-Role`` headers.

    Only active when ``TRUST_GATEWAY_HEADERS`` is set; the service must then
    be reachable through the gateway alone.
    """

    def authenticate(self, request: Request) -> Optional[Tuple[Caller, Dict]]:
        if not getattr(settings, 'TRUST_GATEWAY_HEADERS', False):
            return None

        user_id = request.headers.get('X-User-ID')
        if not user_id:
            return None

        roles = [r.strip() for r in request.headers.get('X-User-Role', '').split(',') if r.strip()]
        claims = {'sub': user_id, 'roles': roles, 'source': 'gateway'}
        return Caller(claims), claims
