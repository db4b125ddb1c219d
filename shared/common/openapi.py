# shared/common/openapi.py
"""
OpenAPI schema configuration (drf-spectacular).

Importable from settings modules: nothing here touches Django at import time.
"""

from typing import Any, Dict, List

ERROR_CODES = [
    'VALIDATION_ERROR',
    'OUTSIDE_WORKING_HOURS',
    'UNAUTHORIZED',
    'FORBIDDEN',
    'NOT_FOUND',
    'BOOKING_CONFLICT',
    'INVALID_TRANSITION',
    'SESSION_OVERRUN',
    'OVERPAYMENT',
    'BATCH_REJECTED',
    'RETRYABLE',
    'INTERNAL_ERROR',
]

HEALTH_PATHS = ('/health/', '/health/live/', '/health/ready/')


def get_spectacular_settings(service_name: str, service_description: str, version: str = "1.0.0") -> Dict[str, Any]:
    """SPECTACULAR_SETTINGS for the clinic service."""
    return {
        'TITLE': f'{service_name} API',
        'DESCRIPTION': service_description,
        'VERSION': version,
        'SERVE_INCLUDE_SCHEMA': False,
        'COMPONENT_SPLIT_REQUEST': True,
        'COMPONENT_NO_READ_ONLY_REQUIRED': True,
        'ENUM_ADD_EXPLICIT_BLANK_NULL_CHOICE': False,
        'TAGS': [
            {'name': 'availability', 'description': 'Free staff, rooms and start times'},
            {'name': 'appointments', 'description': 'Booking and appointment state transitions'},
            {'name': 'packages', 'description': 'Package purchase, payments and session usage'},
        ],
        'SECURITY': [
            {'BearerAuth': []},
            {'GatewayUser': []},
        ],
        'PREPROCESSING_HOOKS': [
            'shared.common.openapi.preprocess_exclude_health',
        ],
        'POSTPROCESSING_HOOKS': [
            'drf_spectacular.hooks.postprocess_schema_enums',
            'shared.common.openapi.postprocess_add_security_schemes',
            'shared.common.openapi.postprocess_add_error_envelope',
        ],
        'SCHEMA_PATH_PREFIX': r'/api/v[0-9]+/',
        'SWAGGER_UI_SETTINGS': {
            'deepLinking': True,
            'persistAuthorization': True,
            'filter': True,
        },
        'SORT_OPERATIONS': True,
    }


def preprocess_exclude_health(endpoints: List, **kwargs) -> List:
    """Health endpoints are for orchestrators, not API clients."""
    return [
        (path, path_regex, method, callback)
        for path, path_regex, method, callback in endpoints
        if not path.endswith(HEALTH_PATHS)
    ]


def postprocess_add_security_schemes(result: Dict, **kwargs) -> Dict:
    components = result.setdefault('components', {})
    components['securitySchemes'] = {
        'BearerAuth': {
            'type': 'http',
            'scheme': 'bearer',
            'bearerFormat': 'JWT',
        },
        'GatewayUser': {
            'type': 'apiKey',
            'in': 'header',
            'name': 'X-User-ID',
            'description': 'Caller UUID set by the API gateway; roles travel in X-User-Role.',
        },
    }
    return result


def postprocess_add_error_envelope(result: Dict, **kwargs) -> Dict:
    """
    Document the error envelope every endpoint shares.

    ``retryable`` errors (409 BOOKING_CONFLICT, 503 RETRYABLE) may succeed
    when the same request is sent again; 503 responses carry ``Retry-After``.
    """
    schemas = result.setdefault('components', {}).setdefault('schemas', {})
    schemas['ErrorResponse'] = {
        'type': 'object',
        'properties': {
            'success': {'type': 'boolean', 'example': False},
            'error': {
                'type': 'object',
                'properties': {
                    'code': {'type': 'string', 'enum': ERROR_CODES},
                    'message': {'type': 'string'},
                    'details': {'type': 'object', 'additionalProperties': True},
                    'retryable': {'type': 'boolean'},
                    'request_id': {'type': 'string', 'nullable': True},
                },
                'required': ['code', 'message', 'retryable'],
            },
        },
        'required': ['success', 'error'],
    }
    return result


def get_api_docs_urlpatterns():
    """Schema, Swagger UI and ReDoc routes."""
    from django.urls import path
    from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView, SpectacularSwaggerView

    return [
        path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
        path('api/docs/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
        path('api/redoc/', SpectacularRedocView.as_view(url_name='schema'), name='redoc'),
    ]
