# Shared Common Library for the Clinic Service
# Authentication, permissions, error rendering, health checks and other
# HTTP-layer components. Submodules are imported explicitly; this package
# must stay importable before Django settings are configured.

__version__ = "1.0.0"

from .openapi import (
    get_spectacular_settings,
    get_api_docs_urlpatterns,
)

__all__ = [
    # Version
    '__version__',

    # OpenAPI
    'get_spectacular_settings',
    'get_api_docs_urlpatterns',
]
