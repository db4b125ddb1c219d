# config/urls.py
"""
URL configuration for Clinic Service
"""

from django.contrib import admin
from django.urls import path, include

from shared.common.health import get_health_urlpatterns
from shared.common.openapi import get_api_docs_urlpatterns

urlpatterns = [
    # Admin
    path('admin/', admin.site.urls),

    # API v1
    path('api/v1/', include('apps.api.urls')),
]

urlpatterns += get_health_urlpatterns()
urlpatterns += get_api_docs_urlpatterns()
