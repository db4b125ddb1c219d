"""Base settings for Clinic Service."""
import os
from datetime import timedelta
from pathlib import Path

from shared.common.openapi import get_spectacular_settings

BASE_DIR = Path(__file__).resolve().parent.parent.parent

SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key')
DEBUG = os.environ.get('DEBUG', 'True').lower() == 'true'
ALLOWED_HOSTS = os.environ.get('ALLOWED_HOSTS', '*').split(',')

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'corsheaders',
    'django_filters',
    'drf_spectacular',
    'apps.core',
    'apps.api',
]

MIDDLEWARE = [
    'corsheaders.middleware.CorsMiddleware',
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
    'shared.common.middleware.RequestIDMiddleware',
    'shared.common.middleware.LoggingMiddleware',
]

ROOT_URLCONF = 'config.urls'
TEMPLATES = [{'BACKEND': 'django.template.backends.django.DjangoTemplates', 'DIRS': [], 'APP_DIRS': True, 'OPTIONS': {'context_processors': ['django.template.context_processors.debug', 'django.template.context_processors.request', 'django.contrib.auth.context_processors.auth', 'django.contrib.messages.context_processors.messages']}}]
WSGI_APPLICATION = 'config.wsgi.application'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': os.environ.get('DB_NAME', 'clinic_service_db'),
        'USER': os.environ.get('DB_USER', 'clinic_service_user'),
        'PASSWORD': os.environ.get('DB_PASSWORD', 'clinic_service_password'),
        'HOST': os.environ.get('DB_HOST', 'pgbouncer'),
        'PORT': os.environ.get('DB_PORT', '6432'),
        'OPTIONS': {'options': f"-c lock_timeout={os.environ.get('DB_LOCK_TIMEOUT_MS', '5000')}"},
    }
}

AUTH_PASSWORD_VALIDATORS = [{'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'}]
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True
STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'shared.common.authentication.JWTAuthentication',
        'shared.common.authentication.GatewayHeaderAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': ['shared.common.permissions.IsAuthenticated'],
    'DEFAULT_PAGINATION_CLASS': 'shared.common.pagination.StandardPagination',
    'PAGE_SIZE': 20,
    'DEFAULT_FILTER_BACKENDS': ['django_filters.rest_framework.DjangoFilterBackend', 'rest_framework.filters.OrderingFilter'],
    'EXCEPTION_HANDLER': 'shared.common.exceptions.custom_exception_handler',
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',
}

JWT_SETTINGS = {
    'ALGORITHM': os.environ.get('JWT_ALGORITHM', 'HS256'),
    'SIGNING_KEY': os.environ.get('JWT_SECRET_KEY', SECRET_KEY),
    'VERIFYING_KEY': os.environ.get('JWT_SECRET_KEY', SECRET_KEY),
    'ISSUER': os.environ.get('JWT_ISSUER', 'clinic-platform'),
    'ACCESS_TOKEN_LIFETIME': timedelta(minutes=15),
}

# Identity headers injected by the API gateway after it authenticated the caller.
# Only enable behind a gateway that strips these headers from client requests.
TRUST_GATEWAY_HEADERS = os.environ.get('TRUST_GATEWAY_HEADERS', 'False').lower() == 'true'

CORS_ALLOW_ALL_ORIGINS = DEBUG
REDIS_URL = os.environ.get('REDIS_URL', 'redis://redis:6379/4')
CACHES = {'default': {'BACKEND': 'django_redis.cache.RedisCache', 'LOCATION': REDIS_URL}}
CELERY_BROKER_URL = os.environ.get('CELERY_BROKER_URL', REDIS_URL)

SERVICE_NAME = 'clinic-service'
SERVICE_PORT = 8005
VERSION = '1.0.0'

# Booking engine and ledger
CLINIC = {
    'CURRENCY': os.environ.get('CLINIC_CURRENCY', 'EUR'),
    'LOCK_TIMEOUT_SECONDS': float(os.environ.get('CLINIC_LOCK_TIMEOUT_SECONDS', '5')),
    'LOCK_TTL_SECONDS': int(os.environ.get('CLINIC_LOCK_TTL_SECONDS', '30')),
    'ENFORCE_STAFF_SCHEDULES': os.environ.get('CLINIC_ENFORCE_STAFF_SCHEDULES', 'True').lower() == 'true',
    'NO_SHOW_CONSUMES_SESSION': os.environ.get('CLINIC_NO_SHOW_CONSUMES_SESSION', 'True').lower() == 'true',
    'SLOT_INTERVAL_MINUTES': int(os.environ.get('CLINIC_SLOT_INTERVAL_MINUTES', '30')),
}

# Audit events
AUDIT_EVENTS_ENABLED = os.environ.get('AUDIT_EVENTS_ENABLED', 'True').lower() == 'true'
AUDIT_EVENT_BACKEND = os.environ.get('AUDIT_EVENT_BACKEND', 'log')
AUDIT_WEBHOOK_URL = os.environ.get('AUDIT_WEBHOOK_URL', '')

SPECTACULAR_SETTINGS = get_spectacular_settings(
    service_name='Clinic Service',
    service_description='Appointment booking, availability and package ledger API',
    version=VERSION,
)

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'filters': {
        'request_id': {
            '()': 'shared.common.middleware.RequestIDLogFilter',
        },
    },
    'formatters': {
        'json': {
            '()': 'pythonjsonlogger.json.JsonFormatter',
            'format': '%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'json',
            'filters': ['request_id'],
        },
    },
    'root': {
        'handlers': ['console'],
        'level': os.environ.get('LOG_LEVEL', 'INFO'),
    },
    'loggers': {
        'django.db.backends': {
            'level': 'WARNING',
        },
        'apps': {
            'level': os.environ.get('APP_LOG_LEVEL', 'INFO'),
        },
    },
}
