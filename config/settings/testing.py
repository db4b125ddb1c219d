# config/settings/testing.py
"""
Testing settings for Clinic Service.
"""

from .base import *

# Testing mode
DEBUG = True
TESTING = True

# Use in-memory SQLite for tests
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

# HMAC keys for test tokens
JWT_SETTINGS = {
    **JWT_SETTINGS,
    'SIGNING_KEY': 'clinic-service-test-signing-key-0123456789',
    'VERIFYING_KEY': 'clinic-service-test-signing-key-0123456789',
}
TRUST_GATEWAY_HEADERS = True

# Faster password hashing for tests
PASSWORD_HASHERS = [
    'django.contrib.auth.hashers.MD5PasswordHasher',
]

# Disable migrations for faster tests
class DisableMigrations:
    def __contains__(self, item):
        return True

    def __getitem__(self, item):
        return None

MIGRATION_MODULES = DisableMigrations()

# Celery
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

# Cache
CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
    }
}

# Short lock waits so contention tests stay fast
CLINIC = {
    **CLINIC,
    'LOCK_TIMEOUT_SECONDS': 0.5,
    'LOCK_TTL_SECONDS': 5,
}

AUDIT_EVENT_BACKEND = 'log'
AUDIT_WEBHOOK_URL = ''

# Logging - minimal for tests
LOGGING = {
    'version': 1,
    'disable_existing_loggers': True,
    'handlers': {
        'null': {
            'class': 'logging.NullHandler',
        },
    },
    'root': {
        'handlers': ['null'],
        'level': 'CRITICAL',
    },
}
