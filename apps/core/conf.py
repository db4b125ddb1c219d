# apps/core/conf.py
"""
Clinic settings with defaults.

Values come from the ``CLINIC`` dict in Django settings and are read on
every call so tests can override them.
"""

from django.conf import settings

DEFAULTS = {
    'CURRENCY': 'EUR',
    'LOCK_TIMEOUT_SECONDS': 5,
    'LOCK_TTL_SECONDS': 30,
    'ENFORCE_STAFF_SCHEDULES': True,
    'NO_SHOW_CONSUMES_SESSION': True,
    'SLOT_INTERVAL_MINUTES': 30,
}


def clinic_setting(name: str):
    return getattr(settings, 'CLINIC', {}).get(name, DEFAULTS[name])
