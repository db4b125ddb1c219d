"""
Celery application for Clinic Service.

Workers only deliver audit events; the request path never waits on them.
"""

import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.base')

app = Celery('clinic_service')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
