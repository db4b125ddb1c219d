# apps/core/tasks.py
"""
Clinic Celery Tasks

Background delivery of audit events.
"""

import logging
from typing import Any, Dict

import requests
from celery import shared_task
from django.conf import settings

logger = logging.getLogger(__name__)


@shared_task(name='clinic.deliver_audit_event', bind=True, max_retries=3, default_retry_delay=30)
def deliver_audit_event(self, event_type: str, event_json: str) -> Dict[str, Any]:
    """
    POST an audit event to the configured webhook.

    Retries on network errors; gives up silently after the last retry
    because audit delivery must not affect the booking flow.
    """
    webhook_url = getattr(settings, 'AUDIT_WEBHOOK_URL', '')
    if not webhook_url:
        logger.debug(f"No audit webhook configured, dropping {event_type}")
        return {'delivered': False, 'reason': 'no_webhook'}

    try:
        response = requests.post(
            webhook_url,
            data=event_json,
            headers={'Content-Type': 'application/json', 'X-Event-Type': event_type},
            timeout=5
        )
        response.raise_for_status()
    except requests.RequestException as exc:
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc)
        logger.error(f"Audit event {event_type} not delivered: {exc}")
        return {'delivered': False, 'reason': str(exc)}

    return {'delivered': True, 'status_code': response.status_code}
