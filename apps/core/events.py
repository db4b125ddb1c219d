# apps/core/events.py
"""
Clinic Service Audit Events

One structured event per state transition of appointments, packages and
payments, with before/after snapshots. Publishing is fire-and-forget:
failures are logged and never reach the caller.
"""

import json
import logging
import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from django.conf import settings
from django.utils import timezone

logger = logging.getLogger(__name__)


class EventType:
    """Audit event type constants."""

    # Appointment lifecycle
    APPOINTMENT_CREATED = 'appointment.created'
    APPOINTMENT_RESCHEDULED = 'appointment.rescheduled'
    APPOINTMENT_CANCELLED = 'appointment.cancelled'
    APPOINTMENT_COMPLETED = 'appointment.completed'
    APPOINTMENT_NO_SHOW = 'appointment.no_show'

    # Ledger
    PACKAGE_PURCHASED = 'package.purchased'
    PACKAGE_CANCELLED = 'package.cancelled'
    PAYMENT_ADDED = 'payment.added'
    SESSION_USED = 'session.used'
    SESSION_OVERRUN = 'session.overrun'


class JSONEncoder(json.JSONEncoder):
    """Custom JSON encoder for event payloads."""

    def default(self, obj):
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, (datetime, date, time)):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return str(obj)
        return super().default(obj)


def snapshot(instance) -> Optional[Dict[str, Any]]:
    """Plain dict of a model instance's stored fields."""
    if instance is None:
        return None
    return {
        field.attname: getattr(instance, field.attname)
        for field in instance._meta.concrete_fields
    }


class AuditEventPublisher:
    """
    Audit event publisher.

    Backends: ``log`` (default) writes the event as a JSON log line and
    ``celery`` queues webhook delivery to ``AUDIT_WEBHOOK_URL``.
    """

    def __init__(self):
        self.service_name = getattr(settings, 'SERVICE_NAME', 'clinic-service')

    @property
    def enabled(self) -> bool:
        return getattr(settings, 'AUDIT_EVENTS_ENABLED', True)

    def publish(
        self,
        event_type: str,
        entity_type: str,
        entity_id: Any,
        actor_id: Any,
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Publish an audit event.

        Args:
            event_type: Type of event (e.g., 'appointment.created')
            entity_type: Kind of record that changed
            entity_id: Id of the record that changed
            actor_id: Caller the change is attributed to
            before: Snapshot before the change
            after: Snapshot after the change
            metadata: Additional context

        Returns:
            True if handed to the backend, False otherwise
        """
        if not self.enabled:
            logger.debug(f"Audit events disabled, skipping: {event_type}")
            return False

        try:
            event = {
                'event_id': str(uuid.uuid4()),
                'event_type': event_type,
                'service': self.service_name,
                'timestamp': timezone.now().isoformat(),
                'actor_id': actor_id,
                'entity_type': entity_type,
                'entity_id': entity_id,
                'before': before,
                'after': after,
                'metadata': metadata or {},
            }
            event_json = json.dumps(event, cls=JSONEncoder)

            logger.info(f"Publishing audit event: {event_type}", extra={
                'event_type': event_type,
                'entity_type': entity_type,
                'entity_id': str(entity_id),
                'actor_id': str(actor_id),
            })

            self._publish_to_backend(event_type, event_json)
            return True

        except Exception as e:
            logger.error(f"Failed to publish audit event {event_type}: {e}")
            return False

    def _publish_to_backend(self, event_type: str, event_json: str):
        """Publish to the configured backend."""
        backend = getattr(settings, 'AUDIT_EVENT_BACKEND', 'log')

        if backend == 'celery':
            self._publish_celery(event_type, event_json)
        else:
            logger.debug(f"Audit event payload: {event_json[:500]}")

    def _publish_celery(self, event_type: str, event_json: str):
        """Queue webhook delivery without waiting for it."""
        from .tasks import deliver_audit_event

        deliver_audit_event.apply_async(args=[event_type, event_json], retry=False)


# Global audit publisher instance
audit_publisher = AuditEventPublisher()
