# tests/unit/test_events.py
"""
Unit Tests for audit events and their delivery task
"""

import json
import uuid
from datetime import date, time
from unittest.mock import MagicMock, patch

import requests

from apps.core.events import AuditEventPublisher, EventType, JSONEncoder, snapshot
from apps.core.models import Room
from apps.core.tasks import deliver_audit_event


class TestAuditEventPublisher:
    """Tests for AuditEventPublisher."""

    def test_publish_to_log(self, settings):
        settings.AUDIT_EVENT_BACKEND = 'log'

        published = AuditEventPublisher().publish(
            EventType.APPOINTMENT_CREATED, 'appointment', uuid.uuid4(), uuid.uuid4(),
            after={'date': date(2024, 1, 10), 'start_time': time(9, 0)}
        )

        assert published is True

    def test_unknown_backend_only_logs(self, settings):
        settings.AUDIT_EVENT_BACKEND = 'redis'

        with patch('apps.core.tasks.deliver_audit_event') as task:
            published = AuditEventPublisher().publish(EventType.PAYMENT_ADDED, 'payment', 1, 1)

        assert published is True
        task.apply_async.assert_not_called()

    def test_disabled(self, settings):
        settings.AUDIT_EVENTS_ENABLED = False

        assert AuditEventPublisher().publish(EventType.PAYMENT_ADDED, 'payment', 1, 1) is False

    def test_backend_failure_is_swallowed(self, settings):
        settings.AUDIT_EVENT_BACKEND = 'celery'

        with patch('apps.core.tasks.deliver_audit_event') as task:
            task.apply_async.side_effect = ConnectionError
            published = AuditEventPublisher().publish(EventType.SESSION_USED, 'package_item', 1, 1)

        assert published is False

    def test_celery_backend_queues_delivery(self, settings):
        settings.AUDIT_EVENT_BACKEND = 'celery'
        entity_id = uuid.uuid4()

        with patch('apps.core.tasks.deliver_audit_event') as task:
            AuditEventPublisher().publish(EventType.PACKAGE_CANCELLED, 'package', entity_id, uuid.uuid4())

        event_type, event_json = task.apply_async.call_args.kwargs['args']
        assert event_type == EventType.PACKAGE_CANCELLED
        assert json.loads(event_json)['entity_id'] == str(entity_id)


def test_json_encoder():
    payload = json.dumps({'id': uuid.UUID(int=1), 'at': time(9, 30)}, cls=JSONEncoder)

    assert json.loads(payload) == {'id': '00000000-0000-0000-0000-000000000001', 'at': '09:30:00'}


def test_snapshot_uses_stored_fields():
    room = Room(id=uuid.uuid4(), name='Room 1', capacity=1)

    data = snapshot(room)

    assert data['name'] == 'Room 1'
    assert data['id'] == room.id
    assert snapshot(None) is None


class TestDeliverAuditEvent:
    """Tests for the deliver_audit_event task."""

    def test_without_webhook(self, settings):
        settings.AUDIT_WEBHOOK_URL = ''

        assert deliver_audit_event.apply(args=['payment.added', '{}']).get() == {
            'delivered': False, 'reason': 'no_webhook'
        }

    def test_posts_event(self, settings):
        settings.AUDIT_WEBHOOK_URL = 'http://audit.local/events'
        response = MagicMock(status_code=202)

        with patch('apps.core.tasks.requests.post', return_value=response) as post:
            result = deliver_audit_event.apply(args=['payment.added', '{"a": 1}']).get()

        assert result == {'delivered': True, 'status_code': 202}
        assert post.call_args.kwargs['headers']['X-Event-Type'] == 'payment.added'

    def test_gives_up_after_retries(self, settings):
        settings.AUDIT_WEBHOOK_URL = 'http://audit.local/events'

        with patch('apps.core.tasks.requests.post', side_effect=requests.ConnectionError('down')):
            result = deliver_audit_event.apply(args=['payment.added', '{}'], retries=3).get()

        assert result['delivered'] is False
