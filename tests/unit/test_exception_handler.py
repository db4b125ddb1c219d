# tests/unit/test_exception_handler.py
"""
Unit Tests for the API error envelope
"""

from types import SimpleNamespace

from rest_framework import exceptions

from apps.core.services import BatchBookingError, BookingConflictError, RetryableError, SessionOverrunError
from shared.common.exceptions import custom_exception_handler


def handle(exc):
    return custom_exception_handler(exc, {'request': SimpleNamespace(request_id='req-1')})


def test_conflict_is_retryable_409():
    response = handle(BookingConflictError([{'type': 'room', 'message': 'Room busy'}]))

    assert response.status_code == 409
    assert response.data['error']['code'] == 'BOOKING_CONFLICT'
    assert response.data['error']['retryable'] is True
    assert response.data['error']['request_id'] == 'req-1'
    assert 'Retry-After' not in response


def test_retryable_503_sets_retry_after():
    response = handle(RetryableError("Resource is busy"))

    assert response.status_code == 503
    assert response['Retry-After'] == '1'


def test_batch_status_follows_slot_errors():
    overrun = BatchBookingError.describe(2, SessionOverrunError('item', 2, 2))
    conflict = BatchBookingError.describe(0, BookingConflictError([{'type': 'staff', 'message': 'busy'}]))

    assert handle(BatchBookingError([conflict])).status_code == 409
    assert handle(BatchBookingError([conflict, overrun])).status_code == 422


def test_serializer_errors_become_details():
    response = handle(exceptions.ValidationError({'start_time': ['This field is required.']}))

    assert response.status_code == 400
    assert response.data['success'] is False
    assert response.data['error']['code'] == 'VALIDATION_ERROR'
    assert response.data['error']['details'] == {'start_time': ['This field is required.']}


def test_permission_denied():
    response = handle(exceptions.PermissionDenied())

    assert response.status_code == 403
    assert response.data['error']['code'] == 'FORBIDDEN'


def test_unexpected_error(settings):
    settings.DEBUG = False

    response = handle(ZeroDivisionError('boom'))

    assert response.status_code == 500
    assert response.data['error']['code'] == 'INTERNAL_ERROR'
    assert response.data['error']['details'] == {}
