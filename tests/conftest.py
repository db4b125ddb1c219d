# tests/conftest.py
"""
Pytest Configuration and Fixtures

Provides common fixtures for clinic service tests. Unit tests run the
services against the in-memory repository; integration tests use the
Django ORM and the API client.
"""

import uuid
from datetime import date, time

import pytest
from rest_framework.test import APIClient

from apps.core.models import (
    Appointment,
    Patient,
    Room,
    Service,
    StaffMember,
    StaffSchedule,
)
from apps.core.repositories import InMemoryClinicRepository
from apps.core.services import BookingService, LedgerService, AvailabilityService

EVERY_DAY = range(7)


class RecordingPublisher:
    """Audit publisher that keeps events in memory."""

    def __init__(self):
        self.events = []

    def publish(self, event_type, entity_type, entity_id, actor_id, before=None, after=None, metadata=None):
        self.events.append({
            'event_type': event_type,
            'entity_type': entity_type,
            'entity_id': entity_id,
            'actor_id': actor_id,
            'before': before,
            'after': after,
            'metadata': metadata or {},
        })
        return True

    @property
    def types(self):
        return [event['event_type'] for event in self.events]


# =============================================================================
# Identity
# =============================================================================

@pytest.fixture
def api_client():
    """Provide API client for testing."""
    return APIClient()


@pytest.fixture
def user_id():
    """Provide a test user ID."""
    return uuid.uuid4()


@pytest.fixture
def auth_headers(user_id):
    """Provide gateway identity headers for API requests."""
    return {
        'HTTP_X_USER_ID': str(user_id),
    }


@pytest.fixture
def admin_headers(user_id):
    """Provide gateway identity headers of a clinic administrator."""
    return {
        'HTTP_X_USER_ID': str(user_id),
        'HTTP_X_USER_ROLE': 'staff, admin',
    }


# =============================================================================
# In-memory clinic
# =============================================================================

@pytest.fixture
def audit():
    return RecordingPublisher()


@pytest.fixture
def repository():
    return InMemoryClinicRepository()


@pytest.fixture
def patient(repository):
    return repository.add_patient(Patient(id=uuid.uuid4(), first_name='Ana', last_name='Novak'))


@pytest.fixture
def add_service(repository):
    """Factory fixture for services in the in-memory repository."""

    def _add_service(**kwargs):
        defaults = {
            'id': uuid.uuid4(),
            'name': 'Massage',
            'category': Service.Category.MASSAGE,
            'duration_minutes': 60,
            'unit_price_cents': 3000,
            'sessions_per_instance': 1,
        }
        defaults.update(kwargs)
        return repository.add_service(Service(**defaults))

    return _add_service


@pytest.fixture
def massage(add_service):
    return add_service()


@pytest.fixture
def drainage(add_service):
    return add_service(
        name='Lymphatic Drainage',
        category=Service.Category.LYMPHATIC_DRAINAGE,
        duration_minutes=30,
        unit_price_cents=2000,
    )


@pytest.fixture
def add_staff(repository):
    """Factory fixture for staff members working 08:00-18:00 every day."""

    def _add_staff(days=EVERY_DAY, start=time(8, 0), end=time(18, 0),
                   break_start=None, break_end=None, **kwargs):
        defaults = {
            'id': uuid.uuid4(),
            'first_name': 'Iva',
            'last_name': 'Horvat',
            'specialization': Service.Category.MASSAGE,
        }
        defaults.update(kwargs)
        staff = repository.add_staff(StaffMember(**defaults))
        for day in days:
            repository.add_staff_schedule(StaffSchedule(
                id=uuid.uuid4(),
                staff_id=staff.id,
                day_of_week=day,
                start_time=start,
                end_time=end,
                break_start_time=break_start,
                break_end_time=break_end,
            ))
        return staff

    return _add_staff


@pytest.fixture
def add_room(repository):
    """Factory fixture for rooms."""

    def _add_room(**kwargs):
        defaults = {'id': uuid.uuid4(), 'name': 'Room 1', 'capacity': 1}
        defaults.update(kwargs)
        return repository.add_room(Room(**defaults))

    return _add_room


@pytest.fixture
def staff(add_staff):
    return add_staff()


@pytest.fixture
def room(add_room):
    return add_room()


@pytest.fixture
def add_appointment(repository, patient, massage, staff, room, user_id):
    """Factory fixture for appointments stored without going through booking."""

    def _add_appointment(slot_date=date(2024, 1, 10), start=time(9, 0), end=time(10, 0), **kwargs):
        defaults = {
            'id': uuid.uuid4(),
            'patient_id': patient.id,
            'package_id': uuid.uuid4(),
            'package_item_id': uuid.uuid4(),
            'service_id': massage.id,
            'staff_id': staff.id,
            'room_id': room.id,
            'date': slot_date,
            'start_time': start,
            'end_time': end,
            'duration_minutes': (end.hour * 60 + end.minute) - (start.hour * 60 + start.minute),
            'status': Appointment.Status.SCHEDULED,
            'created_by': user_id,
        }
        defaults.update(kwargs)
        return repository.add_appointment(Appointment(**defaults))

    return _add_appointment


@pytest.fixture
def availability(repository):
    return AvailabilityService(repository)


@pytest.fixture
def ledger(repository, audit):
    return LedgerService(repository, audit)


@pytest.fixture
def booking(repository, audit):
    return BookingService(repository, audit)


@pytest.fixture
def buy_package(ledger, patient, user_id):
    """Factory fixture: purchase one service, return the package and its item."""

    def _buy_package(service, instances=10, patient_id=None, **kwargs):
        package = ledger.purchase_package(
            patient_id=patient_id or patient.id,
            items=[{'service_id': service.id, 'instances': instances}],
            actor_id=user_id,
            **kwargs
        )[0]
        item = ledger.repository.list_package_items(package.id)[0]
        return package, item

    return _buy_package


# =============================================================================
# Django ORM factories
# =============================================================================

@pytest.fixture
def create_patient():
    """Factory fixture for creating patients."""

    def _create_patient(**kwargs):
        defaults = {'first_name': 'Ana', 'last_name': 'Novak'}
        defaults.update(kwargs)
        return Patient.objects.create(**defaults)

    return _create_patient


@pytest.fixture
def create_service():
    """Factory fixture for creating services."""

    def _create_service(**kwargs):
        defaults = {
            'name': 'Massage',
            'category': Service.Category.MASSAGE,
            'duration_minutes': 60,
            'unit_price_cents': 3000,
        }
        defaults.update(kwargs)
        return Service.objects.create(**defaults)

    return _create_service


@pytest.fixture
def create_staff():
    """Factory fixture for staff members working 08:00-18:00 every day."""

    def _create_staff(days=EVERY_DAY, start=time(8, 0), end=time(18, 0), **kwargs):
        defaults = {'first_name': 'Iva', 'last_name': 'Horvat'}
        defaults.update(kwargs)
        staff = StaffMember.objects.create(**defaults)
        for day in days:
            StaffSchedule.objects.create(staff=staff, day_of_week=day, start_time=start, end_time=end)
        return staff

    return _create_staff


@pytest.fixture
def create_room():
    """Factory fixture for creating rooms."""

    def _create_room(**kwargs):
        defaults = {'name': 'Room 1'}
        defaults.update(kwargs)
        return Room.objects.create(**defaults)

    return _create_room
