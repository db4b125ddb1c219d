# tests/integration/test_repository.py
"""
Integration Tests for the Django ORM repository

Runs the services against the database the way the API does.
"""

import uuid
from datetime import date, time

import pytest
from django.db import OperationalError, connection
from django.test.utils import CaptureQueriesContext

from apps.core.models import Appointment, Package, Payment, PaymentMethod, PaymentStatus
from apps.core.repositories import DjangoClinicRepository
from apps.core.services import (
    BatchBookingError,
    BookingConflictError,
    BookingService,
    LedgerService,
    RetryableError,
    SessionOverrunError,
)

WEDNESDAY = date(2024, 1, 10)


@pytest.fixture
def clinic(create_patient, create_service, create_staff, create_room, user_id):
    """Patient with a 2 session massage package, one staff member and two rooms."""
    patient = create_patient()
    massage = create_service()
    ledger = LedgerService()
    package = ledger.purchase_package(
        patient_id=patient.id,
        items=[{'service_id': massage.id, 'instances': 2}],
        actor_id=user_id,
        initial_payment={'amount_cents': 1000, 'method': PaymentMethod.CARD},
    )[0]
    return {
        'patient': patient,
        'service': massage,
        'staff': create_staff(),
        'room': create_room(),
        'other_room': create_room(name='Room 2'),
        'package': package,
        'item': package.items.get(),
        'ledger': ledger,
        'booking': BookingService(),
    }


def book(clinic, start, user_id, room=None):
    return clinic['booking'].create_appointment(
        staff_id=clinic['staff'].id,
        room_id=(room or clinic['room']).id,
        date=WEDNESDAY,
        start_time=start,
        service_id=clinic['service'].id,
        package_item_id=clinic['item'].id,
        actor_id=user_id,
    )


@pytest.mark.django_db
class TestDjangoClinicRepository:
    """Tests for DjangoClinicRepository queries."""

    def test_lookup_of_malformed_id_returns_none(self):
        repository = DjangoClinicRepository()

        assert repository.get_service('not-a-uuid') is None
        assert repository.get_package(uuid.uuid4()) is None

    def test_find_overlapping_appointments(self, clinic, user_id):
        repository = DjangoClinicRepository()
        appointment = book(clinic, time(9, 0), user_id)

        overlapping = repository.find_overlapping_appointments(
            WEDNESDAY, time(9, 30), time(10, 30), staff_id=clinic['staff'].id
        )
        touching = repository.find_overlapping_appointments(
            WEDNESDAY, time(10, 0), time(11, 0), staff_id=clinic['staff'].id
        )
        excluded = repository.find_overlapping_appointments(
            WEDNESDAY, time(9, 30), time(10, 30),
            staff_id=clinic['staff'].id, exclude_appointment_id=appointment.id
        )
        other_room = repository.find_overlapping_appointments(
            WEDNESDAY, time(9, 30), time(10, 30), room_id=clinic['other_room'].id
        )

        assert [a.id for a in overlapping] == [appointment.id]
        assert touching == []
        assert excluded == []
        assert other_room == []

    def test_total_paid(self, clinic, user_id):
        repository = DjangoClinicRepository()
        clinic['ledger'].add_payment(clinic['package'].id, 2500, PaymentMethod.CASH, user_id)

        assert repository.total_paid(clinic['package'].id) == 3500
        assert repository.total_paid(uuid.uuid4()) == 0

    def test_statistics_query_count_does_not_grow(self, clinic, user_id):
        ledger = clinic['ledger']
        with CaptureQueriesContext(connection) as one_package:
            ledger.get_statistics()

        for _ in range(2):
            ledger.purchase_package(
                patient_id=clinic['patient'].id,
                items=[{'service_id': clinic['service'].id, 'instances': 1}],
                actor_id=user_id,
                initial_payment={'amount_cents': 500, 'method': PaymentMethod.CASH},
            )
        with CaptureQueriesContext(connection) as three_packages:
            stats = ledger.get_statistics(patient_id=clinic['patient'].id)

        assert len(three_packages) == len(one_package)
        assert stats['total_packages'] == 3
        assert stats['total_revenue_cents'] == 2000

    def test_database_errors_are_retryable(self):
        repository = DjangoClinicRepository()

        with pytest.raises(RetryableError) as exc_info:
            with repository.atomic():
                raise OperationalError('database is locked')

        assert exc_info.value.status_code == 503

    def test_payments_are_append_only(self, clinic):
        payment = Payment.objects.get(package=clinic['package'])
        payment.notes = 'edited'

        with pytest.raises(ValueError):
            payment.save()
        with pytest.raises(ValueError):
            payment.delete()


@pytest.mark.django_db
class TestServicesOnTheDatabase:
    """End-to-end flows through the services and the ORM."""

    def test_purchase_is_stored(self, clinic):
        package = Package.objects.get(pk=clinic['package'].id)

        assert package.final_price_cents == 6000
        assert package.payment_status == PaymentStatus.PARTIALLY_PAID
        assert package.name == '2x Massage'
        assert clinic['item'].session_count == 2

    def test_booking_flow(self, clinic, user_id):
        first = book(clinic, time(9, 0), user_id)

        with pytest.raises(BookingConflictError):
            book(clinic, time(9, 30), user_id, room=clinic['other_room'])

        second = book(clinic, time(10, 0), user_id)
        with pytest.raises(SessionOverrunError):
            book(clinic, time(11, 0), user_id)

        clinic['booking'].complete_appointment(first.id, user_id)
        clinic['booking'].complete_appointment(second.id, user_id)

        clinic['item'].refresh_from_db()
        clinic['package'].refresh_from_db()
        assert clinic['item'].completed_count == 2
        assert clinic['package'].status == Package.Status.COMPLETED
        assert Appointment.objects.filter(status=Appointment.Status.COMPLETED).count() == 2

    def test_failed_batch_leaves_no_rows(self, clinic, user_id):
        slot = {
            'staff_id': clinic['staff'].id,
            'room_id': clinic['room'].id,
            'date': WEDNESDAY,
            'service_id': clinic['service'].id,
            'package_item_id': clinic['item'].id,
        }

        with pytest.raises(BatchBookingError):
            clinic['booking'].create_multiple_appointments(
                [{**slot, 'start_time': time(h, 0)} for h in (9, 10, 11)], user_id
            )

        assert Appointment.objects.count() == 0

    def test_cancel_then_rebook(self, clinic, user_id):
        appointment = book(clinic, time(9, 0), user_id)
        clinic['booking'].cancel_appointment(appointment.id, user_id, reason='Sick')

        rebooked = book(clinic, time(9, 0), user_id)

        assert rebooked.id != appointment.id
        assert Appointment.objects.get(pk=appointment.id).cancellation_reason == 'Sick'
