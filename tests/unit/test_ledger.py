# tests/unit/test_ledger.py
"""
Unit Tests for the package ledger
"""

import threading
import uuid

import pytest

from apps.core.events import EventType
from apps.core.models import Package, Patient, PaymentMethod, PaymentStatus
from apps.core.services import (
    InvalidTransitionError,
    NotFoundError,
    OverpaymentError,
    SessionOverrunError,
    ValidationError,
)


class TestPurchasePackage:
    """Tests for LedgerService.purchase_package."""

    def test_one_package_per_service(self, ledger, repository, audit, patient, massage, drainage, user_id):
        packages = ledger.purchase_package(
            patient_id=patient.id,
            items=[
                {'service_id': massage.id, 'instances': 10},
                {'service_id': drainage.id, 'instances': 5},
            ],
            actor_id=user_id,
            discount_cents=5000,
            initial_payment={'amount_cents': 10000, 'method': PaymentMethod.CARD},
        )

        assert [p.name for p in packages] == ['10x Massage', '5x Lymphatic Drainage']
        assert [p.final_price_cents for p in packages] == [26250, 8750]
        assert [p.discount_cents for p in packages] == [3750, 1250]
        assert all(p.payment_status == PaymentStatus.PARTIALLY_PAID for p in packages)
        assert [repository.total_paid(p.id) for p in packages] == [7500, 2500]
        assert all(p.created_by == user_id for p in packages)

        payment = repository.list_payments(packages[0].id)[0]
        assert payment.method == PaymentMethod.CARD
        assert payment.status == PaymentStatus.PARTIALLY_PAID

        assert audit.types.count(EventType.PACKAGE_PURCHASED) == 2
        assert audit.types.count(EventType.PAYMENT_ADDED) == 2

    def test_session_count(self, ledger, repository, patient, add_service, user_id):
        course = add_service(name='Physio course', unit_price_cents=12000, sessions_per_instance=4)

        package = ledger.purchase_package(
            patient_id=patient.id,
            items=[{'service_id': course.id, 'instances': 2}],
            actor_id=user_id,
        )[0]

        package_item = repository.list_package_items(package.id)[0]
        assert package_item.session_count == 8
        assert package_item.completed_count == 0
        assert package.status == Package.Status.ACTIVE
        assert package.payment_status == PaymentStatus.NONE

    def test_unit_price_defaults_to_service_price(self, buy_package, massage):
        package, _ = buy_package(massage, instances=2)
        assert package.total_price_cents == 6000

    def test_zero_price_package_is_paid(self, ledger, patient, massage, user_id):
        package = ledger.purchase_package(
            patient_id=patient.id,
            items=[{'service_id': massage.id, 'instances': 1, 'unit_price_cents': 0}],
            actor_id=user_id,
        )[0]

        assert package.final_price_cents == 0
        assert package.payment_status == PaymentStatus.COMPLETED

    def test_zero_priced_last_item(self, ledger, patient, add_service, user_id):
        services = [
            add_service(name='A', unit_price_cents=1500),
            add_service(name='B', unit_price_cents=1500),
            add_service(name='Consultation', unit_price_cents=0),
        ]

        packages = ledger.purchase_package(
            patient_id=patient.id,
            items=[{'service_id': s.id, 'instances': 1} for s in services],
            actor_id=user_id,
            discount_cents=1001,
        )

        assert [p.discount_cents for p in packages] == [501, 500, 0]
        assert [p.final_price_cents for p in packages] == [999, 1000, 0]

    def test_unknown_service(self, ledger, repository, patient, user_id):
        with pytest.raises(NotFoundError):
            ledger.purchase_package(
                patient_id=patient.id,
                items=[{'service_id': uuid.uuid4(), 'instances': 1}],
                actor_id=user_id,
            )

        assert repository.list_packages() == []

    def test_unknown_patient(self, ledger, massage, user_id):
        with pytest.raises(NotFoundError):
            ledger.purchase_package(
                patient_id=uuid.uuid4(),
                items=[{'service_id': massage.id, 'instances': 1}],
                actor_id=user_id,
            )

    def test_initial_payment_above_price(self, ledger, repository, patient, massage, user_id):
        with pytest.raises(OverpaymentError):
            ledger.purchase_package(
                patient_id=patient.id,
                items=[{'service_id': massage.id, 'instances': 1}],
                actor_id=user_id,
                initial_payment={'amount_cents': 3001},
            )

        assert repository.list_packages() == []

    def test_actor_required(self, ledger, patient, massage):
        with pytest.raises(ValidationError) as exc_info:
            ledger.purchase_package(
                patient_id=patient.id,
                items=[{'service_id': massage.id, 'instances': 1}],
                actor_id=None,
            )

        assert exc_info.value.field == 'actor_id'


class TestPayments:
    """Tests for LedgerService.add_payment."""

    @pytest.fixture(autouse=True)
    def _package(self, add_service, buy_package):
        service = add_service(name='Assessment', unit_price_cents=10000)
        self.package, _ = buy_package(service, instances=1)

    def test_payments_until_paid(self, ledger, repository, user_id):
        first = ledger.add_payment(self.package.id, 4000, PaymentMethod.CASH, user_id)
        assert first.status == PaymentStatus.PARTIALLY_PAID
        assert ledger.get_package(self.package.id).payment_status == PaymentStatus.PARTIALLY_PAID

        second = ledger.add_payment(self.package.id, 6000, PaymentMethod.CARD, user_id)
        assert second.status == PaymentStatus.COMPLETED
        assert ledger.get_package(self.package.id).payment_status == PaymentStatus.COMPLETED

        with pytest.raises(OverpaymentError):
            ledger.add_payment(self.package.id, 1, PaymentMethod.CASH, user_id)

        assert repository.total_paid(self.package.id) == 10000

    def test_overpayment_reports_remaining_balance(self, ledger, user_id):
        ledger.add_payment(self.package.id, 4000, PaymentMethod.CASH, user_id)

        with pytest.raises(OverpaymentError) as exc_info:
            ledger.add_payment(self.package.id, 6001, PaymentMethod.CASH, user_id)

        assert exc_info.value.remaining_cents == 6000
        assert exc_info.value.status_code == 422

    @pytest.mark.parametrize('amount', [0, -500])
    def test_amount_must_be_positive(self, ledger, amount, user_id):
        with pytest.raises(ValidationError):
            ledger.add_payment(self.package.id, amount, PaymentMethod.CASH, user_id)

    def test_unknown_method(self, ledger, user_id):
        with pytest.raises(ValidationError) as exc_info:
            ledger.add_payment(self.package.id, 100, 'cheque', user_id)

        assert exc_info.value.field == 'method'

    def test_unknown_package(self, ledger, user_id):
        with pytest.raises(NotFoundError):
            ledger.add_payment(uuid.uuid4(), 100, PaymentMethod.CASH, user_id)

    def test_paid_sessions_count_is_stored(self, ledger, user_id):
        payment = ledger.add_payment(self.package.id, 2500, PaymentMethod.CASH, user_id, paid_sessions_count=1)

        assert payment.paid_sessions_count == 1
        assert ledger.list_payments(self.package.id) == [payment]

    def test_payment_event(self, ledger, audit, user_id):
        ledger.add_payment(self.package.id, 4000, PaymentMethod.CASH, user_id)

        event = audit.events[-1]
        assert event['event_type'] == EventType.PAYMENT_ADDED
        assert event['entity_type'] == 'payment'
        assert event['after']['amount_cents'] == 4000
        assert event['metadata'] == {
            'package_id': str(self.package.id),
            'payment_status': str(PaymentStatus.PARTIALLY_PAID),
        }

    def test_purchase_and_payment_events_match(self, ledger, audit, buy_package, massage, user_id):
        buy_package(massage, instances=1, initial_payment={'amount_cents': 1000})
        at_purchase = audit.events[-1]
        ledger.add_payment(self.package.id, 1000, PaymentMethod.CASH, user_id)
        later = audit.events[-1]

        assert at_purchase['event_type'] == later['event_type'] == EventType.PAYMENT_ADDED
        assert at_purchase['entity_type'] == later['entity_type'] == 'payment'
        assert set(at_purchase['after']) == set(later['after'])
        assert set(at_purchase['metadata']) == set(later['metadata'])

    def test_recalculate_repairs_stored_status(self, ledger, repository, user_id):
        ledger.add_payment(self.package.id, 10000, PaymentMethod.CASH, user_id)
        stored = repository.get_package(self.package.id)
        stored.payment_status = PaymentStatus.NONE
        repository.save_package(stored)

        package = ledger.recalculate_payment_status(self.package.id, user_id)

        assert package.payment_status == PaymentStatus.COMPLETED
        assert ledger.get_package(self.package.id).payment_status == PaymentStatus.COMPLETED

    def test_recalculate_reproduces_stored_status(self, ledger, user_id):
        ledger.add_payment(self.package.id, 4000, PaymentMethod.CASH, user_id)
        before = ledger.get_package(self.package.id).payment_status

        assert ledger.recalculate_payment_status(self.package.id, user_id).payment_status == before


class TestSessionUsage:
    """Tests for LedgerService.record_session_usage."""

    def test_overrun_on_session_beyond_count(self, ledger, audit, buy_package, massage, user_id):
        package, package_item = buy_package(massage, instances=3)

        for expected in (1, 2, 3):
            assert ledger.record_session_usage(package_item.id, user_id).completed_count == expected

        with pytest.raises(SessionOverrunError):
            ledger.record_session_usage(package_item.id, user_id)

        assert ledger.get_package_item(package_item.id).completed_count == 3
        assert audit.types.count(EventType.SESSION_USED) == 3
        assert audit.types[-1] == EventType.SESSION_OVERRUN

    def test_package_completes_when_sessions_are_used(self, ledger, buy_package, massage, user_id):
        package, package_item = buy_package(massage, instances=1)

        ledger.record_session_usage(package_item.id, user_id)

        assert ledger.get_package(package.id).status == Package.Status.COMPLETED

    def test_unknown_item(self, ledger, user_id):
        with pytest.raises(NotFoundError):
            ledger.record_session_usage(uuid.uuid4(), user_id)


class TestPackageLifecycle:
    """Tests for cancellation and reporting."""

    def test_cancel_package(self, ledger, audit, buy_package, massage, user_id):
        package, _ = buy_package(massage)

        cancelled = ledger.cancel_package(package.id, user_id)

        assert cancelled.status == Package.Status.CANCELLED
        assert cancelled.cancelled_by == user_id
        assert cancelled.cancelled_at is not None
        assert audit.types[-1] == EventType.PACKAGE_CANCELLED

    def test_cancel_twice(self, ledger, buy_package, massage, user_id):
        package, _ = buy_package(massage)
        ledger.cancel_package(package.id, user_id)

        with pytest.raises(InvalidTransitionError):
            ledger.cancel_package(package.id, user_id)

    def test_summary(self, ledger, buy_package, massage, user_id):
        package, package_item = buy_package(massage, instances=4, initial_payment={'amount_cents': 3000})
        ledger.record_session_usage(package_item.id, user_id)

        summary = ledger.get_package_summary(package.id)

        assert summary['total_sessions'] == 4
        assert summary['used_sessions'] == 1
        assert summary['remaining_sessions'] == 3
        assert summary['usage_percentage'] == 25
        assert summary['total_paid_cents'] == 3000
        assert summary['remaining_balance_cents'] == 9000
        assert summary['payment_status'] == PaymentStatus.PARTIALLY_PAID

    def test_summary_of_unknown_package(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.get_package_summary(uuid.uuid4())

    def test_statistics(self, ledger, buy_package, massage, drainage, user_id):
        paid, _ = buy_package(massage, instances=1, initial_payment={'amount_cents': 3000})
        open_package, _ = buy_package(drainage, instances=2)
        ledger.cancel_package(open_package.id, user_id)

        stats = ledger.get_statistics()

        assert stats['total_packages'] == 2
        assert stats['by_status'][Package.Status.ACTIVE] == 1
        assert stats['by_status'][Package.Status.CANCELLED] == 1
        assert stats['by_payment_status'][PaymentStatus.COMPLETED] == 1
        assert stats['by_payment_status'][PaymentStatus.NONE] == 1
        assert stats['total_value_cents'] == 7000
        assert stats['total_revenue_cents'] == 3000
        assert stats['outstanding_cents'] == 4000

    def test_statistics_for_one_patient(self, ledger, buy_package, massage):
        buy_package(massage)

        assert ledger.get_statistics(patient_id=uuid.uuid4())['total_packages'] == 0

    def test_revenue_counts_only_the_patients_payments(self, ledger, repository, buy_package, massage, user_id):
        other = repository.add_patient(Patient(id=uuid.uuid4(), first_name='Luka', last_name='Horvat'))
        mine, _ = buy_package(massage, instances=2, initial_payment={'amount_cents': 1000})
        ledger.add_payment(mine.id, 500, PaymentMethod.CASH, user_id)
        buy_package(massage, instances=2, patient_id=other.id, initial_payment={'amount_cents': 2000})

        assert ledger.get_statistics(patient_id=mine.patient_id)['total_revenue_cents'] == 1500
        assert ledger.get_statistics(patient_id=other.id)['total_revenue_cents'] == 2000
        assert ledger.get_statistics()['total_revenue_cents'] == 3500
        assert repository.total_revenue() == 3500


class TestConcurrentPayments:
    """Concurrent payments against one package."""

    def test_only_one_payment_fits_the_balance(self, ledger, repository, add_service, buy_package, user_id):
        package, _ = buy_package(add_service(unit_price_cents=100), instances=1)
        barrier = threading.Barrier(2)
        outcomes = []

        def pay():
            barrier.wait()
            try:
                ledger.add_payment(package.id, 60, PaymentMethod.CASH, user_id)
                outcomes.append('paid')
            except OverpaymentError:
                outcomes.append('overpayment')

        threads = [threading.Thread(target=pay) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(outcomes) == ['overpayment', 'paid']
        assert repository.total_paid(package.id) == 60
        assert repository.get_package(package.id).payment_status == PaymentStatus.PARTIALLY_PAID
