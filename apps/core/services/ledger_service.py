# apps/core/services/ledger_service.py
"""
Ledger Service

Package accounting: purchased vs completed sessions per package item and
cumulative payments vs final price per package. Every mutation runs under
the package lock inside a transaction that re-reads the current totals.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from django.utils import timezone

from ..events import EventType, audit_publisher, snapshot
from ..locks import package_key
from ..models import Package, PackageItem, Payment, PaymentMethod, PaymentStatus
from .exceptions import (
    InvalidTransitionError,
    NotFoundError,
    OverpaymentError,
    SessionOverrunError,
    ValidationError,
)
from .pricing_service import PricingAllocator, PurchaseLine
from .status import derive_package_status, derive_payment_status
from .validation import as_uuid, optional_uuid, positive_int, require_actor

logger = logging.getLogger(__name__)


class LedgerService:
    """
    Service for the package ledger.

    Handles package purchase, payments, session usage and the derived
    payment and package statuses.
    """

    def __init__(self, repository=None, audit=None, allocator=None):
        if repository is None:
            from ..repositories import DjangoClinicRepository
            repository = DjangoClinicRepository()
        self.repository = repository
        self.audit = audit or audit_publisher
        self.allocator = allocator or PricingAllocator()

    # ==========================================================================
    # Lookups
    # ==========================================================================

    def get_package(self, package_id: Any) -> Package:
        package = self.repository.get_package(as_uuid(package_id, 'package_id'))
        if package is None:
            raise NotFoundError("Package", package_id)
        return package

    def get_package_item(self, package_item_id: Any) -> PackageItem:
        item = self.repository.get_package_item(as_uuid(package_item_id, 'package_item_id'))
        if item is None:
            raise NotFoundError("PackageItem", package_item_id)
        return item

    # ==========================================================================
    # Purchase
    # ==========================================================================

    def purchase_package(
        self,
        patient_id: Any,
        items: List[Dict[str, Any]],
        actor_id: Any,
        discount_cents: int = 0,
        initial_payment: Optional[Dict[str, Any]] = None,
        notes: str = ''
    ) -> List[Package]:
        """
        Purchase one or more services as packages.

        Args:
            patient_id: Patient buying the packages
            items: ``{'service_id', 'instances', 'unit_price_cents'?}`` per
                service; the unit price defaults to the service's price
            actor_id: Caller the purchase is attributed to
            discount_cents: Discount over the whole purchase
            initial_payment: Optional ``{'amount_cents', 'method', 'notes'?}``
                split proportionally over the packages
            notes: Free text stored on every package

        Returns:
            One package per distinct service, in request order
        """
        actor = require_actor(actor_id)
        patient_id = as_uuid(patient_id, 'patient_id')
        if not items:
            raise ValidationError("A purchase needs at least one item", field='items')
        if isinstance(discount_cents, bool) or not isinstance(discount_cents, int):
            raise ValidationError("Discount must be an amount in minor units", field='discount')

        payment_cents = None
        payment_method = PaymentMethod.CASH
        payment_notes = ''
        if initial_payment:
            payment_cents = positive_int(initial_payment.get('amount_cents'), 'payment')
            payment_method = self._validate_method(initial_payment.get('method', PaymentMethod.CASH))
            payment_notes = initial_payment.get('notes', '') or ''

        patient = self.repository.get_patient(patient_id)
        if patient is None:
            raise NotFoundError("Patient", patient_id)
        if not patient.is_active:
            raise ValidationError("Patient is not active", field='patient_id')

        lines = []
        for entry in items:
            service_id = as_uuid(entry.get('service_id'), 'service_id')
            service = self.repository.get_service(service_id)
            if service is None:
                raise NotFoundError("Service", service_id)
            if not service.is_active:
                raise ValidationError(f"Service '{service.name}' is not active", field='service_id')
            unit_price = entry.get('unit_price_cents')
            lines.append(PurchaseLine(
                service_id=service.id,
                unit_price_cents=service.unit_price_cents if unit_price is None else unit_price,
                instances=positive_int(entry.get('instances'), 'instances'),
                sessions_per_instance=service.sessions_per_instance,
                service_name=service.name,
            ))

        allocation = self.allocator.allocate(lines, discount_cents, payment_cents)

        created = []
        with self.repository.atomic():
            for share in allocation.allocations:
                package = self.repository.add_package(Package(
                    id=uuid.uuid4(),
                    patient_id=patient_id,
                    name=share.package_name,
                    total_price_cents=share.item_price_cents,
                    discount_cents=share.discount_cents,
                    final_price_cents=share.final_price_cents,
                    payment_status=derive_payment_status(share.payment_cents, share.final_price_cents),
                    status=Package.Status.ACTIVE,
                    notes=notes,
                    created_by=actor,
                ))
                self.repository.add_package_item(PackageItem(
                    id=uuid.uuid4(),
                    package_id=package.id,
                    service_id=share.service_id,
                    session_count=share.session_count,
                    completed_count=0,
                ))
                payment = None
                if share.payment_cents > 0:
                    payment = self.repository.add_payment(Payment(
                        id=uuid.uuid4(),
                        package_id=package.id,
                        amount_cents=share.payment_cents,
                        method=payment_method,
                        status=share.payment_status,
                        notes=payment_notes,
                        created_by=actor,
                    ))
                created.append((package, share, payment))

        for package, share, payment in created:
            self.audit.publish(
                EventType.PACKAGE_PURCHASED, 'package', package.id, actor,
                after=snapshot(package), metadata={'allocation': share.to_dict()}
            )
            if payment is not None:
                self.publish_payment(payment, actor)

        logger.info(
            f"Purchased {len(created)} package(s) for patient {patient_id}",
            extra={
                'patient_id': str(patient_id),
                'total_price_cents': allocation.total_price_cents,
                'discount_cents': allocation.discount_cents,
                'payment_cents': allocation.payment_cents,
            }
        )
        return [package for package, _, _ in created]

    # ==========================================================================
    # Payments
    # ==========================================================================

    def add_payment(
        self,
        package_id: Any,
        amount_cents: int,
        method: str,
        actor_id: Any,
        notes: str = '',
        paid_sessions_count: Optional[int] = None
    ) -> Payment:
        """
        Record a payment against a package.

        Raises:
            ValidationError: Non-positive amount or unknown method
            NotFoundError: Unknown package
            OverpaymentError: Amount above the remaining balance
        """
        actor = require_actor(actor_id)
        package_id = as_uuid(package_id, 'package_id')
        request = self.prepare_payment({
            'amount_cents': amount_cents,
            'method': method,
            'notes': notes,
            'paid_sessions_count': paid_sessions_count,
        })

        with self.repository.locks.hold([package_key(package_id)]):
            with self.repository.atomic():
                payment = self.apply_payment(package_id, request, actor)

        self.publish_payment(payment, actor)
        return payment

    def prepare_payment(
        self,
        payment: Dict[str, Any],
        default_sessions: Optional[int] = None,
        default_notes: str = ''
    ) -> Dict[str, Any]:
        """Validate a payment request. Reads nothing."""
        paid_sessions_count = payment.get('paid_sessions_count') or default_sessions
        if paid_sessions_count is not None:
            paid_sessions_count = positive_int(paid_sessions_count, 'paid_sessions_count')
        return {
            'amount_cents': positive_int(payment.get('amount_cents'), 'amount'),
            'method': self._validate_method(payment.get('method', PaymentMethod.CASH)),
            'notes': payment.get('notes') or default_notes,
            'paid_sessions_count': paid_sessions_count,
        }

    def apply_payment(self, package_id: uuid.UUID, request: Dict[str, Any], actor: uuid.UUID) -> Payment:
        """
        Store a prepared payment and re-derive the package payment status.

        The caller holds the package lock and an open repository
        transaction, so the remaining balance cannot change underneath.
        """
        package = self.repository.get_package(package_id, for_update=True)
        if package is None:
            raise NotFoundError("Package", package_id)

        amount_cents = request['amount_cents']
        total_paid = self.repository.total_paid(package_id)
        remaining = package.final_price_cents - total_paid
        if amount_cents > remaining:
            raise OverpaymentError(amount_cents, remaining, package_id)

        status = derive_payment_status(total_paid + amount_cents, package.final_price_cents)
        payment = self.repository.add_payment(Payment(
            id=uuid.uuid4(),
            package_id=package_id,
            amount_cents=amount_cents,
            method=request['method'],
            status=status,
            paid_sessions_count=request['paid_sessions_count'],
            notes=request['notes'],
            created_by=actor,
        ))
        package.payment_status = status
        self.repository.save_package(package)

        logger.info(
            f"Added payment of {amount_cents} to package {package_id}",
            extra={
                'package_id': str(package_id),
                'amount_cents': amount_cents,
                'payment_status': str(status),
            }
        )
        return payment

    def publish_payment(self, payment: Payment, actor_id: Any) -> None:
        self.audit.publish(
            EventType.PAYMENT_ADDED, 'payment', payment.id, actor_id,
            after=snapshot(payment),
            metadata={'package_id': str(payment.package_id), 'payment_status': str(payment.status)}
        )

    def list_payments(self, package_id: Any) -> List[Payment]:
        package = self.get_package(package_id)
        return self.repository.list_payments(package.id)

    def recalculate_payment_status(self, package_id: Any, actor_id: Any) -> Package:
        """Re-derive the payment status from the payment history."""
        actor = require_actor(actor_id)
        package_id = as_uuid(package_id, 'package_id')

        with self.repository.locks.hold([package_key(package_id)]):
            with self.repository.atomic():
                package = self.repository.get_package(package_id, for_update=True)
                if package is None:
                    raise NotFoundError("Package", package_id)
                status = derive_payment_status(
                    self.repository.total_paid(package_id),
                    package.final_price_cents
                )
                if package.payment_status != status:
                    logger.warning(
                        f"Package {package_id} payment status corrected",
                        extra={
                            'package_id': str(package_id),
                            'stored_status': package.payment_status,
                            'derived_status': str(status),
                            'actor_id': str(actor),
                        }
                    )
                    package.payment_status = status
                    self.repository.save_package(package)
        return package

    # ==========================================================================
    # Sessions
    # ==========================================================================

    def record_session_usage(self, package_item_id: Any, actor_id: Any) -> PackageItem:
        """
        Consume one session of a package item.

        Raises:
            SessionOverrunError: All sessions of the item are already used
        """
        actor = require_actor(actor_id)
        item = self.get_package_item(package_item_id)

        try:
            with self.repository.locks.hold([package_key(item.package_id)]):
                with self.repository.atomic():
                    before, item = self.use_session(item.id)
        except SessionOverrunError as e:
            self.publish_overrun(e, actor)
            raise

        self.audit.publish(
            EventType.SESSION_USED, 'package_item', item.id, actor,
            before=before, after=snapshot(item)
        )
        return item

    def use_session(self, package_item_id: uuid.UUID):
        """
        Increment ``completed_count`` of an item.

        The caller holds the package lock and an open repository
        transaction. Returns the item snapshot before the change and the
        updated item.
        """
        item = self.repository.get_package_item(package_item_id, for_update=True)
        if item is None:
            raise NotFoundError("PackageItem", package_item_id)
        if item.completed_count + 1 > item.session_count:
            raise SessionOverrunError(item.id, item.session_count, item.completed_count)

        before = snapshot(item)
        item.completed_count += 1
        self.repository.save_package_item(item)
        self._refresh_package_status(item.package_id)
        return before, item

    def publish_overrun(self, error: SessionOverrunError, actor_id: Any, appointment_id: Any = None) -> None:
        logger.warning(
            f"Session overrun rejected: {error.message}",
            extra={'package_item_id': str(error.package_item_id), 'actor_id': str(actor_id)}
        )
        self.audit.publish(
            EventType.SESSION_OVERRUN, 'package_item', error.package_item_id, actor_id,
            metadata={**error.details, 'appointment_id': str(appointment_id) if appointment_id else None}
        )

    def _refresh_package_status(self, package_id: uuid.UUID) -> None:
        package = self.repository.get_package(package_id, for_update=True)
        status = derive_package_status(package.status, self.repository.list_package_items(package_id))
        if status != package.status:
            package.status = status
            self.repository.save_package(package)
            logger.info(f"Package {package_id} is now {status}")

    # ==========================================================================
    # Package lifecycle
    # ==========================================================================

    def cancel_package(self, package_id: Any, actor_id: Any) -> Package:
        """Cancel a package; cancelling twice is an error."""
        actor = require_actor(actor_id)
        package_id = as_uuid(package_id, 'package_id')

        with self.repository.locks.hold([package_key(package_id)]):
            with self.repository.atomic():
                package = self.repository.get_package(package_id, for_update=True)
                if package is None:
                    raise NotFoundError("Package", package_id)
                if package.status == Package.Status.CANCELLED:
                    raise InvalidTransitionError(
                        package.status, Package.Status.CANCELLED,
                        message="Package is already cancelled"
                    )
                before = snapshot(package)
                package.status = Package.Status.CANCELLED
                package.cancelled_at = timezone.now()
                package.cancelled_by = actor
                self.repository.save_package(package)

        self.audit.publish(
            EventType.PACKAGE_CANCELLED, 'package', package_id, actor,
            before=before, after=snapshot(package)
        )
        logger.info(f"Cancelled package {package_id}")
        return package

    # ==========================================================================
    # Reporting
    # ==========================================================================

    def get_package_summary(self, package_id: Any) -> Dict[str, Any]:
        """Session and payment totals of a package."""
        package_id = as_uuid(package_id, 'package_id')
        with self.repository.atomic():
            package = self.repository.get_package(package_id)
            if package is None:
                raise NotFoundError("Package", package_id)
            items = self.repository.list_package_items(package_id)
            total_paid = self.repository.total_paid(package_id)

        total_sessions = sum(item.session_count for item in items)
        used_sessions = sum(item.completed_count for item in items)

        return {
            'package': package,
            'items': items,
            'total_sessions': total_sessions,
            'used_sessions': used_sessions,
            'remaining_sessions': total_sessions - used_sessions,
            'usage_percentage': round(100 * used_sessions / total_sessions) if total_sessions else 0,
            'total_paid_cents': total_paid,
            'remaining_balance_cents': package.final_price_cents - total_paid,
            'payment_status': derive_payment_status(total_paid, package.final_price_cents),
        }

    def get_statistics(self, patient_id: Any = None) -> Dict[str, Any]:
        """Package counts by status and revenue."""
        patient_id = optional_uuid(patient_id, 'patient_id')
        with self.repository.atomic():
            packages = self.repository.list_packages(patient_id=patient_id)
            revenue = self.repository.total_revenue(patient_id=patient_id)

        by_status = {status: 0 for status in Package.Status.values}
        by_payment_status = {status: 0 for status in PaymentStatus.values}
        for package in packages:
            by_status[package.status] += 1
            by_payment_status[package.payment_status] += 1

        return {
            'total_packages': len(packages),
            'by_status': by_status,
            'by_payment_status': by_payment_status,
            'total_value_cents': sum(package.final_price_cents for package in packages),
            'total_revenue_cents': revenue,
            'outstanding_cents': sum(package.final_price_cents for package in packages) - revenue,
        }

    @staticmethod
    def _validate_method(method: Any) -> str:
        if method not in PaymentMethod.values:
            raise ValidationError(
                f"Unknown payment method '{method}'",
                field='method',
                details={'allowed': PaymentMethod.values}
            )
        return method
