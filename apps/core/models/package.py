# apps/core/models/package.py
"""
Package Models

Purchased session bundles, their per-service session ledger and the
append-only payment history.
"""

import uuid
from django.db import models


class PaymentStatus(models.TextChoices):
    """Payment status of a package, derived from its payment history."""
    NONE = 'none', 'Not Paid'
    PARTIALLY_PAID = 'partially_paid', 'Partially Paid'
    COMPLETED = 'completed', 'Paid'


class PaymentMethod(models.TextChoices):
    """Payment method choices."""
    CASH = 'cash', 'Cash'
    CARD = 'card', 'Card'
    BANK_TRANSFER = 'bank_transfer', 'Bank Transfer'


class Package(models.Model):
    """
    A purchased bundle of sessions for a single service.

    A purchase covering several services produces one package per
    service. ``payment_status`` is never written directly; the ledger
    derives it from the payments after every mutation.
    """

    class Status(models.TextChoices):
        ACTIVE = 'active', 'Active'
        COMPLETED = 'completed', 'Completed'
        CANCELLED = 'cancelled', 'Cancelled'

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False
    )
    patient = models.ForeignKey(
        'core.Patient',
        on_delete=models.PROTECT,
        related_name='packages'
    )
    name = models.CharField(max_length=255)

    # Pricing (minor currency units)
    total_price_cents = models.PositiveIntegerField()
    discount_cents = models.PositiveIntegerField(default=0)
    final_price_cents = models.PositiveIntegerField()

    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.NONE,
        db_index=True
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE,
        db_index=True
    )
    notes = models.TextField(blank=True, default='')

    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.UUIDField(null=True, blank=True)

    created_by = models.UUIDField()
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'packages'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['patient', 'status']),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(final_price_cents=models.F('total_price_cents') - models.F('discount_cents')),
                name='package_final_price_matches'
            ),
        ]

    def __str__(self):
        return f"{self.name} ({self.get_status_display()})"

    @property
    def is_active(self) -> bool:
        return self.status == self.Status.ACTIVE


class PackageItem(models.Model):
    """Session ledger entry: purchased vs completed sessions of one service."""

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False
    )
    package = models.ForeignKey(
        Package,
        on_delete=models.CASCADE,
        related_name='items'
    )
    service = models.ForeignKey(
        'core.Service',
        on_delete=models.PROTECT,
        related_name='package_items'
    )
    session_count = models.PositiveIntegerField()
    completed_count = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'package_items'
        ordering = ['created_at']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(completed_count__lte=models.F('session_count')),
                name='completed_within_session_count'
            ),
            models.UniqueConstraint(
                fields=['package', 'service'],
                name='unique_service_per_package'
            ),
        ]

    def __str__(self):
        return f"{self.service_id}: {self.completed_count}/{self.session_count}"

    @property
    def remaining_sessions(self) -> int:
        return self.session_count - self.completed_count

    @property
    def usage_percentage(self) -> int:
        if not self.session_count:
            return 0
        return round(100 * self.completed_count / self.session_count)

    @property
    def is_fully_used(self) -> bool:
        return self.completed_count >= self.session_count


class Payment(models.Model):
    """
    A payment received against a package.

    Payments are append-only: an existing row is never updated or deleted.
    ``status`` records the package payment status right after this payment.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False
    )
    package = models.ForeignKey(
        Package,
        on_delete=models.PROTECT,
        related_name='payments'
    )
    amount_cents = models.PositiveIntegerField()
    method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        default=PaymentMethod.CASH
    )
    status = models.CharField(
        max_length=20,
        choices=[
            (PaymentStatus.PARTIALLY_PAID.value, PaymentStatus.PARTIALLY_PAID.label),
            (PaymentStatus.COMPLETED.value, PaymentStatus.COMPLETED.label),
        ]
    )
    paid_sessions_count = models.PositiveIntegerField(null=True, blank=True)
    notes = models.TextField(blank=True, default='')

    created_by = models.UUIDField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'payments'
        ordering = ['created_at']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name='payment_amount_positive'
            ),
        ]

    def __str__(self):
        return f"{self.package_id}: {self.amount_cents}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Payments are append-only and cannot be modified")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Payments are append-only and cannot be deleted")
