# apps/core/services/status.py
"""
Ledger status derivation.

Pure functions: the same inputs always yield the same status, so a status
re-derived from the payment history reproduces the stored one.
"""

from typing import Iterable

from ..models import Package, PaymentStatus


def derive_payment_status(total_paid_cents: int, final_price_cents: int) -> PaymentStatus:
    """
    Derive a package payment status from the amount paid so far.

    COMPLETED once the final price is covered (a zero-price package is
    therefore paid), PARTIALLY_PAID for any positive amount below it,
    NONE otherwise.
    """
    if total_paid_cents >= final_price_cents:
        return PaymentStatus.COMPLETED
    if total_paid_cents > 0:
        return PaymentStatus.PARTIALLY_PAID
    return PaymentStatus.NONE


def derive_package_status(current_status: str, items: Iterable) -> str:
    """A package is COMPLETED while every item is fully used, ACTIVE otherwise."""
    if current_status == Package.Status.CANCELLED:
        return Package.Status.CANCELLED
    items = list(items)
    if items and all(item.completed_count >= item.session_count for item in items):
        return Package.Status.COMPLETED
    return Package.Status.ACTIVE
