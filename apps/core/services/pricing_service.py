# apps/core/services/pricing_service.py
"""
Pricing Service

Splits one multi-service purchase into per-service package allocations.
All amounts are integer minor currency units.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..models import PaymentStatus
from .exceptions import OverpaymentError, ValidationError
from .status import derive_payment_status

logger = logging.getLogger(__name__)


def allocate_proportionally(amount: int, weights: Sequence[int]) -> List[int]:
    """
    Split ``amount`` across ``weights`` without drift.

    Every share but the last is ``amount * weight / total`` rounded half up
    to the minor unit and the last item with a positive weight takes the
    exact remainder, so the shares always sum to ``amount``. Zero weights
    get nothing. When that remainder would fall outside ``[0, weight]``
    the split falls back to largest remainders.
    """
    if not weights:
        return []
    total = sum(weights)
    if total == 0:
        if amount:
            raise ValidationError("Cannot allocate a non-zero amount over zero-priced items")
        return [0] * len(weights)

    last = max(index for index, weight in enumerate(weights) if weight > 0)
    shares = [
        0 if index == last else (2 * amount * weight + total) // (2 * total)
        for index, weight in enumerate(weights)
    ]
    shares[last] = amount - sum(shares)
    if 0 <= shares[last] and (amount > total or shares[last] <= weights[last]):
        return shares
    return _largest_remainders(amount, weights, total)


def _largest_remainders(amount: int, weights: Sequence[int], total: int) -> List[int]:
    # floor every share, then hand the leftover units to the largest fractions
    shares = [amount * weight // total for weight in weights]
    fractions = [amount * weight % total for weight in weights]
    leftover = amount - sum(shares)
    ranked = sorted(range(len(weights)), key=lambda index: (-fractions[index], index))
    for index in ranked[:leftover]:
        shares[index] += 1
    return shares


@dataclass
class PurchaseLine:
    """One requested service of a purchase."""

    service_id: Any
    unit_price_cents: int
    instances: int
    sessions_per_instance: int = 1
    service_name: str = ''

    @property
    def item_price_cents(self) -> int:
        return self.unit_price_cents * self.instances

    @property
    def session_count(self) -> int:
        return self.instances * self.sessions_per_instance


@dataclass
class ServiceAllocation:
    """The share of a purchase that becomes one package."""

    line: PurchaseLine
    discount_cents: int
    final_price_cents: int
    payment_cents: int = 0
    payment_status: str = PaymentStatus.NONE

    @property
    def service_id(self) -> Any:
        return self.line.service_id

    @property
    def item_price_cents(self) -> int:
        return self.line.item_price_cents

    @property
    def session_count(self) -> int:
        return self.line.session_count

    @property
    def package_name(self) -> str:
        return f"{self.line.instances}x {self.line.service_name}".strip()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'service_id': str(self.service_id),
            'instances': self.line.instances,
            'unit_price_cents': self.line.unit_price_cents,
            'item_price_cents': self.item_price_cents,
            'discount_cents': self.discount_cents,
            'final_price_cents': self.final_price_cents,
            'session_count': self.session_count,
            'payment_cents': self.payment_cents,
            'payment_status': str(self.payment_status),
        }


@dataclass
class PurchaseAllocation:
    """Result of allocating a purchase."""

    allocations: List[ServiceAllocation] = field(default_factory=list)
    total_price_cents: int = 0
    discount_cents: int = 0
    payment_cents: int = 0

    @property
    def final_price_cents(self) -> int:
        return self.total_price_cents - self.discount_cents


class PricingAllocator:
    """
    Proportional discount and payment allocation.

    Lines for the same service are merged into one allocation, so every
    distinct service becomes exactly one package.
    """

    def merge_lines(self, lines: Sequence[PurchaseLine]) -> List[PurchaseLine]:
        merged: Dict[Any, PurchaseLine] = {}
        for line in lines:
            if line.instances < 1:
                raise ValidationError("Instances must be at least 1", field='instances')
            if line.unit_price_cents < 0:
                raise ValidationError("Unit price cannot be negative", field='unit_price')
            if line.sessions_per_instance < 1:
                raise ValidationError("Sessions per instance must be at least 1", field='sessions_per_instance')

            key = str(line.service_id)
            existing = merged.get(key)
            if existing is None:
                merged[key] = PurchaseLine(
                    service_id=line.service_id,
                    unit_price_cents=line.unit_price_cents,
                    instances=line.instances,
                    sessions_per_instance=line.sessions_per_instance,
                    service_name=line.service_name,
                )
                continue
            if existing.unit_price_cents != line.unit_price_cents:
                raise ValidationError(
                    f"Service '{line.service_id}' listed with different unit prices",
                    field='items'
                )
            existing.instances += line.instances
        return list(merged.values())

    def allocate(
        self,
        lines: Sequence[PurchaseLine],
        discount_cents: int = 0,
        payment_cents: Optional[int] = None
    ) -> PurchaseAllocation:
        """
        Allocate a purchase.

        Args:
            lines: Requested services with unit price and instance count
            discount_cents: Discount over the whole purchase
            payment_cents: Optional initial payment over the whole purchase

        Returns:
            PurchaseAllocation with one ServiceAllocation per distinct service

        Raises:
            ValidationError: Empty purchase, bad quantities or a discount
                outside ``[0, total]``
            OverpaymentError: Initial payment above the discounted total
        """
        if not lines:
            raise ValidationError("A purchase needs at least one item", field='items')

        merged = self.merge_lines(lines)
        total = sum(line.item_price_cents for line in merged)

        if discount_cents < 0:
            raise ValidationError("Discount cannot be negative", field='discount')
        if discount_cents > total:
            raise ValidationError(
                f"Discount {discount_cents} exceeds total price {total}",
                field='discount'
            )

        discounts = allocate_proportionally(discount_cents, [line.item_price_cents for line in merged])
        allocations = [
            ServiceAllocation(
                line=line,
                discount_cents=share,
                final_price_cents=line.item_price_cents - share,
            )
            for line, share in zip(merged, discounts)
        ]

        result = PurchaseAllocation(
            allocations=allocations,
            total_price_cents=total,
            discount_cents=discount_cents,
        )

        if payment_cents is not None:
            self._allocate_payment(result, payment_cents)

        logger.debug(
            f"Allocated purchase over {len(allocations)} service(s)",
            extra={
                'total_price_cents': total,
                'discount_cents': discount_cents,
                'payment_cents': result.payment_cents,
            }
        )
        return result

    def _allocate_payment(self, result: PurchaseAllocation, payment_cents: int) -> None:
        if payment_cents <= 0:
            raise ValidationError("Payment amount must be positive", field='payment')
        if payment_cents > result.final_price_cents:
            raise OverpaymentError(payment_cents, result.final_price_cents)

        shares = allocate_proportionally(
            payment_cents,
            [allocation.final_price_cents for allocation in result.allocations]
        )
        for allocation, share in zip(result.allocations, shares):
            allocation.payment_cents = share
            allocation.payment_status = derive_payment_status(share, allocation.final_price_cents)
        result.payment_cents = payment_cents
