# tests/unit/test_pricing.py
"""
Unit Tests for proportional price, discount and payment allocation
"""

import random
import uuid

import pytest

from apps.core.models import PaymentStatus
from apps.core.services import (
    OverpaymentError,
    PricingAllocator,
    PurchaseLine,
    ValidationError,
    allocate_proportionally,
)


def line(unit_price_cents, instances, service_id=None, sessions_per_instance=1):
    return PurchaseLine(
        service_id=service_id or uuid.uuid4(),
        unit_price_cents=unit_price_cents,
        instances=instances,
        sessions_per_instance=sessions_per_instance,
        service_name='Service',
    )


class TestAllocateProportionally:
    """Tests for allocate_proportionally."""

    def test_exact_split(self):
        assert allocate_proportionally(100, [1, 3]) == [25, 75]

    def test_half_rounds_up_and_remainder_goes_last(self):
        assert allocate_proportionally(1, [1, 1]) == [1, 0]
        assert allocate_proportionally(10, [1, 1, 1]) == [3, 3, 4]

    def test_zero_amount(self):
        assert allocate_proportionally(0, [500, 0, 700]) == [0, 0, 0]

    def test_zero_weights(self):
        assert allocate_proportionally(0, [0, 0]) == [0, 0]

        with pytest.raises(ValidationError):
            allocate_proportionally(5, [0, 0])

    def test_no_weights(self):
        assert allocate_proportionally(100, []) == []

    def test_zero_weights_get_nothing(self):
        assert allocate_proportionally(1001, [1000, 1000, 0]) == [501, 500, 0]
        assert allocate_proportionally(5, [0, 4, 0, 6]) == [0, 2, 0, 3]

    def test_remainder_outside_weight_uses_largest_fractions(self):
        # half-up gives 1 to each of the first four, leaving -1 for the last
        assert allocate_proportionally(3, [3, 3, 3, 3, 1]) == [1, 1, 1, 0, 0]

    def test_shares_stay_within_their_weight(self):
        rng = random.Random(1001)
        for _ in range(500):
            weights = [rng.choice([0, rng.randint(1, 50), rng.randint(1, 100_000)]) for _ in range(rng.randint(1, 6))]
            if not any(weights):
                continue
            amount = rng.randint(0, sum(weights))

            shares = allocate_proportionally(amount, weights)

            assert sum(shares) == amount
            assert all(0 <= share <= weight for share, weight in zip(shares, weights))

    def test_shares_always_sum_to_amount(self):
        rng = random.Random(20240110)
        for _ in range(500):
            weights = [rng.randint(1, 100_000) for _ in range(rng.randint(1, 6))]
            amount = rng.randint(0, sum(weights))

            shares = allocate_proportionally(amount, weights)

            assert sum(shares) == amount
            assert len(shares) == len(weights)


class TestPricingAllocator:
    """Tests for PricingAllocator."""

    def setup_method(self):
        self.allocator = PricingAllocator()

    def test_two_services_with_discount_and_payment(self):
        """30.00 x 10 + 20.00 x 5, 50.00 off, 100.00 paid."""
        massage, drainage = line(3000, 10), line(2000, 5)

        result = self.allocator.allocate([massage, drainage], discount_cents=5000, payment_cents=10000)

        first, second = result.allocations
        assert result.total_price_cents == 40000
        assert result.final_price_cents == 35000
        assert (first.discount_cents, second.discount_cents) == (3750, 1250)
        assert (first.final_price_cents, second.final_price_cents) == (26250, 8750)
        assert (first.payment_cents, second.payment_cents) == (7500, 2500)
        assert first.payment_status == PaymentStatus.PARTIALLY_PAID
        assert second.payment_status == PaymentStatus.PARTIALLY_PAID

    def test_session_count_uses_sessions_per_instance(self):
        result = self.allocator.allocate([line(5000, 3, sessions_per_instance=2)])

        assert result.allocations[0].session_count == 6

    def test_duplicate_service_lines_are_merged(self):
        service_id = uuid.uuid4()

        result = self.allocator.allocate([line(3000, 2, service_id), line(3000, 3, service_id)])

        assert len(result.allocations) == 1
        assert result.allocations[0].line.instances == 5
        assert result.allocations[0].item_price_cents == 15000

    def test_duplicate_service_with_different_price_rejected(self):
        service_id = uuid.uuid4()

        with pytest.raises(ValidationError):
            self.allocator.allocate([line(3000, 2, service_id), line(2500, 1, service_id)])

    def test_full_payment_completes_every_package(self):
        result = self.allocator.allocate([line(3000, 1), line(1000, 1)], payment_cents=4000)

        assert all(a.payment_status == PaymentStatus.COMPLETED for a in result.allocations)

    def test_zero_priced_purchase(self):
        result = self.allocator.allocate([line(0, 4)])

        assert result.allocations[0].final_price_cents == 0
        assert result.allocations[0].discount_cents == 0

    def test_empty_purchase_rejected(self):
        with pytest.raises(ValidationError):
            self.allocator.allocate([])

    @pytest.mark.parametrize('instances', [0, -1])
    def test_instances_must_be_positive(self, instances):
        with pytest.raises(ValidationError):
            self.allocator.allocate([line(3000, instances)])

    def test_negative_unit_price_rejected(self):
        with pytest.raises(ValidationError):
            self.allocator.allocate([line(-100, 1)])

    def test_discount_above_total_rejected(self):
        with pytest.raises(ValidationError):
            self.allocator.allocate([line(3000, 1)], discount_cents=3001)

    def test_negative_discount_rejected(self):
        with pytest.raises(ValidationError):
            self.allocator.allocate([line(3000, 1)], discount_cents=-1)

    def test_payment_above_final_price_rejected(self):
        with pytest.raises(OverpaymentError):
            self.allocator.allocate([line(3000, 1)], discount_cents=1000, payment_cents=2001)

    def test_non_positive_payment_rejected(self):
        with pytest.raises(ValidationError):
            self.allocator.allocate([line(3000, 1)], payment_cents=0)

    def test_zero_priced_last_item_gets_no_discount(self):
        consult = line(0, 1)

        result = self.allocator.allocate([line(1500, 1), line(1500, 1), consult], discount_cents=1001)

        assert [a.discount_cents for a in result.allocations] == [501, 500, 0]
        assert [a.final_price_cents for a in result.allocations] == [999, 1000, 0]

    def test_zero_priced_last_item_gets_no_payment(self):
        result = self.allocator.allocate([line(1000, 1), line(1000, 1), line(0, 1)], payment_cents=1001)

        assert [a.payment_cents for a in result.allocations] == [501, 500, 0]
        assert result.allocations[0].payment_status == PaymentStatus.PARTIALLY_PAID
        assert result.allocations[2].payment_status == PaymentStatus.COMPLETED

    def test_totals_never_drift(self):
        rng = random.Random(350)
        for _ in range(300):
            lines = [line(rng.randint(100, 20000), rng.randint(1, 20)) for _ in range(rng.randint(1, 3))]
            total = sum(item.item_price_cents for item in lines)
            discount = rng.randint(0, total // 2)

            result = self.allocator.allocate(lines, discount_cents=discount)

            assert sum(a.discount_cents for a in result.allocations) == discount
            assert sum(a.final_price_cents for a in result.allocations) == total - discount
            assert all(a.final_price_cents >= 0 for a in result.allocations)
