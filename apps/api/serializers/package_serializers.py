# apps/api/serializers/package_serializers.py
"""
Package Serializers
"""

from rest_framework import serializers

from apps.core.models import Package, PackageItem, Payment, PaymentMethod, PaymentStatus
from .fields import MoneyField


class PackageItemSerializer(serializers.ModelSerializer):
    """Package item with its session usage."""

    service_name = serializers.CharField(source='service.name', read_only=True)
    remaining_sessions = serializers.IntegerField(read_only=True)
    usage_percentage = serializers.IntegerField(read_only=True)

    class Meta:
        model = PackageItem
        fields = [
            'id', 'service', 'service_name',
            'session_count', 'completed_count',
            'remaining_sessions', 'usage_percentage',
        ]
        read_only_fields = fields


class PackageSerializer(serializers.ModelSerializer):
    """Base package serializer."""

    total_price = MoneyField(source='total_price_cents', read_only=True)
    discount = MoneyField(source='discount_cents', read_only=True)
    final_price = MoneyField(source='final_price_cents', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    payment_status_display = serializers.CharField(source='get_payment_status_display', read_only=True)

    class Meta:
        model = Package
        fields = [
            'id', 'patient', 'name',
            'total_price', 'discount', 'final_price',
            'payment_status', 'payment_status_display',
            'status', 'status_display',
            'notes', 'cancelled_at', 'cancelled_by',
            'created_by', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class PackageDetailSerializer(PackageSerializer):
    """Package with its items."""

    items = PackageItemSerializer(many=True, read_only=True)

    class Meta(PackageSerializer.Meta):
        fields = PackageSerializer.Meta.fields + ['items']
        read_only_fields = fields


class PackageSummarySerializer(serializers.Serializer):
    """Session and payment totals of a package."""

    package = PackageSerializer()
    items = PackageItemSerializer(many=True)
    total_sessions = serializers.IntegerField()
    used_sessions = serializers.IntegerField()
    remaining_sessions = serializers.IntegerField()
    usage_percentage = serializers.IntegerField()
    total_paid = MoneyField(source='total_paid_cents')
    remaining_balance = MoneyField(source='remaining_balance_cents')
    payment_status = serializers.ChoiceField(choices=PaymentStatus.choices)


class PaymentSerializer(serializers.ModelSerializer):
    """Payment ledger entry."""

    amount = MoneyField(source='amount_cents', read_only=True)
    method_display = serializers.CharField(source='get_method_display', read_only=True)

    class Meta:
        model = Payment
        fields = [
            'id', 'package', 'amount', 'method', 'method_display',
            'status', 'paid_sessions_count', 'notes',
            'created_by', 'created_at',
        ]
        read_only_fields = fields


class PurchaseItemSerializer(serializers.Serializer):
    """One purchased service."""

    service_id = serializers.UUIDField()
    instances = serializers.IntegerField(min_value=1)
    unit_price = MoneyField(required=False)


class InitialPaymentSerializer(serializers.Serializer):
    """Payment taken at purchase time."""

    amount = MoneyField()
    method = serializers.ChoiceField(choices=PaymentMethod.choices, default=PaymentMethod.CASH)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class PackagePurchaseSerializer(serializers.Serializer):
    """Serializer for purchasing packages."""

    patient_id = serializers.UUIDField()
    items = PurchaseItemSerializer(many=True, allow_empty=False)
    discount = MoneyField(required=False, default=0)
    initial_payment = InitialPaymentSerializer(required=False)
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def to_service_kwargs(self) -> dict:
        """Arguments of ``LedgerService.purchase_package``."""
        data = self.validated_data
        items = []
        for item in data['items']:
            entry = {'service_id': item['service_id'], 'instances': item['instances']}
            if 'unit_price' in item:
                entry['unit_price_cents'] = item['unit_price']
            items.append(entry)

        initial_payment = None
        if data.get('initial_payment'):
            payment = data['initial_payment']
            initial_payment = {
                'amount_cents': payment['amount'],
                'method': payment['method'],
                'notes': payment.get('notes', ''),
            }

        return {
            'patient_id': data['patient_id'],
            'items': items,
            'discount_cents': data.get('discount', 0),
            'initial_payment': initial_payment,
            'notes': data.get('notes', ''),
        }


class PaymentCreateSerializer(serializers.Serializer):
    """Serializer for recording a payment."""

    amount = MoneyField()
    method = serializers.ChoiceField(choices=PaymentMethod.choices)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    paid_sessions_count = serializers.IntegerField(min_value=1, required=False)


class PackageStatisticsSerializer(serializers.Serializer):
    """Package counts and revenue totals."""

    total_packages = serializers.IntegerField()
    by_status = serializers.DictField(child=serializers.IntegerField())
    by_payment_status = serializers.DictField(child=serializers.IntegerField())
    total_value = MoneyField(source='total_value_cents')
    total_revenue = MoneyField(source='total_revenue_cents')
    outstanding = MoneyField(source='outstanding_cents')
