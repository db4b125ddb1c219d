# apps/api/serializers/fields.py
"""
Serializer Fields

Amounts travel as decimal strings ("262.50") and are stored as integer
minor units.
"""

from rest_framework import serializers

from shared.common.utils import from_minor_units, to_minor_units


class MoneyField(serializers.DecimalField):
    """Decimal amount on the wire, integer cents in ``validated_data``."""

    default_error_messages = {
        'negative': 'Amount must not be negative.',
    }

    def __init__(self, **kwargs):
        kwargs.setdefault('max_digits', 12)
        kwargs.setdefault('decimal_places', 2)
        super().__init__(**kwargs)

    def to_internal_value(self, data) -> int:
        value = super().to_internal_value(data)
        if value < 0:
            self.fail('negative')
        return to_minor_units(value)

    def to_representation(self, value):
        return super().to_representation(from_minor_units(value))
