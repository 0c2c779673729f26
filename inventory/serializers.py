"""
Serializers for inventory models.
Provides request validation and JSON conversion for API endpoints.

Request serializers only check shape; business rules stay in inventory.services.
"""
from rest_framework import serializers

from core.units import Unit
from .models import Product, StockMovement


class ProductSerializer(serializers.ModelSerializer):
    """Read serializer for Product with its alert flags."""
    is_under_alert_threshold = serializers.BooleanField(read_only=True)
    is_expired = serializers.BooleanField(read_only=True)

    class Meta:
        model = Product
        fields = [
            'id', 'name', 'stock_quantity', 'unit', 'unit_price',
            'alert_threshold', 'expiry_date',
            'is_under_alert_threshold', 'is_expired',
            'created_at', 'updated_at'
        ]
        read_only_fields = fields


class ProductMinimalSerializer(serializers.ModelSerializer):
    """Minimal serializer for nested product representation."""
    class Meta:
        model = Product
        fields = ['id', 'name', 'unit', 'unit_price']


class ProductCreateSerializer(serializers.Serializer):
    """
    Serializer for registering a product via POST /products/

    Request format:
    {
        "name": "Tomatoes",
        "unit": "kg",
        "unit_price": "3.50",
        "stock_quantity": "10",
        "alert_threshold": "2",
        "expiry_date": "2026-10-30"
    }
    """
    name = serializers.CharField(max_length=100)
    unit = serializers.ChoiceField(choices=Unit.choices)
    unit_price = serializers.DecimalField(max_digits=10, decimal_places=2)
    stock_quantity = serializers.DecimalField(max_digits=12, decimal_places=3, required=False, default=0)
    alert_threshold = serializers.DecimalField(max_digits=12, decimal_places=3, required=False, default=0)
    expiry_date = serializers.DateField(required=False, allow_null=True, default=None)


class ProductUpdateSerializer(serializers.Serializer):
    """Partial update of a product's descriptive fields. Stock cannot be set here."""
    name = serializers.CharField(max_length=100, required=False)
    unit_price = serializers.DecimalField(max_digits=10, decimal_places=2, required=False)
    alert_threshold = serializers.DecimalField(max_digits=12, decimal_places=3, required=False)
    expiry_date = serializers.DateField(required=False, allow_null=True)


class StockEntrySerializer(serializers.Serializer):
    """Quantity in the product's stock unit with the reason for the movement."""
    quantity = serializers.DecimalField(max_digits=12, decimal_places=3)
    reason = serializers.CharField(max_length=500)


class StockExitSerializer(StockEntrySerializer):
    """
    Stock exit request. When `unit` is given and differs from the stock unit
    the quantity is converted before it is checked and removed.
    """
    unit = serializers.ChoiceField(choices=Unit.choices, required=False)
    menu_id = serializers.IntegerField(min_value=1, required=False)


class StockAdjustmentSerializer(serializers.Serializer):
    counted_quantity = serializers.DecimalField(max_digits=12, decimal_places=3)
    reason = serializers.CharField(max_length=500)
    kind = serializers.ChoiceField(
        choices=[
            StockMovement.Kind.INVENTORY_ADJUSTMENT,
            StockMovement.Kind.MANUAL_CORRECTION,
        ],
        required=False,
        default=StockMovement.Kind.INVENTORY_ADJUSTMENT
    )


class StockLevelSerializer(serializers.Serializer):
    """Response for a stock exit."""
    product_id = serializers.IntegerField()
    new_quantity = serializers.DecimalField(max_digits=12, decimal_places=3)
    is_under_threshold = serializers.BooleanField()


class StockMovementSerializer(serializers.ModelSerializer):
    """Read-only serializer for ledger entries."""
    product_name = serializers.CharField(source='product.name', read_only=True)

    class Meta:
        model = StockMovement
        fields = [
            'id', 'product', 'product_name', 'kind', 'quantity', 'unit',
            'quantity_after', 'reason', 'menu_id', 'performed_by', 'created_at'
        ]
        read_only_fields = fields


class UnitConversionSerializer(serializers.Serializer):
    """Query parameters for GET /units/convert/"""
    quantity = serializers.DecimalField(max_digits=12, decimal_places=3)
    from_unit = serializers.ChoiceField(choices=Unit.choices)
    to_unit = serializers.ChoiceField(choices=Unit.choices)
