"""
Serializers for menu models.
"""
from rest_framework import serializers

from core.units import Unit
from inventory.serializers import ProductMinimalSerializer
from .models import Menu, MenuIngredient


class MenuIngredientSerializer(serializers.ModelSerializer):
    """Serializer for MenuIngredient with product details."""
    product = ProductMinimalSerializer(read_only=True)
    missing_quantity = serializers.DecimalField(
        max_digits=12,
        decimal_places=3,
        read_only=True
    )

    class Meta:
        model = MenuIngredient
        fields = [
            'id', 'product', 'quantity', 'unit', 'converted_quantity',
            'cost', 'missing_quantity', 'note'
        ]


class MenuIngredientCreateSerializer(serializers.Serializer):
    """
    Serializer for POST /menus/{id}/ingredients/

    Request format:
    {"product_id": 1, "quantity": "300", "unit": "g", "note": "diced"}

    `unit` defaults to the product's stock unit.
    """
    product_id = serializers.IntegerField(min_value=1)
    quantity = serializers.DecimalField(max_digits=12, decimal_places=3)
    unit = serializers.ChoiceField(choices=Unit.choices, required=False)
    note = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')


class MenuSerializer(serializers.ModelSerializer):
    """
    Serializer for Menu with nested ingredients.
    Uses prefetch_related for optimized queries.
    """
    ingredients = MenuIngredientSerializer(many=True, read_only=True)
    ingredient_count = serializers.IntegerField(read_only=True)
    is_editable = serializers.BooleanField(read_only=True)

    class Meta:
        model = Menu
        fields = [
            'id', 'name', 'description', 'service_date', 'portions',
            'sale_price', 'status', 'total_cost', 'margin_percentage',
            'ingredients', 'ingredient_count', 'is_editable',
            'created_by', 'last_modified_by', 'created_at', 'updated_at'
        ]
        read_only_fields = fields


class MenuListSerializer(serializers.ModelSerializer):
    """Optimized serializer for listing menus."""
    ingredient_count = serializers.SerializerMethodField()

    class Meta:
        model = Menu
        fields = [
            'id', 'name', 'service_date', 'portions', 'status',
            'total_cost', 'sale_price', 'margin_percentage',
            'ingredient_count', 'created_at'
        ]

    def get_ingredient_count(self, obj):
        # Use prefetched ingredients count if available
        if hasattr(obj, '_prefetched_objects_cache') and 'ingredients' in obj._prefetched_objects_cache:
            return len(obj.ingredients.all())
        return obj.ingredients.count()


class MenuCreateSerializer(serializers.Serializer):
    """
    Serializer for creating menus via POST /menus/

    Request format:
    {
        "name": "Sunday lunch",
        "service_date": "2026-10-25",
        "portions": 40,
        "sale_price": "18.50",
        "description": "Roast and vegetables"
    }
    """
    name = serializers.CharField(max_length=100)
    service_date = serializers.DateField()
    portions = serializers.IntegerField(min_value=1)
    description = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')
    sale_price = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, allow_null=True, default=None)


class MenuUpdateSerializer(serializers.Serializer):
    """Partial update of a draft menu's base fields."""
    name = serializers.CharField(max_length=100, required=False)
    service_date = serializers.DateField(required=False)
    portions = serializers.IntegerField(min_value=1, required=False)
    description = serializers.CharField(max_length=500, required=False, allow_blank=True)
    sale_price = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, allow_null=True)


class MenuCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=400, required=False, allow_blank=True, default='')
