"""
Inventory Models - Core data entities for kitchen stock tracking.

Models:
    - Product: Perishable item held in stock, with its stock unit and price
    - StockMovement: Append-only audit record of every stock change
"""
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from core.units import Unit


class Product(models.Model):
    """
    Product held in the kitchen stock.

    stock_quantity is expressed in `unit` and is only changed through the
    functions in inventory.services, each of which writes a StockMovement.
    """
    name = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Product name"
    )
    stock_quantity = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        default=Decimal('0'),
        validators=[MinValueValidator(Decimal('0'))],
        help_text="Current stock, in the product's stock unit"
    )
    unit = models.CharField(
        max_length=10,
        choices=Unit.choices,
        help_text="Stock unit"
    )
    unit_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))],
        help_text="Price per stock unit (must be positive)"
    )
    alert_threshold = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        default=Decimal('0'),
        validators=[MinValueValidator(Decimal('0'))],
        help_text="Stock below this quantity is considered low"
    )
    expiry_date = models.DateField(null=True, blank=True)
    is_deleted = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Soft-deleted products are hidden but keep their movements"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Product'
        verbose_name_plural = 'Products'
        ordering = ['name']
        indexes = [
            models.Index(fields=['name', 'is_deleted'], name='product_name_deleted_idx'),
            models.Index(fields=['expiry_date'], name='product_expiry_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(stock_quantity__gte=0),
                name='product_stock_non_negative'
            )
        ]

    def __str__(self):
        return f"{self.name} ({self.stock_quantity} {self.unit})"

    @property
    def is_under_alert_threshold(self) -> bool:
        """Strictly below the threshold; stock equal to it is not an alert."""
        return self.stock_quantity < self.alert_threshold

    @property
    def is_expired(self) -> bool:
        return self.expiry_date is not None and self.expiry_date < timezone.localdate()

    def has_sufficient_stock(self, quantity) -> bool:
        return self.stock_quantity >= quantity


class StockMovement(models.Model):
    """
    Immutable ledger entry for one stock change.

    quantity is signed (negative for exits) and expressed in `unit`, the unit
    the caller used. quantity_after is always in the product's stock unit.
    menu_id is a plain identifier so the ledger does not depend on the menus app.
    """

    class Kind(models.TextChoices):
        ENTRY = 'ENTRY', 'Stock entry'
        EXIT = 'EXIT', 'Stock exit'
        INVENTORY_ADJUSTMENT = 'INVENTORY_ADJUSTMENT', 'Inventory adjustment'
        MANUAL_CORRECTION = 'MANUAL_CORRECTION', 'Manual correction'
        EXPIRY = 'EXPIRY', 'Expired product'

    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name='movements',
        help_text="Product whose stock changed"
    )
    kind = models.CharField(
        max_length=25,
        choices=Kind.choices,
        db_index=True
    )
    quantity = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        help_text="Signed quantity in the requested unit"
    )
    unit = models.CharField(max_length=10, choices=Unit.choices)
    quantity_after = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        help_text="Stock after the movement, in the product's stock unit"
    )
    reason = models.CharField(max_length=500)
    menu_id = models.PositiveBigIntegerField(null=True, blank=True, db_index=True)
    performed_by = models.CharField(max_length=150, blank=True, default='')
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        verbose_name = 'Stock Movement'
        verbose_name_plural = 'Stock Movements'
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['product', 'created_at'], name='movement_product_created_idx'),
        ]

    def __str__(self):
        return f"{self.kind} {self.quantity} {self.unit} - {self.product.name}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("Stock movements are immutable")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("Stock movements are immutable and cannot be deleted")
