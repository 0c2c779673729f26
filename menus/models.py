"""
Menu Models - Menu and MenuIngredient entities with status tracking.

Menu Status Flow:
    DRAFT -> CONFIRMED (stock verified and decremented)
    CONFIRMED -> PREPARED
    DRAFT -> CANCELLED (no stock touched)
    CONFIRMED -> CANCELLED (stock restored)
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from django.core.validators import MinValueValidator
from django.db import models

from core.units import Unit
from inventory.models import Product

MONEY_PLACES = Decimal('0.01')


class Menu(models.Model):
    """
    Menu prepared for a service date.

    Status:
        - DRAFT: Being composed; ingredients and base fields are editable
        - CONFIRMED: Stock decremented for every ingredient, no longer editable
        - PREPARED: Cooked and served
        - CANCELLED: Terminal; stock restored if the menu had been confirmed
    """

    class Status(models.TextChoices):
        DRAFT = 'DRAFT', 'Draft'
        CONFIRMED = 'CONFIRMED', 'Confirmed'
        PREPARED = 'PREPARED', 'Prepared'
        CANCELLED = 'CANCELLED', 'Cancelled'

    name = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Menu name"
    )
    description = models.CharField(max_length=500, blank=True, default='')
    service_date = models.DateField(db_index=True)
    portions = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
        help_text="Number of portions to prepare"
    )
    sale_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('0'))],
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.DRAFT,
        db_index=True,
        help_text="Current menu status"
    )
    total_cost = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Sum of the ingredient costs"
    )
    margin_percentage = models.DecimalField(
        max_digits=7,
        decimal_places=2,
        null=True,
        blank=True,
    )
    created_by = models.CharField(max_length=150, blank=True, default='')
    last_modified_by = models.CharField(max_length=150, blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Menu'
        verbose_name_plural = 'Menus'
        ordering = ['-service_date', 'name']
        indexes = [
            models.Index(fields=['status', 'service_date'], name='menu_status_date_idx'),
            models.Index(fields=['created_by'], name='menu_created_by_idx'),
        ]

    def __str__(self):
        return f"Menu #{self.id} - {self.name} ({self.status})"

    @property
    def is_editable(self) -> bool:
        return self.status == self.Status.DRAFT

    @property
    def is_confirmed(self) -> bool:
        return self.status == self.Status.CONFIRMED

    @property
    def is_cancelled(self) -> bool:
        return self.status == self.Status.CANCELLED

    @property
    def ingredient_count(self) -> int:
        return self.ingredients.count()

    def compute_margin(self) -> Optional[Decimal]:
        """Margin as a percentage of the sale price, or None without a positive sale price."""
        if self.sale_price is None or self.sale_price <= 0:
            return None
        margin = self.sale_price - self.total_cost
        ratio = (margin / self.sale_price).quantize(Decimal('0.0001'), rounding=ROUND_HALF_UP)
        return (ratio * 100).quantize(MONEY_PLACES)

    def recalculate_costs(self) -> None:
        """Refresh total_cost and margin_percentage from the current ingredients."""
        total = self.ingredients.aggregate(total=models.Sum('cost'))['total']
        self.total_cost = total or Decimal('0.00')
        self.margin_percentage = self.compute_margin()


class MenuIngredient(models.Model):
    """
    Quantity of a product required by a menu.

    quantity is stored in the unit the caller used; converted_quantity is the
    same amount in the product's stock unit and is what the ledger consumes.
    cost is cached as converted_quantity * product.unit_price.
    """
    menu = models.ForeignKey(
        Menu,
        on_delete=models.CASCADE,
        related_name='ingredients',
        help_text="Owning menu"
    )
    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,  # Products referenced by menus are soft-deleted only
        related_name='menu_ingredients',
        help_text="Product consumed"
    )
    quantity = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        validators=[MinValueValidator(Decimal('0.001'))],
        help_text="Required quantity, in `unit`"
    )
    unit = models.CharField(max_length=10, choices=Unit.choices)
    converted_quantity = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        help_text="Required quantity in the product's stock unit"
    )
    cost = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00')
    )
    note = models.CharField(max_length=255, blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Menu Ingredient'
        verbose_name_plural = 'Menu Ingredients'
        ordering = ['id']
        constraints = [
            models.UniqueConstraint(
                fields=['menu', 'product'],
                name='unique_menu_product_ingredient'
            )
        ]

    def __str__(self):
        return f"{self.quantity} {self.unit} of {self.product.name}"

    @property
    def needs_conversion(self) -> bool:
        return self.unit != self.product.unit

    @property
    def missing_quantity(self) -> Decimal:
        """Quantity (stock unit) the product lacks to cover this ingredient; zero when covered."""
        shortfall = self.converted_quantity - self.product.stock_quantity
        return shortfall if shortfall > 0 else Decimal('0')

    def compute_cost(self) -> Decimal:
        return (self.converted_quantity * self.product.unit_price).quantize(
            MONEY_PLACES, rounding=ROUND_HALF_UP
        )
