"""
Menu Ingredient Coordinator - links menus to products and drives the ledger.

Responsibilities:
- Add and remove ingredients on draft menus, normalising quantities into
  each product's stock unit and caching their cost
- Check whether the current stock covers a menu
- Decrement or restore stock for every ingredient of a menu as one unit:
  all ledger calls for a menu commit together or not at all
"""
import logging
from decimal import Decimal
from typing import List, NamedTuple, Optional

from django.db import transaction
from django.db.models import Sum

from core.exceptions import (
    InputValidationError,
    InsufficientStockError,
    InvalidStateTransitionError,
    NotFoundError,
)
from core.units import convert, ensure_storable, parse_quantity, parse_unit
from inventory.models import Product
from inventory.services import decrement_stock, get_product, increment_stock
from .models import Menu, MenuIngredient

logger = logging.getLogger(__name__)


class Shortage(NamedTuple):
    """An ingredient the current stock cannot cover, quantities in the stock unit."""
    ingredient: MenuIngredient
    available: Decimal
    required: Decimal

    @property
    def missing(self) -> Decimal:
        return self.required - self.available


def lock_menu(menu_id) -> Menu:
    """Load a menu and lock its row for the current transaction."""
    if menu_id is None:
        raise InputValidationError("Menu id is required")
    try:
        return Menu.objects.select_for_update().get(id=menu_id)
    except Menu.DoesNotExist:
        raise NotFoundError('Menu', menu_id)


def ensure_editable(menu: Menu, action: str) -> None:
    if not menu.is_editable:
        logger.warning(f"Refused to {action} on menu #{menu.id}: status is {menu.status}")
        raise InvalidStateTransitionError(
            f"Menu #{menu.id} is {menu.status} and can no longer be modified",
            current_status=menu.status,
            action=action,
        )


def _save_costs(menu: Menu, actor: Optional[str]) -> None:
    menu.recalculate_costs()
    if actor:
        menu.last_modified_by = actor
    menu.save(update_fields=['total_cost', 'margin_percentage', 'last_modified_by', 'updated_at'])
    logger.debug(f"Menu #{menu.id} total cost updated: {menu.total_cost}")


def add_ingredient(
    menu_id: int,
    product_id: int,
    quantity,
    unit=None,
    note: str = '',
    actor: Optional[str] = None,
) -> MenuIngredient:
    """
    Add a product to a draft menu.

    The quantity is converted into the product's stock unit and checked
    against the current stock. The check does not reserve anything: stock
    only moves when the menu is confirmed.

    Args:
        menu_id: Draft menu to add to
        product_id: Product required by the menu
        quantity: Required quantity (strictly positive), expressed in `unit`
        unit: Unit of `quantity`; defaults to the product's stock unit
        note: Free-text preparation note

    Returns:
        The created MenuIngredient

    Raises:
        NotFoundError: If the menu or the product does not exist
        InvalidStateTransitionError: If the menu is not a draft or already uses the product
        IncompatibleUnitsError: If `unit` cannot be converted to the stock unit
        InsufficientStockError: If the converted quantity exceeds the current stock
    """
    quantity = parse_quantity(quantity)
    if quantity <= 0:
        raise InputValidationError("Quantity must be strictly positive")
    ensure_storable(quantity)

    with transaction.atomic():
        menu = lock_menu(menu_id)
        ensure_editable(menu, 'add an ingredient')

        product = get_product(product_id)
        if menu.ingredients.filter(product_id=product.id).exists():
            raise InvalidStateTransitionError(
                f"'{product.name}' is already an ingredient of menu #{menu.id}",
                current_status=menu.status,
                action='add an ingredient',
            )

        unit = parse_unit(unit) if unit is not None else parse_unit(product.unit)
        converted = convert(quantity, unit, product.unit)
        if converted <= 0:
            raise InputValidationError(
                f"{quantity} {unit.symbol} is less than 0.001 {product.unit} of '{product.name}'"
            )

        if not product.has_sufficient_stock(converted):
            raise InsufficientStockError(product.name, product.stock_quantity, converted, product.unit)

        ingredient = MenuIngredient(
            menu=menu,
            product=product,
            quantity=quantity,
            unit=unit.value,
            converted_quantity=converted,
            note=note or '',
        )
        ingredient.cost = ingredient.compute_cost()
        ingredient.save()

        _save_costs(menu, actor)

    logger.info(
        f"Ingredient added to menu #{menu.id}: {quantity} {unit.symbol} of '{product.name}' "
        f"({converted} {product.unit}), cost {ingredient.cost}"
    )
    return ingredient


def remove_ingredient(menu_id: int, product_id: int, actor: Optional[str] = None) -> None:
    """
    Remove a product from a draft menu and refresh the menu's cost.

    Raises:
        NotFoundError: If the menu does not exist or does not use the product
        InvalidStateTransitionError: If the menu is not a draft
    """
    with transaction.atomic():
        menu = lock_menu(menu_id)
        ensure_editable(menu, 'remove an ingredient')

        ingredient = menu.ingredients.filter(product_id=product_id).first()
        if ingredient is None:
            raise NotFoundError(
                'Ingredient', product_id,
                message=f"Product {product_id} is not an ingredient of menu #{menu.id}",
            )
        ingredient.delete()

        _save_costs(menu, actor)

    logger.info(f"Ingredient removed from menu #{menu.id}: product {product_id}")


def _ingredients_with_products(menu: Menu) -> List[MenuIngredient]:
    # Fresh rows every time: stock must never be read from a cached instance
    return list(menu.ingredients.select_related('product').order_by('id'))


def find_shortages(menu: Menu) -> List[Shortage]:
    """Ingredients whose product stock cannot cover the required quantity."""
    shortages = []
    for ingredient in _ingredients_with_products(menu):
        product = ingredient.product
        if not product.has_sufficient_stock(ingredient.converted_quantity):
            logger.warning(
                f"Insufficient stock for '{product.name}' on menu #{menu.id}: "
                f"available {product.stock_quantity}, required {ingredient.converted_quantity} {product.unit}"
            )
            shortages.append(Shortage(ingredient, product.stock_quantity, ingredient.converted_quantity))
    return shortages


def verify_stock_sufficiency(menu: Menu) -> bool:
    """True when every ingredient of the menu is covered by current stock. Read-only."""
    logger.debug(f"Verifying stock for menu #{menu.id}")
    return not find_shortages(menu)


def _lock_menu_products(ingredients: List[MenuIngredient]) -> None:
    # Lock in ascending id order so concurrent confirmations cannot deadlock
    product_ids = sorted({ingredient.product_id for ingredient in ingredients})
    list(Product.objects.select_for_update().filter(id__in=product_ids).order_by('id'))


def decrement_for_menu(menu: Menu, actor: Optional[str] = None) -> None:
    """
    Consume the stock of every ingredient of a menu, all or nothing.

    Ingredients are processed in list order. The first failure propagates
    immediately and the surrounding atomic block rolls back every decrement
    already applied for this menu.
    """
    logger.info(f"Decrementing stock for menu #{menu.id}")
    reason = f"Used by menu: {menu.name}"

    with transaction.atomic():
        ingredients = _ingredients_with_products(menu)
        _lock_menu_products(ingredients)
        for ingredient in ingredients:
            decrement_stock(
                ingredient.product_id,
                ingredient.converted_quantity,
                reason,
                menu_id=menu.id,
                actor=actor,
            )


def restore_for_menu(menu: Menu, reason: str, actor: Optional[str] = None) -> None:
    """Give back the stock of every ingredient of a cancelled menu, all or nothing."""
    logger.info(f"Restoring stock for cancelled menu #{menu.id}")
    movement_reason = f"Menu cancelled: {reason}"

    with transaction.atomic():
        ingredients = _ingredients_with_products(menu)
        _lock_menu_products(ingredients)
        for ingredient in ingredients:
            increment_stock(
                ingredient.product_id,
                ingredient.converted_quantity,
                movement_reason,
                menu_id=menu.id,
                actor=actor,
            )


def refresh_ingredient_costs(product: Product) -> int:
    """
    Recompute cached costs after a product's unit price changed.

    Only draft menus are refreshed; confirmed and later menus keep the cost
    they had when their stock was consumed.

    Returns:
        Number of ingredients updated
    """
    ingredients = list(
        MenuIngredient.objects.select_related('menu')
        .filter(product=product, menu__status=Menu.Status.DRAFT)
    )
    for ingredient in ingredients:
        ingredient.product = product
        ingredient.cost = ingredient.compute_cost()
        ingredient.save(update_fields=['cost'])
    for menu in {ingredient.menu_id: ingredient.menu for ingredient in ingredients}.values():
        menu.recalculate_costs()
        menu.save(update_fields=['total_cost', 'margin_percentage', 'updated_at'])

    if ingredients:
        logger.info(f"Refreshed {len(ingredients)} ingredient cost(s) for '{product.name}'")
    return len(ingredients)


def get_product_usage(product_id: int) -> Decimal:
    """Total quantity (stock unit) of a product required by non-cancelled menus."""
    total = (
        MenuIngredient.objects.filter(product_id=product_id)
        .exclude(menu__status=Menu.Status.CANCELLED)
        .aggregate(total=Sum('converted_quantity'))['total']
    )
    return total or Decimal('0')


def product_can_be_deleted(product_id: int) -> bool:
    """A product can be deleted once no non-cancelled menu uses it."""
    return not (
        MenuIngredient.objects.filter(product_id=product_id)
        .exclude(menu__status=Menu.Status.CANCELLED)
        .exists()
    )
