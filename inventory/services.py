"""
Stock Ledger Service Layer - every stock change goes through here.

Each mutating function:
1. Validates its inputs before touching the database
2. Locks the product row with select_for_update() inside transaction.atomic()
3. Applies the change and appends exactly one StockMovement
4. On any failure, mutates nothing and writes no movement
"""
import logging
from datetime import timedelta
from decimal import Decimal
from typing import List, NamedTuple, Optional

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from core.exceptions import (
    InputValidationError,
    InsufficientStockError,
    InvalidStateTransitionError,
    NotFoundError,
)
from core.units import convert, ensure_storable, parse_quantity, parse_unit
from .models import Product, StockMovement

logger = logging.getLogger(__name__)

INITIAL_STOCK_REASON = "Initial stock on creation"
UPDATABLE_PRODUCT_FIELDS = ('name', 'unit_price', 'alert_threshold', 'expiry_date')


class StockLevel(NamedTuple):
    """Result of a stock exit: the new quantity and whether it is now below the alert threshold."""
    new_quantity: Decimal
    is_under_threshold: bool


def _validate_movement_request(product_id, quantity, reason) -> Decimal:
    """
    Validate the inputs shared by all ledger mutations.

    Raises:
        InputValidationError: If product_id is missing, quantity is missing,
            not strictly positive or finer than 3 decimal places, or reason is blank
    """
    if product_id is None:
        raise InputValidationError("Product id is required")
    quantity = parse_quantity(quantity)
    if quantity <= 0:
        raise InputValidationError("Quantity must be strictly positive")
    ensure_storable(quantity)
    if reason is None or not str(reason).strip():
        raise InputValidationError("Reason is required")
    return quantity


def _lock_product(product_id) -> Product:
    """Load a non-deleted product and lock its row for the current transaction."""
    try:
        return Product.objects.select_for_update().get(id=product_id, is_deleted=False)
    except Product.DoesNotExist:
        raise NotFoundError('Product', product_id)


def get_product(product_id) -> Product:
    try:
        return Product.objects.get(id=product_id, is_deleted=False)
    except Product.DoesNotExist:
        raise NotFoundError('Product', product_id)


def _apply_exit(
    product: Product,
    stock_quantity: Decimal,
    movement_quantity: Decimal,
    movement_unit: str,
    reason: str,
    kind: str,
    menu_id: Optional[int],
    actor: Optional[str],
) -> StockLevel:
    """
    Remove stock_quantity (in the product's unit) from a locked product.

    The movement records movement_quantity/movement_unit, which may differ
    from the stock unit when the caller asked in another unit.
    """
    if not product.has_sufficient_stock(stock_quantity):
        logger.warning(
            f"Insufficient stock for '{product.name}': "
            f"available {product.stock_quantity} {product.unit}, requested {stock_quantity} {product.unit}"
        )
        raise InsufficientStockError(
            product.name, product.stock_quantity, stock_quantity, product.unit
        )

    product.stock_quantity -= stock_quantity
    product.save(update_fields=['stock_quantity', 'updated_at'])

    StockMovement.objects.create(
        product=product,
        kind=kind,
        quantity=-movement_quantity,
        unit=movement_unit,
        quantity_after=product.stock_quantity,
        reason=reason,
        menu_id=menu_id,
        performed_by=actor or '',
    )

    is_under_threshold = product.is_under_alert_threshold
    if is_under_threshold:
        logger.warning(
            f"ALERT: '{product.name}' is below its alert threshold. "
            f"Stock: {product.stock_quantity} {product.unit}, threshold: {product.alert_threshold} {product.unit}"
        )

    logger.info(
        f"Stock decremented for '{product.name}': -{movement_quantity} {movement_unit}, "
        f"new stock {product.stock_quantity} {product.unit}"
    )
    return StockLevel(product.stock_quantity, is_under_threshold)


def decrement_stock(
    product_id: int,
    quantity,
    reason: str,
    menu_id: Optional[int] = None,
    actor: Optional[str] = None,
) -> StockLevel:
    """
    Remove stock from a product and record an EXIT movement.

    Args:
        product_id: Product to decrement
        quantity: Quantity in the product's stock unit (strictly positive)
        reason: Why the stock leaves
        menu_id: Menu consuming the stock, if any
        actor: Identifier of the acting user, stamped on the movement

    Returns:
        StockLevel(new_quantity, is_under_threshold)

    Raises:
        InputValidationError: If the inputs are invalid
        NotFoundError: If the product does not exist
        InsufficientStockError: If quantity exceeds the available stock
    """
    quantity = _validate_movement_request(product_id, quantity, reason)

    with transaction.atomic():
        product = _lock_product(product_id)
        return _apply_exit(
            product, quantity, quantity, product.unit, reason,
            StockMovement.Kind.EXIT, menu_id, actor,
        )


def decrement_stock_with_conversion(
    product_id: int,
    quantity,
    request_unit,
    reason: str,
    menu_id: Optional[int] = None,
    actor: Optional[str] = None,
) -> StockLevel:
    """
    Remove stock expressed in another unit than the product's stock unit.

    The availability check and the stock update use the converted quantity;
    the movement keeps the quantity and unit exactly as requested so the
    audit trail shows what the caller asked for.

    Raises:
        IncompatibleUnitsError: If request_unit cannot be converted to the stock unit
        InsufficientStockError: If the converted quantity exceeds the available stock
    """
    quantity = _validate_movement_request(product_id, quantity, reason)
    request_unit = parse_unit(request_unit)

    with transaction.atomic():
        product = _lock_product(product_id)
        converted = convert(quantity, request_unit, product.unit)
        logger.info(
            f"Converted {quantity} {request_unit.symbol} -> {converted} {product.unit} for '{product.name}'"
        )
        return _apply_exit(
            product, converted, quantity, request_unit.value, reason,
            StockMovement.Kind.EXIT, menu_id, actor,
        )


def increment_stock(
    product_id: int,
    quantity,
    reason: str,
    menu_id: Optional[int] = None,
    actor: Optional[str] = None,
) -> Decimal:
    """
    Add stock to a product and record an ENTRY movement.

    There is no upper bound, so this only fails on invalid input or an
    unknown product.

    Returns:
        The new stock quantity
    """
    quantity = _validate_movement_request(product_id, quantity, reason)

    with transaction.atomic():
        product = _lock_product(product_id)
        product.stock_quantity += quantity
        product.save(update_fields=['stock_quantity', 'updated_at'])

        StockMovement.objects.create(
            product=product,
            kind=StockMovement.Kind.ENTRY,
            quantity=quantity,
            unit=product.unit,
            quantity_after=product.stock_quantity,
            reason=reason,
            menu_id=menu_id,
            performed_by=actor or '',
        )

    logger.info(
        f"Stock incremented for '{product.name}': +{quantity} {product.unit}, "
        f"new stock {product.stock_quantity} {product.unit}"
    )
    return product.stock_quantity


def record_expiry(product_id: int, quantity, reason: str, actor: Optional[str] = None) -> StockLevel:
    """Write off expired stock. Same availability rule as an exit, recorded as EXPIRY."""
    quantity = _validate_movement_request(product_id, quantity, reason)

    with transaction.atomic():
        product = _lock_product(product_id)
        return _apply_exit(
            product, quantity, quantity, product.unit, reason,
            StockMovement.Kind.EXPIRY, None, actor,
        )


def adjust_stock(
    product_id: int,
    counted_quantity,
    reason: str,
    kind: str = StockMovement.Kind.INVENTORY_ADJUSTMENT,
    actor: Optional[str] = None,
) -> Decimal:
    """
    Set a product's stock to a physically counted quantity.

    The movement records the signed difference between the counted and the
    recorded quantity. A count equal to the recorded stock writes nothing.

    Args:
        kind: INVENTORY_ADJUSTMENT (stock take) or MANUAL_CORRECTION

    Returns:
        The new stock quantity
    """
    if product_id is None:
        raise InputValidationError("Product id is required")
    counted_quantity = parse_quantity(counted_quantity, 'counted quantity')
    if counted_quantity < 0:
        raise InputValidationError("Counted quantity must be zero or positive")
    ensure_storable(counted_quantity, 'counted quantity')
    if reason is None or not str(reason).strip():
        raise InputValidationError("Reason is required")
    if kind not in (StockMovement.Kind.INVENTORY_ADJUSTMENT, StockMovement.Kind.MANUAL_CORRECTION):
        raise InputValidationError(f"Invalid adjustment kind: {kind}")

    with transaction.atomic():
        product = _lock_product(product_id)
        difference = counted_quantity - product.stock_quantity
        if difference == 0:
            logger.info(f"Stock count for '{product.name}' matches recorded stock, nothing to adjust")
            return product.stock_quantity

        product.stock_quantity = counted_quantity
        product.save(update_fields=['stock_quantity', 'updated_at'])

        StockMovement.objects.create(
            product=product,
            kind=kind,
            quantity=difference,
            unit=product.unit,
            quantity_after=product.stock_quantity,
            reason=reason,
            performed_by=actor or '',
        )

    logger.info(
        f"Stock adjusted for '{product.name}' ({kind}): {difference:+} {product.unit}, "
        f"new stock {product.stock_quantity} {product.unit}"
    )
    return product.stock_quantity


def record_initial_stock(product: Product, actor: Optional[str] = None) -> StockMovement:
    """
    Record the ENTRY movement for a newly registered product.

    The product already carries its starting quantity, so the stock field is
    left untouched to avoid counting it twice.
    """
    movement = StockMovement.objects.create(
        product=product,
        kind=StockMovement.Kind.ENTRY,
        quantity=product.stock_quantity,
        unit=product.unit,
        quantity_after=product.stock_quantity,
        reason=INITIAL_STOCK_REASON,
        performed_by=actor or '',
    )
    logger.info(
        f"Initial stock movement recorded for '{product.name}': "
        f"+{product.stock_quantity} {product.unit}"
    )
    return movement


# =============================================================================
# Product registry
# =============================================================================

def register_product(
    name: str,
    unit,
    unit_price,
    stock_quantity=Decimal('0'),
    alert_threshold=Decimal('0'),
    expiry_date=None,
    actor: Optional[str] = None,
) -> Product:
    """
    Create a product and, when it starts with stock, its initial ENTRY movement.

    Raises:
        InputValidationError: If the name is blank, the price is not positive
            or a quantity is negative
    """
    if name is None or not str(name).strip():
        raise InputValidationError("Product name is required")
    unit = parse_unit(unit)
    unit_price = parse_quantity(unit_price, 'unit price')
    stock_quantity = parse_quantity(stock_quantity, 'stock quantity')
    alert_threshold = parse_quantity(alert_threshold, 'alert threshold')
    if unit_price <= 0:
        raise InputValidationError("Unit price must be strictly positive")
    if stock_quantity < 0:
        raise InputValidationError("Stock quantity must be zero or positive")
    if alert_threshold < 0:
        raise InputValidationError("Alert threshold must be zero or positive")
    ensure_storable(stock_quantity, 'stock quantity')
    ensure_storable(alert_threshold, 'alert threshold')

    with transaction.atomic():
        product = Product.objects.create(
            name=str(name).strip(),
            unit=unit.value,
            unit_price=unit_price,
            stock_quantity=stock_quantity,
            alert_threshold=alert_threshold,
            expiry_date=expiry_date,
        )
        if stock_quantity > 0:
            record_initial_stock(product, actor=actor)

    logger.info(f"Registered product #{product.id} '{product.name}'")
    return product


def update_product(product_id: int, actor: Optional[str] = None, **fields) -> Product:
    """
    Update a product's descriptive fields. Stock is never set here.

    A unit price change refreshes the cached cost of every draft menu
    ingredient that uses the product.
    """
    unknown = set(fields) - set(UPDATABLE_PRODUCT_FIELDS)
    if unknown:
        raise InputValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

    with transaction.atomic():
        product = _lock_product(product_id)
        price_changed = False

        name = fields.get('name')
        if name is not None and str(name).strip():
            product.name = str(name).strip()
        if fields.get('unit_price') is not None:
            unit_price = parse_quantity(fields['unit_price'], 'unit price')
            if unit_price <= 0:
                raise InputValidationError("Unit price must be strictly positive")
            price_changed = unit_price != product.unit_price
            product.unit_price = unit_price
        if fields.get('alert_threshold') is not None:
            alert_threshold = parse_quantity(fields['alert_threshold'], 'alert threshold')
            if alert_threshold < 0:
                raise InputValidationError("Alert threshold must be zero or positive")
            product.alert_threshold = alert_threshold
        if 'expiry_date' in fields:
            product.expiry_date = fields['expiry_date']

        product.save()

        if price_changed:
            from menus.ingredients import refresh_ingredient_costs
            refresh_ingredient_costs(product)

    logger.info(f"Product #{product.id} updated by {actor or 'unknown'}")
    return product


def delete_product(product_id: int, actor: Optional[str] = None) -> None:
    """
    Soft-delete a product. Refused while a non-cancelled menu still uses it.

    Raises:
        InvalidStateTransitionError: If the product is used by an active menu
    """
    from menus.ingredients import product_can_be_deleted

    with transaction.atomic():
        product = _lock_product(product_id)
        if not product_can_be_deleted(product.id):
            raise InvalidStateTransitionError(
                f"Product '{product.name}' is used by an active menu and cannot be deleted",
                action='delete',
            )
        product.is_deleted = True
        product.save(update_fields=['is_deleted', 'updated_at'])

    logger.info(f"Product #{product_id} soft-deleted by {actor or 'unknown'}")


# =============================================================================
# Queries
# =============================================================================

def get_low_stock_products() -> List[Product]:
    """Products strictly below their alert threshold."""
    return list(
        Product.objects.filter(is_deleted=False, stock_quantity__lt=F('alert_threshold'))
        .order_by('name')
    )


def get_expiring_products(days: int = 7) -> List[Product]:
    """Products whose expiry date falls within the next `days` days (already expired included)."""
    if days < 0:
        raise InputValidationError("Days must be zero or positive")
    limit = timezone.localdate() + timedelta(days=days)
    return list(
        Product.objects.filter(is_deleted=False, expiry_date__isnull=False, expiry_date__lte=limit)
        .order_by('expiry_date', 'name')
    )


def search_products(name: str) -> List[Product]:
    return list(
        Product.objects.filter(is_deleted=False, name__icontains=(name or '').strip())
        .order_by('name')
    )


def get_movement_history(product_id: int) -> List[StockMovement]:
    """Movements of a product, most recent first."""
    product = get_product(product_id)
    return list(product.movements.order_by('-created_at', '-id'))
