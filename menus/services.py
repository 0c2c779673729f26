"""
Menu Lifecycle Service Layer - status transitions coordinated with stock.

Implements fail-fast transitions:
1. Lock the menu row with select_for_update()
2. Reject transitions the current status does not allow
3. Run every stock operation the transition needs (all or nothing)
4. Only then write the new status

Any failure leaves both the status and the stock exactly as they were.
"""
import logging
from datetime import date
from typing import List, Optional

from django.db import transaction

from core.exceptions import (
    InputValidationError,
    InsufficientStockError,
    InvalidStateTransitionError,
    NotFoundError,
)
from core.units import parse_quantity
from .ingredients import (
    decrement_for_menu,
    ensure_editable,
    find_shortages,
    lock_menu,
    restore_for_menu,
)
from .models import Menu

logger = logging.getLogger(__name__)

DEFAULT_CANCEL_REASON = "Manual cancellation"
UPDATABLE_MENU_FIELDS = ('name', 'description', 'service_date', 'portions', 'sale_price')


def _validate_portions(portions) -> int:
    if portions is None:
        raise InputValidationError("Portions are required")
    try:
        portions = int(portions)
    except (TypeError, ValueError):
        raise InputValidationError(f"Invalid portions: {portions!r}")
    if portions < 1:
        raise InputValidationError("Portions must be at least 1")
    return portions


def _validate_sale_price(sale_price):
    if sale_price is None:
        return None
    sale_price = parse_quantity(sale_price, 'sale price')
    if sale_price < 0:
        raise InputValidationError("Sale price must be zero or positive")
    return sale_price


def _stamp(menu: Menu, status: str, actor: Optional[str]) -> Menu:
    menu.status = status
    if actor:
        menu.last_modified_by = actor
    menu.save(update_fields=['status', 'last_modified_by', 'updated_at'])
    return menu


def create_menu(
    name: str,
    service_date: date,
    portions: int,
    description: str = '',
    sale_price=None,
    actor: Optional[str] = None,
) -> Menu:
    """
    Create a menu in DRAFT status.

    Raises:
        InputValidationError: If the name is blank, the service date is
            missing, portions are below 1 or the sale price is negative
    """
    if name is None or not str(name).strip():
        raise InputValidationError("Menu name is required")
    if service_date is None:
        raise InputValidationError("Service date is required")
    portions = _validate_portions(portions)
    sale_price = _validate_sale_price(sale_price)

    menu = Menu(
        name=str(name).strip(),
        description=description or '',
        service_date=service_date,
        portions=portions,
        sale_price=sale_price,
        status=Menu.Status.DRAFT,
        created_by=actor or '',
        last_modified_by=actor or '',
    )
    menu.margin_percentage = menu.compute_margin()
    menu.save()

    logger.info(f"Created menu #{menu.id} '{menu.name}' for {menu.service_date}")
    return menu


def get_menu(menu_id: int) -> Menu:
    try:
        return Menu.objects.prefetch_related('ingredients__product').get(id=menu_id)
    except Menu.DoesNotExist:
        raise NotFoundError('Menu', menu_id)


def confirm_menu(menu_id: int, actor: Optional[str] = None) -> Menu:
    """
    Confirm a draft menu and consume the stock of all its ingredients.

    Every ingredient is checked against current stock before anything is
    decremented. The decrements and the status change share one
    transaction, so a failure on any ingredient leaves every product's stock
    and the menu status unchanged.

    Returns:
        The confirmed menu (returned unchanged if it was already confirmed)

    Raises:
        NotFoundError: If the menu does not exist
        InvalidStateTransitionError: If the menu is cancelled, prepared or has no ingredients
        InsufficientStockError: If any ingredient is not covered by current stock
    """
    with transaction.atomic():
        menu = lock_menu(menu_id)

        if menu.status == Menu.Status.CONFIRMED:
            logger.warning(f"Menu #{menu.id} is already confirmed")
            return menu

        if menu.status != Menu.Status.DRAFT:
            logger.warning(f"Refused to confirm menu #{menu.id}: status is {menu.status}")
            raise InvalidStateTransitionError(
                f"Cannot confirm menu #{menu.id}: it is {menu.status}",
                current_status=menu.status,
                action='confirm',
            )

        if not menu.ingredients.exists():
            raise InvalidStateTransitionError(
                f"Cannot confirm menu #{menu.id}: it has no ingredients",
                current_status=menu.status,
                action='confirm',
            )

        shortages = find_shortages(menu)
        if shortages:
            first = shortages[0]
            product = first.ingredient.product
            raise InsufficientStockError(product.name, first.available, first.required, product.unit)

        decrement_for_menu(menu, actor=actor)
        _stamp(menu, Menu.Status.CONFIRMED, actor)

    logger.info(f"Menu #{menu.id} confirmed")
    return menu


def cancel_menu(menu_id: int, reason: Optional[str] = None, actor: Optional[str] = None) -> Menu:
    """
    Cancel a draft or confirmed menu.

    A confirmed menu gets its stock restored before the status changes; a
    draft menu never touched stock. Cancelling twice is a no-op.

    Raises:
        NotFoundError: If the menu does not exist
        InvalidStateTransitionError: If the menu has already been prepared
    """
    reason = reason.strip() if reason and reason.strip() else DEFAULT_CANCEL_REASON

    with transaction.atomic():
        menu = lock_menu(menu_id)

        if menu.status == Menu.Status.CANCELLED:
            logger.warning(f"Menu #{menu.id} is already cancelled")
            return menu

        if menu.status == Menu.Status.PREPARED:
            logger.warning(f"Refused to cancel menu #{menu.id}: already prepared")
            raise InvalidStateTransitionError(
                f"Cannot cancel menu #{menu.id}: it has already been prepared",
                current_status=menu.status,
                action='cancel',
            )

        if menu.status == Menu.Status.CONFIRMED:
            restore_for_menu(menu, reason, actor=actor)

        _stamp(menu, Menu.Status.CANCELLED, actor)

    logger.info(f"Menu #{menu.id} cancelled: {reason}")
    return menu


def mark_prepared(menu_id: int, actor: Optional[str] = None) -> Menu:
    """Mark a confirmed menu as prepared. Only CONFIRMED menus can move to PREPARED."""
    with transaction.atomic():
        menu = lock_menu(menu_id)
        if menu.status != Menu.Status.CONFIRMED:
            raise InvalidStateTransitionError(
                f"Only a confirmed menu can be marked as prepared (menu #{menu.id} is {menu.status})",
                current_status=menu.status,
                action='mark as prepared',
            )
        _stamp(menu, Menu.Status.PREPARED, actor)

    logger.info(f"Menu #{menu.id} marked as prepared")
    return menu


def update_menu(menu_id: int, actor: Optional[str] = None, **fields) -> Menu:
    """
    Update a draft menu's base fields (name, description, service date,
    portions, sale price). Ingredients are managed by menus.ingredients.
    """
    unknown = set(fields) - set(UPDATABLE_MENU_FIELDS)
    if unknown:
        raise InputValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

    with transaction.atomic():
        menu = lock_menu(menu_id)
        ensure_editable(menu, 'update')

        name = fields.get('name')
        if name is not None and str(name).strip():
            menu.name = str(name).strip()
        if fields.get('description') is not None:
            menu.description = fields['description']
        if fields.get('service_date') is not None:
            menu.service_date = fields['service_date']
        if fields.get('portions') is not None:
            menu.portions = _validate_portions(fields['portions'])
        if 'sale_price' in fields:
            menu.sale_price = _validate_sale_price(fields['sale_price'])
            menu.margin_percentage = menu.compute_margin()
        if actor:
            menu.last_modified_by = actor

        menu.save()

    logger.info(f"Menu #{menu.id} updated")
    return menu


def delete_menu(menu_id: int, actor: Optional[str] = None) -> None:
    """Delete a draft menu together with its ingredients."""
    with transaction.atomic():
        menu = lock_menu(menu_id)
        if menu.status != Menu.Status.DRAFT:
            raise InvalidStateTransitionError(
                f"Only a draft menu can be deleted (menu #{menu.id} is {menu.status})",
                current_status=menu.status,
                action='delete',
            )
        menu.delete()

    logger.info(f"Menu #{menu_id} deleted by {actor or 'unknown'}")


def get_feasible_menus(service_date: date) -> List[Menu]:
    """Draft menus for a service date whose ingredients current stock can cover."""
    menus = (
        Menu.objects.filter(service_date=service_date, status=Menu.Status.DRAFT)
        .prefetch_related('ingredients')
        .order_by('name')
    )
    feasible = [menu for menu in menus if menu.ingredients.exists() and not find_shortages(menu)]
    logger.info(f"Found {len(feasible)} feasible menu(s) for {service_date}")
    return feasible
