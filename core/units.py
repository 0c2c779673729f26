"""
Measurement units and quantity conversion.

Units are grouped into three categories. Within WEIGHT and VOLUME every unit
has a factor to the category's base unit (gram, millilitre); COUNT units are
all equivalent. Conversion is table driven: adding a unit means adding a row
to UNIT_TABLE.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, Tuple

from django.db import models

from .exceptions import IncompatibleUnitsError, InputValidationError

QUANTITY_PLACES = Decimal('0.001')


class UnitCategory(models.TextChoices):
    WEIGHT = 'WEIGHT', 'Weight'
    VOLUME = 'VOLUME', 'Volume'
    COUNT = 'COUNT', 'Count'


class Unit(models.TextChoices):
    KILOGRAM = 'kg', 'Kilogram'
    GRAM = 'g', 'Gram'
    LITRE = 'l', 'Litre'
    MILLILITRE = 'ml', 'Millilitre'
    UNIT = 'unit', 'Unit'
    PIECE = 'piece', 'Piece'

    @property
    def symbol(self) -> str:
        return self.value

    @property
    def category(self) -> str:
        return UNIT_TABLE[self][0]


# unit -> (category, factor to the category's base unit)
UNIT_TABLE: Dict[Unit, Tuple[str, Decimal]] = {
    Unit.KILOGRAM: (UnitCategory.WEIGHT, Decimal('1000')),
    Unit.GRAM: (UnitCategory.WEIGHT, Decimal('1')),
    Unit.LITRE: (UnitCategory.VOLUME, Decimal('1000')),
    Unit.MILLILITRE: (UnitCategory.VOLUME, Decimal('1')),
    Unit.UNIT: (UnitCategory.COUNT, Decimal('1')),
    Unit.PIECE: (UnitCategory.COUNT, Decimal('1')),
}


def parse_unit(value) -> Unit:
    """
    Resolve a unit from the enum itself, its symbol ('kg') or its name ('KILOGRAM').

    Raises:
        InputValidationError: If the value is missing or names no known unit
    """
    if value is None:
        raise InputValidationError("Unit is required")
    if isinstance(value, Unit):
        return value
    text = str(value).strip()
    try:
        return Unit(text.lower())
    except ValueError:
        pass
    try:
        return Unit[text.upper()]
    except KeyError:
        raise InputValidationError(f"Unknown unit '{value}'")


def parse_quantity(value, field: str = 'quantity') -> Decimal:
    """Coerce a number or numeric string to a finite Decimal, rejecting None and garbage."""
    if value is None:
        raise InputValidationError(f"{field.capitalize()} is required")
    if isinstance(value, Decimal):
        quantity = value
    else:
        try:
            quantity = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise InputValidationError(f"Invalid {field}: {value!r}")
    if not quantity.is_finite():
        raise InputValidationError(f"Invalid {field}: {value!r}")
    return quantity


def ensure_storable(quantity: Decimal, field: str = 'quantity') -> Decimal:
    """
    Reject quantities finer than the 3 decimal places stock is stored with.

    Raises:
        InputValidationError: If the quantity has more than 3 decimal places
    """
    if quantity.as_tuple().exponent < QUANTITY_PLACES.as_tuple().exponent:
        raise InputValidationError(
            f"{field.capitalize()} {quantity} has more than 3 decimal places"
        )
    return quantity


def category_of(unit) -> str:
    return UNIT_TABLE[parse_unit(unit)][0]


def are_compatible(source, target) -> bool:
    """Two units are compatible when they belong to the same category."""
    return category_of(source) == category_of(target)


def convert(quantity, from_unit, to_unit) -> Decimal:
    """
    Convert a quantity between two units of the same category.

    Args:
        quantity: Non-negative quantity expressed in from_unit
        from_unit: Source unit (enum, symbol or name)
        to_unit: Target unit (enum, symbol or name)

    Returns:
        The quantity in to_unit. Weight and volume results are rounded to
        3 decimal places, half-up. Count units convert 1:1.

    Raises:
        InputValidationError: If the quantity is missing or negative, or a unit is missing
        IncompatibleUnitsError: If the units belong to different categories
    """
    quantity = parse_quantity(quantity)
    source = parse_unit(from_unit)
    target = parse_unit(to_unit)

    if quantity < 0:
        raise InputValidationError("Quantity must be zero or positive")

    if source == target:
        return quantity

    source_category, source_factor = UNIT_TABLE[source]
    target_category, target_factor = UNIT_TABLE[target]

    if source_category != target_category:
        raise IncompatibleUnitsError(source.symbol, target.symbol)

    if source_category == UnitCategory.COUNT:
        return quantity

    in_base_unit = quantity * source_factor
    return (in_base_unit / target_factor).quantize(QUANTITY_PLACES, rounding=ROUND_HALF_UP)
