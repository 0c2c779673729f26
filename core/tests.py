"""
Tests for unit conversion and the API error mapping.

Test Cases:
1. Conversions within weight and volume, with 3-decimal half-up rounding
2. Count units convert 1:1
3. Converting across categories is refused
4. Invalid inputs are rejected
5. Service errors map to the right HTTP status
"""
from decimal import Decimal

from django.test import SimpleTestCase
from rest_framework import status

from core.api import exception_handler
from core.exceptions import (
    IncompatibleUnitsError,
    InputValidationError,
    InsufficientStockError,
    InvalidStateTransitionError,
    NotFoundError,
)
from core.units import (
    QUANTITY_PLACES,
    UNIT_TABLE,
    Unit,
    UnitCategory,
    are_compatible,
    convert,
    parse_unit,
)


class UnitConversionTestCase(SimpleTestCase):
    """Test cases for core.units.convert."""

    def test_kilograms_to_grams(self):
        """
        Test: 2.5 kg is 2500 g.
        """
        self.assertEqual(convert(Decimal('2.5'), Unit.KILOGRAM, Unit.GRAM), Decimal('2500.000'))

    def test_millilitres_to_litres(self):
        """
        Test: 750 ml is 0.75 l.
        """
        self.assertEqual(convert(Decimal('750'), Unit.MILLILITRE, Unit.LITRE), Decimal('0.750'))

    def test_small_quantity_rounds_half_up(self):
        """
        Test: Results keep 3 decimal places, rounding half up.

        Given: 0.5 g (0.0005 kg)
        When: Converting to kilograms
        Then: The result is 0.001 kg
        """
        self.assertEqual(convert(Decimal('0.5'), 'g', 'kg'), Decimal('0.001'))
        self.assertEqual(convert(Decimal('0.4'), 'g', 'kg'), Decimal('0.000'))

    def test_same_unit_returns_quantity_unchanged(self):
        quantity = Decimal('1.23456')
        self.assertEqual(convert(quantity, Unit.GRAM, Unit.GRAM), quantity)

    def test_count_units_are_equivalent(self):
        """
        Test: 'unit' and 'piece' convert 1:1 without rounding.
        """
        self.assertEqual(convert(Decimal('12'), Unit.PIECE, Unit.UNIT), Decimal('12'))
        self.assertEqual(convert(Decimal('3'), 'unit', 'piece'), Decimal('3'))

    def test_round_trip_is_stable_at_three_decimals(self):
        """
        Test: kg -> g -> kg gives back the original quantity.
        """
        original = Decimal('1.234')
        grams = convert(original, Unit.KILOGRAM, Unit.GRAM)
        self.assertEqual(convert(grams, Unit.GRAM, Unit.KILOGRAM), original)

    def test_zero_quantity_is_allowed(self):
        self.assertEqual(convert(Decimal('0'), Unit.LITRE, Unit.MILLILITRE), Decimal('0.000'))

    def test_incompatible_categories_are_refused(self):
        """
        Test: Weight cannot be converted to volume.

        Given: 1 kg
        When: Converting to litres
        Then: IncompatibleUnitsError names both units
        """
        with self.assertRaises(IncompatibleUnitsError) as context:
            convert(Decimal('1'), Unit.KILOGRAM, Unit.LITRE)

        self.assertEqual(context.exception.from_unit, 'kg')
        self.assertEqual(context.exception.to_unit, 'l')

    def test_count_to_weight_is_refused(self):
        with self.assertRaises(IncompatibleUnitsError):
            convert(Decimal('4'), Unit.PIECE, Unit.GRAM)

    def test_negative_quantity_is_rejected(self):
        with self.assertRaises(InputValidationError):
            convert(Decimal('-1'), Unit.KILOGRAM, Unit.GRAM)

    def test_missing_quantity_or_unit_is_rejected(self):
        with self.assertRaises(InputValidationError):
            convert(None, Unit.KILOGRAM, Unit.GRAM)
        with self.assertRaises(InputValidationError):
            convert(Decimal('1'), None, Unit.GRAM)
        with self.assertRaises(InputValidationError):
            convert(Decimal('1'), Unit.KILOGRAM, None)

    def test_round_trip_within_each_category(self):
        """
        Test: a -> b -> a gives back x within 3-decimal rounding for every compatible pair.

        Given: Quantities from 0 to 2500.5, every pair of units in the same category
        When: Converting there and back
        Then: Exact when b is the smaller unit, within 0.0005 of b otherwise
        """
        quantities = [Decimal('0'), Decimal('0.001'), Decimal('1'), Decimal('1.234'), Decimal('2500.5')]
        for source, (_, source_factor) in UNIT_TABLE.items():
            for target, (_, target_factor) in UNIT_TABLE.items():
                if not are_compatible(source, target):
                    continue
                tolerance = Decimal('0')
                if target_factor > source_factor:
                    tolerance = QUANTITY_PLACES / 2 * target_factor / source_factor
                for quantity in quantities:
                    with self.subTest(source=source.symbol, target=target.symbol, quantity=quantity):
                        back = convert(convert(quantity, source, target), target, source)
                        self.assertLessEqual(abs(back - quantity), tolerance)

    def test_every_cross_category_pair_is_refused(self):
        """
        Test: Weight, volume and count never convert into each other, zero included.
        """
        for source in UNIT_TABLE:
            for target in UNIT_TABLE:
                if source.category == target.category:
                    continue
                for quantity in (Decimal('0'), Decimal('1'), Decimal('12.5')):
                    with self.subTest(source=source.symbol, target=target.symbol, quantity=quantity):
                        with self.assertRaises(IncompatibleUnitsError):
                            convert(quantity, source, target)

    def test_non_finite_quantity_is_rejected(self):
        for value in ('NaN', 'Infinity', '-Infinity', Decimal('NaN'), Decimal('Infinity')):
            with self.subTest(value=value):
                with self.assertRaises(InputValidationError):
                    convert(value, Unit.KILOGRAM, Unit.GRAM)


class UnitParsingTestCase(SimpleTestCase):
    """Test cases for unit lookup helpers."""

    def test_parse_unit_accepts_symbol_and_name(self):
        self.assertEqual(parse_unit('kg'), Unit.KILOGRAM)
        self.assertEqual(parse_unit('KILOGRAM'), Unit.KILOGRAM)
        self.assertEqual(parse_unit(' ml '), Unit.MILLILITRE)
        self.assertEqual(parse_unit(Unit.PIECE), Unit.PIECE)

    def test_parse_unit_rejects_unknown_unit(self):
        with self.assertRaises(InputValidationError) as context:
            parse_unit('bushel')

        self.assertIn('bushel', str(context.exception))

    def test_unit_categories(self):
        self.assertEqual(Unit.GRAM.category, UnitCategory.WEIGHT)
        self.assertEqual(Unit.LITRE.category, UnitCategory.VOLUME)
        self.assertEqual(Unit.UNIT.category, UnitCategory.COUNT)
        self.assertTrue(are_compatible('kg', 'g'))
        self.assertFalse(are_compatible('kg', 'ml'))


class ExceptionHandlerTestCase(SimpleTestCase):
    """Test cases for the DRF exception handler."""

    def assertMapped(self, exc, expected_status, expected_error):
        response = exception_handler(exc, {})
        self.assertEqual(response.status_code, expected_status)
        self.assertEqual(response.data['error'], expected_error)
        self.assertEqual(response.data['detail'], str(exc))

    def test_service_errors_map_to_status_codes(self):
        self.assertMapped(InputValidationError("Reason is required"), status.HTTP_400_BAD_REQUEST, 'Validation Error')
        self.assertMapped(IncompatibleUnitsError('kg', 'l'), status.HTTP_400_BAD_REQUEST, 'Incompatible Units')
        self.assertMapped(NotFoundError('Product', 42), status.HTTP_404_NOT_FOUND, 'Not Found')
        self.assertMapped(
            InsufficientStockError('Tomatoes', Decimal('1'), Decimal('2'), 'kg'),
            status.HTTP_409_CONFLICT,
            'Insufficient Stock'
        )
        self.assertMapped(
            InvalidStateTransitionError("Menu is CANCELLED"),
            status.HTTP_409_CONFLICT,
            'Invalid State Transition'
        )

    def test_other_exceptions_fall_through(self):
        self.assertIsNone(exception_handler(ValueError("boom"), {}))
