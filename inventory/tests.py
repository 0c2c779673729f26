"""
Tests for the stock ledger.

Test Cases:
1. Decrements update stock, record an EXIT and report the alert threshold
2. Insufficient stock changes nothing and records nothing
3. Converted exits keep the requested unit in the audit trail
4. Entries, adjustments, expiry write-offs and initial stock
5. Movements cannot be modified or deleted
6. Concurrent decrements never oversell
7. Product registry and the HTTP endpoints
"""
import threading
from datetime import timedelta
from decimal import Decimal
from io import StringIO

from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.db import connection
from django.test import TestCase, TransactionTestCase, skipUnlessDBFeature
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from core.exceptions import (
    IncompatibleUnitsError,
    InputValidationError,
    InsufficientStockError,
    NotFoundError,
)
from inventory import services
from inventory.models import Product, StockMovement


class StockLedgerTestCase(TestCase):
    """Test cases for stock ledger mutations."""

    def setUp(self):
        """Set up test data."""
        self.tomatoes = Product.objects.create(
            name='Tomatoes',
            unit='kg',
            unit_price=Decimal('3.50'),
            stock_quantity=Decimal('10'),
            alert_threshold=Decimal('2'),
        )
        self.eggs = Product.objects.create(
            name='Eggs',
            unit='piece',
            unit_price=Decimal('0.30'),
            stock_quantity=Decimal('12'),
        )

    def test_decrement_updates_stock_and_records_exit(self):
        """
        Test: A decrement within stock succeeds.

        Given: 10 kg of tomatoes, alert threshold 2 kg
        When: Removing 3 kg
        Then: Stock is 7 kg, not under threshold, one EXIT movement of -3 kg
        """
        level = services.decrement_stock(self.tomatoes.id, Decimal('3'), 'Prep', actor='chef')

        self.assertEqual(level.new_quantity, Decimal('7'))
        self.assertFalse(level.is_under_threshold)

        self.tomatoes.refresh_from_db()
        self.assertEqual(self.tomatoes.stock_quantity, Decimal('7'))

        movement = self.tomatoes.movements.get()
        self.assertEqual(movement.kind, StockMovement.Kind.EXIT)
        self.assertEqual(movement.quantity, Decimal('-3'))
        self.assertEqual(movement.unit, 'kg')
        self.assertEqual(movement.quantity_after, Decimal('7'))
        self.assertEqual(movement.reason, 'Prep')
        self.assertEqual(movement.performed_by, 'chef')
        self.assertIsNone(movement.menu_id)

    def test_decrement_reports_alert_threshold(self):
        """
        Test: Falling strictly below the threshold is reported.

        Given: 10 kg, threshold 2 kg
        When: Removing 3 kg then 6 kg
        Then: The second result is 1 kg and under threshold
        """
        services.decrement_stock(self.tomatoes.id, Decimal('3'), 'Prep')
        level = services.decrement_stock(self.tomatoes.id, Decimal('6'), 'Prep')

        self.assertEqual(level.new_quantity, Decimal('1'))
        self.assertTrue(level.is_under_threshold)
        self.assertEqual(self.tomatoes.movements.count(), 2)

    def test_stock_equal_to_threshold_is_not_an_alert(self):
        level = services.decrement_stock(self.tomatoes.id, Decimal('8'), 'Prep')

        self.assertEqual(level.new_quantity, Decimal('2'))
        self.assertFalse(level.is_under_threshold)

    def test_decrement_exact_stock(self):
        """
        Test: Removing exactly the available stock leaves zero.
        """
        level = services.decrement_stock(self.eggs.id, Decimal('12'), 'Breakfast')

        self.assertEqual(level.new_quantity, Decimal('0'))

    def test_insufficient_stock_changes_nothing(self):
        """
        Test: A decrement beyond stock fails without side effects.

        Given: 10 kg of tomatoes
        When: Removing 11 kg
        Then: InsufficientStockError, stock still 10 kg, no movement
        """
        with self.assertRaises(InsufficientStockError) as context:
            services.decrement_stock(self.tomatoes.id, Decimal('11'), 'Prep')

        self.assertEqual(context.exception.available, Decimal('10'))
        self.assertEqual(context.exception.requested, Decimal('11'))
        self.assertIn('Tomatoes', str(context.exception))

        self.tomatoes.refresh_from_db()
        self.assertEqual(self.tomatoes.stock_quantity, Decimal('10'))
        self.assertFalse(StockMovement.objects.exists())

    def test_decrement_with_conversion_keeps_requested_unit(self):
        """
        Test: A gram request against a kilogram product.

        Given: 10 kg of tomatoes
        When: Removing 500 g
        Then: Stock is 9.5 kg, the movement records -500 g and 9.5 kg after
        """
        level = services.decrement_stock_with_conversion(
            self.tomatoes.id, Decimal('500'), 'g', 'Sauce'
        )

        self.assertEqual(level.new_quantity, Decimal('9.5'))

        movement = self.tomatoes.movements.get()
        self.assertEqual(movement.quantity, Decimal('-500'))
        self.assertEqual(movement.unit, 'g')
        self.assertEqual(movement.quantity_after, Decimal('9.5'))

    def test_decrement_with_incompatible_unit_changes_nothing(self):
        with self.assertRaises(IncompatibleUnitsError):
            services.decrement_stock_with_conversion(self.tomatoes.id, Decimal('1'), 'l', 'Sauce')

        self.tomatoes.refresh_from_db()
        self.assertEqual(self.tomatoes.stock_quantity, Decimal('10'))
        self.assertFalse(StockMovement.objects.exists())

    def test_decrement_with_conversion_insufficient(self):
        with self.assertRaises(InsufficientStockError):
            services.decrement_stock_with_conversion(self.tomatoes.id, Decimal('10500'), 'g', 'Sauce')

        self.assertFalse(StockMovement.objects.exists())

    def test_increment_records_entry(self):
        """
        Test: An entry adds stock and records a positive ENTRY movement.
        """
        new_quantity = services.increment_stock(self.eggs.id, Decimal('30'), 'Delivery', actor='store')

        self.assertEqual(new_quantity, Decimal('42'))
        movement = self.eggs.movements.get()
        self.assertEqual(movement.kind, StockMovement.Kind.ENTRY)
        self.assertEqual(movement.quantity, Decimal('30'))
        self.assertEqual(movement.quantity_after, Decimal('42'))
        self.assertEqual(movement.performed_by, 'store')

    def test_invalid_requests_are_rejected(self):
        """
        Test: Missing product, non-positive quantities and blank reasons fail validation.
        """
        with self.assertRaises(InputValidationError):
            services.decrement_stock(None, Decimal('1'), 'Prep')
        with self.assertRaises(InputValidationError):
            services.decrement_stock(self.tomatoes.id, Decimal('0'), 'Prep')
        with self.assertRaises(InputValidationError):
            services.increment_stock(self.tomatoes.id, Decimal('-2'), 'Delivery')
        with self.assertRaises(InputValidationError):
            services.increment_stock(self.tomatoes.id, Decimal('2'), '   ')

        self.assertFalse(StockMovement.objects.exists())

    def test_unknown_product(self):
        with self.assertRaises(NotFoundError):
            services.decrement_stock(99999, Decimal('1'), 'Prep')

    def test_quantities_finer_than_stock_precision_are_rejected(self):
        """
        Test: Stock is kept to 3 decimal places; finer requests change nothing.

        Given: 10 kg of tomatoes
        When: Moving 0.0004 kg through every ledger mutation
        Then: InputValidationError each time, stock still 10 kg, no movement
        """
        with self.assertRaises(InputValidationError):
            services.decrement_stock(self.tomatoes.id, Decimal('0.0004'), 'Drip')
        with self.assertRaises(InputValidationError):
            services.decrement_stock_with_conversion(self.tomatoes.id, Decimal('0.0004'), 'g', 'Drip')
        with self.assertRaises(InputValidationError):
            services.increment_stock(self.tomatoes.id, Decimal('1.0004'), 'Delivery')
        with self.assertRaises(InputValidationError):
            services.record_expiry(self.tomatoes.id, Decimal('0.0004'), 'Spoiled')
        with self.assertRaises(InputValidationError):
            services.adjust_stock(self.tomatoes.id, Decimal('9.9996'), 'Weekly count')
        with self.assertRaises(InputValidationError):
            services.register_product('Salt', 'kg', Decimal('1'), stock_quantity=Decimal('0.0001'))

        self.tomatoes.refresh_from_db()
        self.assertEqual(self.tomatoes.stock_quantity, Decimal('10'))
        self.assertFalse(StockMovement.objects.exists())

    def test_smallest_storable_quantity_is_persisted(self):
        level = services.decrement_stock(self.tomatoes.id, Decimal('0.001'), 'Tasting')

        self.tomatoes.refresh_from_db()
        self.assertEqual(level.new_quantity, Decimal('9.999'))
        self.assertEqual(self.tomatoes.stock_quantity, level.new_quantity)
        self.assertEqual(self.tomatoes.movements.get().quantity_after, level.new_quantity)

    def test_adjust_stock_records_signed_difference(self):
        """
        Test: A stock count sets the stock and records the difference.

        Given: 10 kg recorded
        When: Counting 8.5 kg
        Then: Stock is 8.5 kg with an INVENTORY_ADJUSTMENT of -1.5 kg
        """
        new_quantity = services.adjust_stock(self.tomatoes.id, Decimal('8.5'), 'Weekly count')

        self.assertEqual(new_quantity, Decimal('8.5'))
        movement = self.tomatoes.movements.get()
        self.assertEqual(movement.kind, StockMovement.Kind.INVENTORY_ADJUSTMENT)
        self.assertEqual(movement.quantity, Decimal('-1.5'))

    def test_adjust_stock_without_difference_records_nothing(self):
        services.adjust_stock(self.tomatoes.id, Decimal('10'), 'Weekly count')

        self.assertFalse(StockMovement.objects.exists())

    def test_manual_correction(self):
        services.adjust_stock(
            self.eggs.id, Decimal('15'), 'Miscounted delivery',
            kind=StockMovement.Kind.MANUAL_CORRECTION,
        )

        movement = self.eggs.movements.get()
        self.assertEqual(movement.kind, StockMovement.Kind.MANUAL_CORRECTION)
        self.assertEqual(movement.quantity, Decimal('3'))

    def test_record_expiry(self):
        """
        Test: Expired stock is written off as an EXPIRY movement.
        """
        level = services.record_expiry(self.eggs.id, Decimal('4'), 'Past best-before')

        self.assertEqual(level.new_quantity, Decimal('8'))
        movement = self.eggs.movements.get()
        self.assertEqual(movement.kind, StockMovement.Kind.EXPIRY)
        self.assertEqual(movement.quantity, Decimal('-4'))

    def test_record_expiry_beyond_stock(self):
        with self.assertRaises(InsufficientStockError):
            services.record_expiry(self.eggs.id, Decimal('13'), 'Past best-before')

    def test_movement_history_is_most_recent_first(self):
        services.increment_stock(self.eggs.id, Decimal('6'), 'Delivery')
        services.decrement_stock(self.eggs.id, Decimal('2'), 'Breakfast')

        history = services.get_movement_history(self.eggs.id)

        self.assertEqual([m.kind for m in history], [StockMovement.Kind.EXIT, StockMovement.Kind.ENTRY])


class StockMovementImmutabilityTestCase(TestCase):
    """Movements are append-only."""

    def setUp(self):
        self.product = services.register_product('Flour', 'kg', Decimal('0.95'), stock_quantity=Decimal('5'))
        self.movement = self.product.movements.get()

    def test_movement_cannot_be_updated(self):
        self.movement.reason = 'Rewritten'
        with self.assertRaises(ValidationError):
            self.movement.save()

    def test_movement_cannot_be_deleted(self):
        with self.assertRaises(ValidationError):
            self.movement.delete()

        self.assertTrue(StockMovement.objects.filter(id=self.movement.id).exists())


class ProductRegistryTestCase(TestCase):
    """Test cases for product registration, update and queries."""

    def test_register_product_records_initial_stock(self):
        """
        Test: A product created with stock gets its initial ENTRY movement.
        """
        product = services.register_product(
            'Olive oil', 'l', Decimal('9.80'), stock_quantity=Decimal('4'), actor='manager'
        )

        movement = product.movements.get()
        self.assertEqual(movement.kind, StockMovement.Kind.ENTRY)
        self.assertEqual(movement.quantity, Decimal('4'))
        self.assertEqual(movement.reason, services.INITIAL_STOCK_REASON)
        self.assertEqual(movement.performed_by, 'manager')

    def test_register_product_without_stock_records_nothing(self):
        product = services.register_product('Saffron', 'g', Decimal('12.00'))

        self.assertEqual(product.stock_quantity, Decimal('0'))
        self.assertFalse(product.movements.exists())

    def test_register_product_validation(self):
        with self.assertRaises(InputValidationError):
            services.register_product('', 'kg', Decimal('1'))
        with self.assertRaises(InputValidationError):
            services.register_product('Salt', 'kg', Decimal('0'))
        with self.assertRaises(InputValidationError):
            services.register_product('Salt', 'bushel', Decimal('1'))
        with self.assertRaises(InputValidationError):
            services.register_product('Salt', 'kg', Decimal('1'), stock_quantity=Decimal('-1'))

    def test_update_product_never_touches_stock(self):
        product = services.register_product('Rice', 'kg', Decimal('2.90'), stock_quantity=Decimal('10'))

        with self.assertRaises(InputValidationError):
            services.update_product(product.id, stock_quantity=Decimal('99'))

        updated = services.update_product(product.id, name='Basmati rice', alert_threshold=Decimal('3'))
        self.assertEqual(updated.name, 'Basmati rice')
        self.assertEqual(updated.stock_quantity, Decimal('10'))
        self.assertEqual(updated.movements.count(), 1)

    def test_delete_product_is_soft(self):
        product = services.register_product('Rice', 'kg', Decimal('2.90'), stock_quantity=Decimal('10'))

        services.delete_product(product.id)

        product.refresh_from_db()
        self.assertTrue(product.is_deleted)
        with self.assertRaises(NotFoundError):
            services.get_product(product.id)

    def test_low_stock_and_expiring_queries(self):
        today = timezone.localdate()
        low = services.register_product(
            'Cream', 'l', Decimal('4.20'),
            stock_quantity=Decimal('1'), alert_threshold=Decimal('2'),
            expiry_date=today + timedelta(days=2),
        )
        services.register_product(
            'Rice', 'kg', Decimal('2.90'),
            stock_quantity=Decimal('10'), alert_threshold=Decimal('2'),
            expiry_date=today + timedelta(days=200),
        )

        self.assertEqual(services.get_low_stock_products(), [low])
        self.assertEqual(services.get_expiring_products(7), [low])
        self.assertEqual([p.name for p in services.search_products('cre')], ['Cream'])


class ConcurrentDecrementTestCase(TransactionTestCase):
    """
    Test concurrent decrements to verify select_for_update works.
    Uses TransactionTestCase for proper multi-threading support.
    """

    def setUp(self):
        """Set up test data for concurrent testing."""
        self.product = Product.objects.create(
            name='Salmon fillet',
            unit='kg',
            unit_price=Decimal('24.00'),
            stock_quantity=Decimal('10'),
        )

    @skipUnlessDBFeature('has_select_for_update')
    def test_concurrent_decrements_no_overselling(self):
        """
        Test: Concurrent exits don't oversell stock.

        Given: 10 kg in stock
        When: Two concurrent exits of 8 kg each
        Then: At most one succeeds and the stock matches the movements
        """
        results = {'exit1': None, 'exit2': None}

        def take_stock(key):
            try:
                services.decrement_stock(self.product.id, Decimal('8'), 'Banquet')
                results[key] = 'OK'
            except InsufficientStockError:
                results[key] = 'INSUFFICIENT'
            finally:
                connection.close()

        thread1 = threading.Thread(target=take_stock, args=('exit1',))
        thread2 = threading.Thread(target=take_stock, args=('exit2',))

        thread1.start()
        thread2.start()

        thread1.join()
        thread2.join()

        self.product.refresh_from_db()
        succeeded = sum(1 for r in results.values() if r == 'OK')

        self.assertLessEqual(succeeded, 1)
        self.assertGreaterEqual(self.product.stock_quantity, Decimal('0'))
        self.assertEqual(self.product.movements.count(), succeeded)
        if succeeded == 1:
            self.assertEqual(self.product.stock_quantity, Decimal('2'))
        else:
            self.assertEqual(self.product.stock_quantity, Decimal('10'))


class SeedDataCommandTestCase(TestCase):

    def test_seed_data_creates_products_and_draft_menus(self):
        from menus.models import Menu

        call_command('seed_data', menus=2, stdout=StringIO())

        self.assertTrue(Product.objects.filter(name='Tomatoes').exists())
        self.assertEqual(
            StockMovement.objects.filter(reason=services.INITIAL_STOCK_REASON).count(),
            Product.objects.count()
        )
        self.assertEqual(Menu.objects.filter(status=Menu.Status.DRAFT).count(), 2)
        self.assertTrue(all(menu.total_cost > 0 for menu in Menu.objects.all()))


class InventoryAPITestCase(APITestCase):
    """Test cases for the inventory endpoints."""

    def setUp(self):
        self.product = services.register_product(
            'Tomatoes', 'kg', Decimal('3.50'),
            stock_quantity=Decimal('10'), alert_threshold=Decimal('2'),
        )

    def test_create_product(self):
        response = self.client.post('/api/products/', {
            'name': 'Lemons',
            'unit': 'piece',
            'unit_price': '0.45',
            'stock_quantity': '60',
        }, format='json', HTTP_X_ACTOR='manager')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['name'], 'Lemons')
        movement = StockMovement.objects.get(product_id=response.data['id'])
        self.assertEqual(movement.performed_by, 'manager')

    def test_exit_with_unit_conversion(self):
        response = self.client.post(
            f'/api/products/{self.product.id}/exit/',
            {'quantity': '500', 'unit': 'g', 'reason': 'Sauce'},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Decimal(response.data['new_quantity']), Decimal('9.5'))
        self.assertFalse(response.data['is_under_threshold'])

    def test_exit_beyond_stock_returns_conflict(self):
        response = self.client.post(
            f'/api/products/{self.product.id}/exit/',
            {'quantity': '11', 'reason': 'Sauce'},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error'], 'Insufficient Stock')
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, Decimal('10'))

    def test_exit_with_incompatible_unit_returns_bad_request(self):
        response = self.client.post(
            f'/api/products/{self.product.id}/exit/',
            {'quantity': '1', 'unit': 'l', 'reason': 'Sauce'},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Incompatible Units')

    def test_unknown_product_returns_not_found(self):
        response = self.client.post(
            '/api/products/99999/entry/',
            {'quantity': '1', 'reason': 'Delivery'},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_movements_endpoint(self):
        self.client.post(
            f'/api/products/{self.product.id}/entry/',
            {'quantity': '5', 'reason': 'Delivery'},
            format='json'
        )

        response = self.client.get(f'/api/products/{self.product.id}/movements/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 2)
        self.assertEqual(response.data[0]['kind'], StockMovement.Kind.ENTRY)
        self.assertEqual(Decimal(response.data[0]['quantity_after']), Decimal('15'))

    def test_unit_conversion_endpoint(self):
        response = self.client.get('/api/units/convert/', {
            'quantity': '2.5', 'from_unit': 'kg', 'to_unit': 'g'
        })

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Decimal(response.data['converted_quantity']), Decimal('2500'))
