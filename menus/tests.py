"""
Tests for menu coordination and lifecycle logic.

Test Cases:
1. Ingredients are converted to the stock unit and costed
2. Confirming a menu consumes the stock of every ingredient
3. No stock moves when any ingredient is short
4. Atomic rollback when a decrement fails part way through
5. Cancelling a confirmed menu restores its stock
6. Status transitions the lifecycle refuses
7. HTTP endpoints
"""
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from core.exceptions import (
    IncompatibleUnitsError,
    InputValidationError,
    InsufficientStockError,
    InvalidStateTransitionError,
    NotFoundError,
)
from inventory import services as stock
from inventory.models import StockMovement
from inventory.services import decrement_stock as real_decrement_stock
from menus import ingredients, services
from menus.models import Menu, MenuIngredient


class MenuTestMixin:
    """Shared fixtures: two weighed products and one counted product."""

    def create_products(self):
        self.tomatoes = stock.register_product(
            'Tomatoes', 'kg', Decimal('3.50'),
            stock_quantity=Decimal('10'), alert_threshold=Decimal('2'),
        )
        self.cheese = stock.register_product(
            'Cheese', 'kg', Decimal('8.00'),
            stock_quantity=Decimal('2'),
        )
        self.eggs = stock.register_product(
            'Eggs', 'piece', Decimal('0.30'),
            stock_quantity=Decimal('12'),
        )
        self.service_date = timezone.localdate() + timedelta(days=3)

    def create_menu(self, name='Tomato gratin', sale_price=Decimal('10.00')):
        return services.create_menu(
            name=name,
            service_date=self.service_date,
            portions=10,
            sale_price=sale_price,
            actor='chef',
        )

    def create_gratin(self):
        """Menu with 1 kg of tomatoes and 300 g of cheese."""
        menu = self.create_menu()
        ingredients.add_ingredient(menu.id, self.tomatoes.id, Decimal('1'), unit='kg')
        ingredients.add_ingredient(menu.id, self.cheese.id, Decimal('300'), unit='g')
        menu.refresh_from_db()
        return menu

    def assertStock(self, product, expected):
        product.refresh_from_db()
        self.assertEqual(product.stock_quantity, Decimal(expected))


class MenuIngredientTestCase(MenuTestMixin, TestCase):
    """Test cases for adding and removing ingredients."""

    def setUp(self):
        self.create_products()

    def test_ingredient_is_converted_and_costed(self):
        """
        Test: Menu cost is the sum of the converted ingredient costs.

        Given: Tomatoes at 3.50/kg and cheese at 8.00/kg
        When: Adding 1 kg of tomatoes and 300 g of cheese
        Then: Cheese is stored as 0.3 kg, total cost is 5.90 and no stock moved
        """
        menu = self.create_gratin()

        cheese = menu.ingredients.get(product=self.cheese)
        self.assertEqual(cheese.quantity, Decimal('300'))
        self.assertEqual(cheese.unit, 'g')
        self.assertEqual(cheese.converted_quantity, Decimal('0.3'))
        self.assertEqual(cheese.cost, Decimal('2.40'))
        self.assertTrue(cheese.needs_conversion)

        self.assertEqual(menu.total_cost, Decimal('5.90'))
        self.assertEqual(menu.margin_percentage, Decimal('41.00'))

        self.assertStock(self.tomatoes, '10')
        self.assertStock(self.cheese, '2')
        self.assertFalse(StockMovement.objects.filter(kind=StockMovement.Kind.EXIT).exists())

    def test_unit_defaults_to_stock_unit(self):
        menu = self.create_menu()

        ingredient = ingredients.add_ingredient(menu.id, self.eggs.id, Decimal('6'))

        self.assertEqual(ingredient.unit, 'piece')
        self.assertEqual(ingredient.cost, Decimal('1.80'))

    def test_add_ingredient_checks_stock(self):
        """
        Test: An ingredient the stock cannot cover is refused.
        """
        menu = self.create_menu()

        with self.assertRaises(InsufficientStockError):
            ingredients.add_ingredient(menu.id, self.cheese.id, Decimal('2500'), unit='g')

        self.assertFalse(menu.ingredients.exists())

    def test_add_ingredient_with_incompatible_unit(self):
        menu = self.create_menu()

        with self.assertRaises(IncompatibleUnitsError):
            ingredients.add_ingredient(menu.id, self.tomatoes.id, Decimal('1'), unit='l')

    def test_add_ingredient_rejects_non_positive_quantity(self):
        menu = self.create_menu()

        with self.assertRaises(InputValidationError):
            ingredients.add_ingredient(menu.id, self.tomatoes.id, Decimal('0'))

    def test_quantity_rounding_to_zero_is_refused(self):
        """
        Test: An ingredient smaller than the stock precision is refused.

        Given: Tomatoes stocked in kg
        When: Adding 0.1 g (0.0001 kg), or 0.0004 kg directly
        Then: InputValidationError and the menu has no ingredient
        """
        menu = self.create_menu()

        with self.assertRaises(InputValidationError):
            ingredients.add_ingredient(menu.id, self.tomatoes.id, Decimal('0.1'), unit='g')
        with self.assertRaises(InputValidationError):
            ingredients.add_ingredient(menu.id, self.tomatoes.id, Decimal('0.0004'))

        self.assertFalse(menu.ingredients.exists())

    def test_smallest_storable_ingredient_can_be_confirmed(self):
        """
        Test: 1 g of tomatoes is stored as 0.001 kg and consumed on confirmation.
        """
        menu = self.create_menu()
        ingredient = ingredients.add_ingredient(menu.id, self.tomatoes.id, Decimal('1'), unit='g')
        self.assertEqual(ingredient.converted_quantity, Decimal('0.001'))

        services.confirm_menu(menu.id)

        menu.refresh_from_db()
        self.assertEqual(menu.status, Menu.Status.CONFIRMED)
        self.assertStock(self.tomatoes, '9.999')

    def test_duplicate_ingredient_is_refused(self):
        menu = self.create_gratin()

        with self.assertRaises(InvalidStateTransitionError):
            ingredients.add_ingredient(menu.id, self.tomatoes.id, Decimal('500'), unit='g')

        self.assertEqual(menu.ingredients.count(), 2)

    def test_unknown_menu_or_product(self):
        menu = self.create_menu()

        with self.assertRaises(NotFoundError):
            ingredients.add_ingredient(99999, self.tomatoes.id, Decimal('1'))
        with self.assertRaises(NotFoundError):
            ingredients.add_ingredient(menu.id, 99999, Decimal('1'))

    def test_remove_ingredient_updates_cost(self):
        menu = self.create_gratin()

        ingredients.remove_ingredient(menu.id, self.cheese.id)

        menu.refresh_from_db()
        self.assertEqual(menu.total_cost, Decimal('3.50'))
        self.assertEqual(menu.ingredient_count, 1)

    def test_remove_missing_ingredient(self):
        menu = self.create_menu()

        with self.assertRaises(NotFoundError):
            ingredients.remove_ingredient(menu.id, self.tomatoes.id)

    def test_verify_stock_sufficiency_is_read_only(self):
        menu = self.create_gratin()
        self.assertTrue(ingredients.verify_stock_sufficiency(menu))

        stock.decrement_stock(self.cheese.id, Decimal('1.9'), 'Staff meal')

        self.assertFalse(ingredients.verify_stock_sufficiency(menu))
        shortage = ingredients.find_shortages(menu)[0]
        self.assertEqual(shortage.ingredient.product_id, self.cheese.id)
        self.assertEqual(shortage.missing, Decimal('0.2'))

    def test_price_change_refreshes_draft_costs_only(self):
        """
        Test: A unit price change reaches draft menus, not confirmed ones.

        Given: A draft and a confirmed menu both using tomatoes
        When: The tomato price goes from 3.50 to 4.00
        Then: Only the draft menu's cost changes
        """
        draft = self.create_gratin()
        confirmed = self.create_menu(name='Tomato salad')
        ingredients.add_ingredient(confirmed.id, self.tomatoes.id, Decimal('2'))
        services.confirm_menu(confirmed.id)

        stock.update_product(self.tomatoes.id, unit_price=Decimal('4.00'))

        draft.refresh_from_db()
        confirmed.refresh_from_db()
        self.assertEqual(draft.total_cost, Decimal('6.40'))
        self.assertEqual(confirmed.total_cost, Decimal('7.00'))

    def test_product_used_by_menu_cannot_be_deleted(self):
        menu = self.create_gratin()

        self.assertEqual(ingredients.get_product_usage(self.tomatoes.id), Decimal('1'))
        with self.assertRaises(InvalidStateTransitionError):
            stock.delete_product(self.tomatoes.id)

        services.cancel_menu(menu.id)

        self.assertTrue(ingredients.product_can_be_deleted(self.tomatoes.id))
        stock.delete_product(self.tomatoes.id)


class MenuConfirmationTestCase(MenuTestMixin, TestCase):
    """Test cases for confirming menus against stock."""

    def setUp(self):
        self.create_products()

    def test_confirm_decrements_every_ingredient(self):
        """
        Test: Confirming consumes the converted quantities.

        Given: The gratin (1 kg tomatoes, 300 g cheese)
        When: Confirming it
        Then: Status is CONFIRMED, tomatoes 9 kg, cheese 1.7 kg,
              one EXIT per ingredient linked to the menu
        """
        menu = self.create_gratin()

        confirmed = services.confirm_menu(menu.id, actor='sous-chef')

        self.assertEqual(confirmed.status, Menu.Status.CONFIRMED)
        self.assertEqual(confirmed.last_modified_by, 'sous-chef')
        self.assertStock(self.tomatoes, '9')
        self.assertStock(self.cheese, '1.7')

        movements = StockMovement.objects.filter(menu_id=menu.id)
        self.assertEqual(movements.count(), 2)
        for movement in movements:
            self.assertEqual(movement.kind, StockMovement.Kind.EXIT)
            self.assertEqual(movement.reason, 'Used by menu: Tomato gratin')
            self.assertEqual(movement.performed_by, 'sous-chef')

    def test_confirm_with_shortage_changes_nothing(self):
        """
        Test: Stock is all-or-nothing.

        Given: The gratin, then cheese stock drops to 0.2 kg
        When: Confirming it
        Then: InsufficientStockError for cheese, both stocks unchanged, still DRAFT
        """
        menu = self.create_gratin()
        stock.decrement_stock(self.cheese.id, Decimal('1.8'), 'Staff meal')

        with self.assertRaises(InsufficientStockError) as context:
            services.confirm_menu(menu.id)

        self.assertEqual(context.exception.product_name, 'Cheese')
        self.assertStock(self.tomatoes, '10')
        self.assertStock(self.cheese, '0.2')
        self.assertFalse(StockMovement.objects.filter(menu_id=menu.id).exists())
        menu.refresh_from_db()
        self.assertEqual(menu.status, Menu.Status.DRAFT)

    def test_failure_mid_loop_rolls_back_earlier_decrements(self):
        """
        Test: A failure after the first decrement undoes it.

        Given: The gratin
        When: The second ledger call fails unexpectedly
        Then: The tomato decrement is rolled back and the menu stays DRAFT
        """
        menu = self.create_gratin()
        calls = []

        def failing_second_call(*args, **kwargs):
            calls.append(args[0])
            if len(calls) == 2:
                raise RuntimeError("Ledger unavailable")
            return real_decrement_stock(*args, **kwargs)

        with patch('menus.ingredients.decrement_stock', side_effect=failing_second_call):
            with self.assertRaises(RuntimeError):
                services.confirm_menu(menu.id)

        self.assertEqual(len(calls), 2)
        self.assertStock(self.tomatoes, '10')
        self.assertStock(self.cheese, '2')
        self.assertFalse(StockMovement.objects.filter(menu_id=menu.id).exists())
        menu.refresh_from_db()
        self.assertEqual(menu.status, Menu.Status.DRAFT)

    def test_confirm_twice_decrements_once(self):
        menu = self.create_gratin()

        services.confirm_menu(menu.id)
        services.confirm_menu(menu.id)

        self.assertStock(self.tomatoes, '9')
        self.assertEqual(StockMovement.objects.filter(menu_id=menu.id).count(), 2)

    def test_confirm_menu_without_ingredients(self):
        menu = self.create_menu()

        with self.assertRaises(InvalidStateTransitionError):
            services.confirm_menu(menu.id)

    def test_confirmed_menu_is_not_editable(self):
        menu = self.create_gratin()
        services.confirm_menu(menu.id)

        with self.assertRaises(InvalidStateTransitionError):
            ingredients.add_ingredient(menu.id, self.eggs.id, Decimal('2'))
        with self.assertRaises(InvalidStateTransitionError):
            ingredients.remove_ingredient(menu.id, self.tomatoes.id)
        with self.assertRaises(InvalidStateTransitionError):
            services.update_menu(menu.id, name='Renamed')
        with self.assertRaises(InvalidStateTransitionError):
            services.delete_menu(menu.id)

    def test_feasible_menus(self):
        feasible = self.create_gratin()
        short = self.create_menu(name='Cheese board')
        ingredients.add_ingredient(short.id, self.cheese.id, Decimal('1.5'))
        stock.decrement_stock(self.cheese.id, Decimal('1'), 'Staff meal')

        self.assertEqual(services.get_feasible_menus(self.service_date), [feasible])


class MenuCancellationTestCase(MenuTestMixin, TestCase):
    """Test cases for cancelling and preparing menus."""

    def setUp(self):
        self.create_products()

    def test_cancel_confirmed_menu_restores_stock(self):
        """
        Test: Cancelling gives the consumed stock back.

        Given: A confirmed gratin (tomatoes 9 kg, cheese 1.7 kg)
        When: Cancelling it
        Then: Stock is back to 10 kg and 2 kg with ENTRY movements linked to the menu
        """
        menu = self.create_gratin()
        services.confirm_menu(menu.id)

        cancelled = services.cancel_menu(menu.id, reason='Event postponed')

        self.assertEqual(cancelled.status, Menu.Status.CANCELLED)
        self.assertStock(self.tomatoes, '10')
        self.assertStock(self.cheese, '2')

        entries = StockMovement.objects.filter(menu_id=menu.id, kind=StockMovement.Kind.ENTRY)
        self.assertEqual(entries.count(), 2)
        self.assertTrue(all(m.reason == 'Menu cancelled: Event postponed' for m in entries))

    def test_cancel_draft_menu_touches_no_stock(self):
        menu = self.create_gratin()

        services.cancel_menu(menu.id)

        self.assertStock(self.tomatoes, '10')
        self.assertFalse(StockMovement.objects.filter(menu_id=menu.id).exists())

    def test_cancel_twice_restores_once(self):
        menu = self.create_gratin()
        services.confirm_menu(menu.id)

        services.cancel_menu(menu.id)
        services.cancel_menu(menu.id)

        self.assertStock(self.tomatoes, '10')
        self.assertEqual(StockMovement.objects.filter(menu_id=menu.id).count(), 4)

    def test_cancelled_menu_cannot_be_confirmed(self):
        menu = self.create_gratin()
        services.cancel_menu(menu.id)

        with self.assertRaises(InvalidStateTransitionError) as context:
            services.confirm_menu(menu.id)

        self.assertEqual(context.exception.current_status, Menu.Status.CANCELLED)
        self.assertStock(self.tomatoes, '10')

    def test_mark_prepared(self):
        menu = self.create_gratin()

        with self.assertRaises(InvalidStateTransitionError):
            services.mark_prepared(menu.id)

        services.confirm_menu(menu.id)
        prepared = services.mark_prepared(menu.id)

        self.assertEqual(prepared.status, Menu.Status.PREPARED)

    def test_prepared_menu_cannot_be_cancelled_or_confirmed(self):
        menu = self.create_gratin()
        services.confirm_menu(menu.id)
        services.mark_prepared(menu.id)

        with self.assertRaises(InvalidStateTransitionError):
            services.cancel_menu(menu.id)
        with self.assertRaises(InvalidStateTransitionError):
            services.confirm_menu(menu.id)

        self.assertStock(self.tomatoes, '9')


class MenuModelTestCase(MenuTestMixin, TestCase):
    """Test cases for menu creation and model helpers."""

    def setUp(self):
        self.create_products()

    def test_create_menu_validation(self):
        with self.assertRaises(InputValidationError):
            services.create_menu(name=' ', service_date=self.service_date, portions=4)
        with self.assertRaises(InputValidationError):
            services.create_menu(name='Soup', service_date=None, portions=4)
        with self.assertRaises(InputValidationError):
            services.create_menu(name='Soup', service_date=self.service_date, portions=0)

    def test_margin_without_sale_price(self):
        menu = self.create_menu(sale_price=None)

        self.assertIsNone(menu.margin_percentage)

    def test_update_menu_recomputes_margin(self):
        menu = self.create_gratin()

        updated = services.update_menu(menu.id, sale_price=Decimal('5.00'), actor='manager')

        self.assertEqual(updated.margin_percentage, Decimal('-18.00'))
        self.assertEqual(updated.last_modified_by, 'manager')

    def test_delete_draft_menu(self):
        menu = self.create_gratin()

        services.delete_menu(menu.id)

        self.assertFalse(Menu.objects.filter(id=menu.id).exists())
        self.assertFalse(MenuIngredient.objects.exists())


class MenuAPITestCase(MenuTestMixin, APITestCase):
    """Test cases for the menu endpoints."""

    def setUp(self):
        self.create_products()

    def test_full_menu_flow(self):
        response = self.client.post('/api/menus/', {
            'name': 'Tomato gratin',
            'service_date': self.service_date.isoformat(),
            'portions': 10,
            'sale_price': '10.00',
        }, format='json', HTTP_X_ACTOR='chef')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['created_by'], 'chef')
        menu_id = response.data['id']

        response = self.client.post(
            f'/api/menus/{menu_id}/ingredients/',
            {'product_id': self.cheese.id, 'quantity': '300', 'unit': 'g'},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Decimal(response.data['converted_quantity']), Decimal('0.3'))

        response = self.client.post(f'/api/menus/{menu_id}/confirm/', format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Menu.Status.CONFIRMED)
        self.assertStock(self.cheese, '1.7')

        response = self.client.post(
            f'/api/menus/{menu_id}/cancel/', {'reason': 'Rain'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Menu.Status.CANCELLED)
        self.assertStock(self.cheese, '2')

    def test_confirm_with_shortage_returns_conflict(self):
        menu = self.create_gratin()
        stock.decrement_stock(self.cheese.id, Decimal('1.8'), 'Staff meal')

        response = self.client.post(f'/api/menus/{menu.id}/confirm/', format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error'], 'Insufficient Stock')
        self.assertIn('Cheese', response.data['detail'])

    def test_prepare_draft_returns_conflict(self):
        menu = self.create_gratin()

        response = self.client.post(f'/api/menus/{menu.id}/prepare/', format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error'], 'Invalid State Transition')

    def test_unknown_menu_returns_not_found(self):
        response = self.client.get('/api/menus/99999/')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_remove_ingredient_endpoint(self):
        menu = self.create_gratin()

        response = self.client.delete(f'/api/menus/{menu.id}/ingredients/?product_id={self.cheese.id}')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['ingredients']), 1)
        self.assertEqual(Decimal(response.data['total_cost']), Decimal('3.50'))
