"""
Management command to seed the database with sample kitchen data.

Generates:
- A pantry of products across weight, volume and count units, each with its
  initial-stock movement
- Draft menus built from those products, with ingredients in mixed units

Everything goes through the service layer, so the ledger is consistent with
the seeded stock.

Usage:
    python manage.py seed_data
    python manage.py seed_data --clear  # Clear existing data first
"""
import random
from datetime import timedelta
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from inventory import services
from inventory.models import Product, StockMovement

SEED_ACTOR = 'seed_data'

# name, unit, unit price, stock, alert threshold, shelf life in days (None: no expiry)
PANTRY = [
    ('Tomatoes', 'kg', '3.50', '25', '5', 6),
    ('Onions', 'kg', '1.80', '30', '5', 30),
    ('Potatoes', 'kg', '1.20', '50', '10', 45),
    ('Carrots', 'kg', '1.60', '20', '4', 20),
    ('Beef mince', 'kg', '11.90', '12', '3', 4),
    ('Chicken breast', 'kg', '9.40', '15', '3', 4),
    ('Salmon fillet', 'kg', '24.00', '6', '2', 3),
    ('Basmati rice', 'kg', '2.90', '40', '8', 365),
    ('Flour', 'kg', '0.95', '35', '10', 240),
    ('Butter', 'kg', '8.00', '8', '2', 60),
    ('Parmesan', 'kg', '22.50', '4', '1', 90),
    ('Olive oil', 'l', '9.80', '18', '4', 540),
    ('Whole milk', 'l', '1.10', '24', '6', 7),
    ('Cream', 'l', '4.20', '10', '2', 10),
    ('Chicken stock', 'l', '2.40', '16', '4', 5),
    ('Eggs', 'piece', '0.30', '180', '36', 21),
    ('Lemons', 'piece', '0.45', '60', '12', 14),
    ('Burger buns', 'unit', '0.55', '80', '20', 5),
    ('Garlic', 'unit', '0.40', '40', '10', 60),
]

MENUS = [
    ('Spaghetti bolognese', 30, '14.50', [
        ('Beef mince', '3', 'kg'),
        ('Tomatoes', '2500', 'g'),
        ('Onions', '0.8', 'kg'),
        ('Parmesan', '300', 'g'),
    ]),
    ('Roast chicken and potatoes', 25, '16.00', [
        ('Chicken breast', '5', 'kg'),
        ('Potatoes', '6', 'kg'),
        ('Olive oil', '250', 'ml'),
        ('Lemons', '10', 'piece'),
        ('Garlic', '6', 'unit'),
    ]),
    ('Salmon and rice', 12, '21.00', [
        ('Salmon fillet', '2', 'kg'),
        ('Basmati rice', '1500', 'g'),
        ('Cream', '500', 'ml'),
        ('Lemons', '6', 'piece'),
    ]),
    ('Cheeseburger', 40, '12.50', [
        ('Beef mince', '6', 'kg'),
        ('Burger buns', '40', 'unit'),
        ('Onions', '1', 'kg'),
        ('Tomatoes', '1500', 'g'),
    ]),
    ('Crepes', 50, '6.00', [
        ('Flour', '2', 'kg'),
        ('Whole milk', '4', 'l'),
        ('Eggs', '24', 'piece'),
        ('Butter', '200', 'g'),
    ]),
]


class Command(BaseCommand):
    help = 'Seed the database with sample kitchen products and draft menus'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear existing data before seeding',
        )
        parser.add_argument(
            '--menus',
            type=int,
            default=len(MENUS),
            help=f'Number of draft menus to create (default: {len(MENUS)})',
        )

    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write('Clearing existing data...')
            self._clear_data()

        self.stdout.write('Starting database seeding...')

        with transaction.atomic():
            products = self._create_products()
            self._create_menus(options['menus'], products)

        self.stdout.write(self.style.SUCCESS('Database seeding completed successfully!'))

    def _clear_data(self):
        """Clear all existing data."""
        from menus.models import Menu, MenuIngredient

        # Queryset deletes bypass StockMovement.delete(), which always refuses
        MenuIngredient.objects.all().delete()
        Menu.objects.all().delete()
        StockMovement.objects.all().delete()
        Product.objects.all().delete()

        self.stdout.write(self.style.WARNING('All existing data cleared.'))

    def _create_products(self):
        """Register the pantry products; existing names are reused."""
        today = timezone.localdate()
        products = {}

        for name, unit, price, stock, threshold, shelf_life in PANTRY:
            existing = Product.objects.filter(name=name, is_deleted=False).first()
            if existing is not None:
                products[name] = existing
                continue

            products[name] = services.register_product(
                name=name,
                unit=unit,
                unit_price=Decimal(price),
                stock_quantity=Decimal(stock),
                alert_threshold=Decimal(threshold),
                expiry_date=today + timedelta(days=shelf_life) if shelf_life is not None else None,
                actor=SEED_ACTOR,
            )
            self.stdout.write(f'  Created product: {name} ({stock} {unit})')

        self.stdout.write(self.style.SUCCESS(f'Created {len(products)} products'))
        return products

    def _create_menus(self, count, products):
        """Create draft menus on the coming service dates."""
        from menus.ingredients import add_ingredient
        from menus.services import create_menu

        today = timezone.localdate()
        created = 0

        for i in range(count):
            name, portions, sale_price, ingredients = MENUS[i % len(MENUS)]
            if i >= len(MENUS):
                name = f"{name} #{i // len(MENUS) + 1}"

            menu = create_menu(
                name=name,
                service_date=today + timedelta(days=random.randint(1, 14)),
                portions=portions,
                sale_price=Decimal(sale_price),
                description=f"Sample menu for {portions} portions",
                actor=SEED_ACTOR,
            )
            for product_name, quantity, unit in ingredients:
                add_ingredient(
                    menu.id,
                    products[product_name].id,
                    Decimal(quantity),
                    unit=unit,
                    actor=SEED_ACTOR,
                )
            menu.refresh_from_db()
            created += 1
            self.stdout.write(f'  Created menu: {menu.name} (cost {menu.total_cost})')

        self.stdout.write(self.style.SUCCESS(f'Created {created} draft menus'))
