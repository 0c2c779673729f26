from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('inventory', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Menu',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(db_index=True, help_text='Menu name', max_length=100)),
                ('description', models.CharField(blank=True, default='', max_length=500)),
                ('service_date', models.DateField(db_index=True)),
                ('portions', models.PositiveIntegerField(help_text='Number of portions to prepare', validators=[django.core.validators.MinValueValidator(1)])),
                ('sale_price', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True, validators=[django.core.validators.MinValueValidator(Decimal('0'))])),
                ('status', models.CharField(choices=[('DRAFT', 'Draft'), ('CONFIRMED', 'Confirmed'), ('PREPARED', 'Prepared'), ('CANCELLED', 'Cancelled')], db_index=True, default='DRAFT', help_text='Current menu status', max_length=20)),
                ('total_cost', models.DecimalField(decimal_places=2, default=Decimal('0.00'), help_text='Sum of the ingredient costs', max_digits=12)),
                ('margin_percentage', models.DecimalField(blank=True, decimal_places=2, max_digits=7, null=True)),
                ('created_by', models.CharField(blank=True, default='', max_length=150)),
                ('last_modified_by', models.CharField(blank=True, default='', max_length=150)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Menu',
                'verbose_name_plural': 'Menus',
                'ordering': ['-service_date', 'name'],
                'indexes': [
                    models.Index(fields=['status', 'service_date'], name='menu_status_date_idx'),
                    models.Index(fields=['created_by'], name='menu_created_by_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='MenuIngredient',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('quantity', models.DecimalField(decimal_places=3, help_text='Required quantity, in `unit`', max_digits=12, validators=[django.core.validators.MinValueValidator(Decimal('0.001'))])),
                ('unit', models.CharField(choices=[('kg', 'Kilogram'), ('g', 'Gram'), ('l', 'Litre'), ('ml', 'Millilitre'), ('unit', 'Unit'), ('piece', 'Piece')], max_length=10)),
                ('converted_quantity', models.DecimalField(decimal_places=3, help_text="Required quantity in the product's stock unit", max_digits=12)),
                ('cost', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('note', models.CharField(blank=True, default='', max_length=255)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('menu', models.ForeignKey(help_text='Owning menu', on_delete=django.db.models.deletion.CASCADE, related_name='ingredients', to='menus.menu')),
                ('product', models.ForeignKey(help_text='Product consumed', on_delete=django.db.models.deletion.PROTECT, related_name='menu_ingredients', to='inventory.product')),
            ],
            options={
                'verbose_name': 'Menu Ingredient',
                'verbose_name_plural': 'Menu Ingredients',
                'ordering': ['id'],
                'constraints': [
                    models.UniqueConstraint(fields=('menu', 'product'), name='unique_menu_product_ingredient'),
                ],
            },
        ),
    ]
