from decimal import Decimal

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Product',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(db_index=True, help_text='Product name', max_length=100)),
                ('stock_quantity', models.DecimalField(decimal_places=3, default=Decimal('0'), help_text="Current stock, in the product's stock unit", max_digits=12, validators=[django.core.validators.MinValueValidator(Decimal('0'))])),
                ('unit', models.CharField(choices=[('kg', 'Kilogram'), ('g', 'Gram'), ('l', 'Litre'), ('ml', 'Millilitre'), ('unit', 'Unit'), ('piece', 'Piece')], help_text='Stock unit', max_length=10)),
                ('unit_price', models.DecimalField(decimal_places=2, help_text='Price per stock unit (must be positive)', max_digits=10, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))])),
                ('alert_threshold', models.DecimalField(decimal_places=3, default=Decimal('0'), help_text='Stock below this quantity is considered low', max_digits=12, validators=[django.core.validators.MinValueValidator(Decimal('0'))])),
                ('expiry_date', models.DateField(blank=True, null=True)),
                ('is_deleted', models.BooleanField(db_index=True, default=False, help_text='Soft-deleted products are hidden but keep their movements')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Product',
                'verbose_name_plural': 'Products',
                'ordering': ['name'],
                'indexes': [
                    models.Index(fields=['name', 'is_deleted'], name='product_name_deleted_idx'),
                    models.Index(fields=['expiry_date'], name='product_expiry_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(stock_quantity__gte=0), name='product_stock_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='StockMovement',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('kind', models.CharField(choices=[('ENTRY', 'Stock entry'), ('EXIT', 'Stock exit'), ('INVENTORY_ADJUSTMENT', 'Inventory adjustment'), ('MANUAL_CORRECTION', 'Manual correction'), ('EXPIRY', 'Expired product')], db_index=True, max_length=25)),
                ('quantity', models.DecimalField(decimal_places=3, help_text='Signed quantity in the requested unit', max_digits=12)),
                ('unit', models.CharField(choices=[('kg', 'Kilogram'), ('g', 'Gram'), ('l', 'Litre'), ('ml', 'Millilitre'), ('unit', 'Unit'), ('piece', 'Piece')], max_length=10)),
                ('quantity_after', models.DecimalField(decimal_places=3, help_text="Stock after the movement, in the product's stock unit", max_digits=12)),
                ('reason', models.CharField(max_length=500)),
                ('menu_id', models.PositiveBigIntegerField(blank=True, db_index=True, null=True)),
                ('performed_by', models.CharField(blank=True, default='', max_length=150)),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('product', models.ForeignKey(help_text='Product whose stock changed', on_delete=django.db.models.deletion.PROTECT, related_name='movements', to='inventory.product')),
            ],
            options={
                'verbose_name': 'Stock Movement',
                'verbose_name_plural': 'Stock Movements',
                'ordering': ['created_at', 'id'],
                'indexes': [
                    models.Index(fields=['product', 'created_at'], name='movement_product_created_idx'),
                ],
            },
        ),
    ]
