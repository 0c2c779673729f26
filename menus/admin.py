"""
Django Admin configuration for menu models.

Status transitions are not editable here; they go through menus.services.
"""
from django.contrib import admin
from .models import Menu, MenuIngredient


class MenuIngredientInline(admin.TabularInline):
    model = MenuIngredient
    extra = 0
    readonly_fields = ['product', 'quantity', 'unit', 'converted_quantity', 'cost']
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Menu)
class MenuAdmin(admin.ModelAdmin):
    list_display = [
        'id', 'name', 'service_date', 'portions', 'status',
        'total_cost', 'margin_percentage', 'ingredient_count'
    ]
    list_filter = ['status', 'service_date']
    search_fields = ['name', 'description']
    ordering = ['-service_date']
    readonly_fields = [
        'status', 'total_cost', 'margin_percentage',
        'created_by', 'last_modified_by', 'created_at', 'updated_at'
    ]
    inlines = [MenuIngredientInline]

    def ingredient_count(self, obj):
        return obj.ingredients.count()
    ingredient_count.short_description = 'Ingredients'


@admin.register(MenuIngredient)
class MenuIngredientAdmin(admin.ModelAdmin):
    list_display = ['id', 'menu', 'product', 'quantity', 'unit', 'converted_quantity', 'cost']
    list_filter = ['menu__status', 'unit']
    search_fields = ['product__name', 'menu__name']
    ordering = ['-created_at']
    raw_id_fields = ['menu', 'product']
