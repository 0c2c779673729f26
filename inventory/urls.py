"""
URL routing for inventory API endpoints.
"""
from django.urls import path
from . import views

app_name = 'inventory'

urlpatterns = [
    # Products
    path('products/', views.ProductListCreateView.as_view(), name='product-list'),
    path('products/low-stock/', views.LowStockProductListView.as_view(), name='product-low-stock'),
    path('products/expiring/', views.ExpiringProductListView.as_view(), name='product-expiring'),
    path('products/<int:pk>/', views.ProductDetailView.as_view(), name='product-detail'),

    # Stock movements
    path('products/<int:pk>/entry/', views.StockEntryView.as_view(), name='stock-entry'),
    path('products/<int:pk>/exit/', views.StockExitView.as_view(), name='stock-exit'),
    path('products/<int:pk>/adjust/', views.StockAdjustmentView.as_view(), name='stock-adjust'),
    path('products/<int:pk>/expiry/', views.StockExpiryView.as_view(), name='stock-expiry'),
    path('products/<int:pk>/movements/', views.StockMovementListView.as_view(), name='stock-movements'),

    # Units
    path('units/convert/', views.UnitConversionView.as_view(), name='unit-convert'),
]
