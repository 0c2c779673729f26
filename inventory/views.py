"""
Inventory API Views.

Implements:
- CRUD operations for Product (delete is a soft delete)
- Stock entry, exit (with optional unit conversion), adjustment and expiry
- Movement history, low-stock and expiring product lists
- Unit conversion preview

Service errors are turned into responses by core.api.exception_handler.
"""
from rest_framework import generics, status
from rest_framework.response import Response
from rest_framework.views import APIView

from core.api import get_actor
from core.exceptions import InputValidationError
from core.units import convert, parse_unit
from . import services
from .models import Product
from .serializers import (
    ProductCreateSerializer,
    ProductSerializer,
    ProductUpdateSerializer,
    StockAdjustmentSerializer,
    StockEntrySerializer,
    StockExitSerializer,
    StockLevelSerializer,
    StockMovementSerializer,
    UnitConversionSerializer,
)


# =============================================================================
# Product Views
# =============================================================================

class ProductListCreateView(generics.ListCreateAPIView):
    """
    GET: List products (query parameter `q` filters by name)
    POST: Register a product; an initial stock creates its ENTRY movement
    """
    serializer_class = ProductSerializer

    def get_queryset(self):
        queryset = Product.objects.filter(is_deleted=False)
        keyword = self.request.query_params.get('q', '').strip()
        if keyword:
            queryset = queryset.filter(name__icontains=keyword)
        return queryset.order_by('name')

    def create(self, request, *args, **kwargs):
        serializer = ProductCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        product = services.register_product(actor=get_actor(request), **serializer.validated_data)
        return Response(ProductSerializer(product).data, status=status.HTTP_201_CREATED)


class ProductDetailView(APIView):
    """
    GET: Retrieve a product
    PATCH: Update name, unit price, alert threshold or expiry date
    DELETE: Soft-delete a product not used by an active menu
    """

    def get(self, request, pk):
        return Response(ProductSerializer(services.get_product(pk)).data)

    def patch(self, request, pk):
        serializer = ProductUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        product = services.update_product(pk, actor=get_actor(request), **serializer.validated_data)
        return Response(ProductSerializer(product).data)

    def delete(self, request, pk):
        services.delete_product(pk, actor=get_actor(request))
        return Response(status=status.HTTP_204_NO_CONTENT)


class LowStockProductListView(APIView):
    """GET: Products strictly below their alert threshold."""

    def get(self, request):
        products = services.get_low_stock_products()
        return Response(ProductSerializer(products, many=True).data)


class ExpiringProductListView(APIView):
    """
    GET: Products expiring soon.

    Query Parameters:
        - days: Look-ahead window in days (default: 7)
    """

    def get(self, request):
        days = request.query_params.get('days', '7')
        try:
            days = int(days)
        except ValueError:
            raise InputValidationError(f"Invalid number of days: {days!r}")
        products = services.get_expiring_products(days)
        return Response(ProductSerializer(products, many=True).data)


# =============================================================================
# Stock Movement Views
# =============================================================================

class StockEntryView(APIView):
    """
    POST: Add stock to a product.

    Request Body:
    {"quantity": "5", "reason": "Delivery"}
    """

    def post(self, request, pk):
        serializer = StockEntrySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        new_quantity = services.increment_stock(
            pk,
            serializer.validated_data['quantity'],
            serializer.validated_data['reason'],
            actor=get_actor(request),
        )
        return Response(
            {'product_id': pk, 'new_quantity': str(new_quantity)},
            status=status.HTTP_201_CREATED
        )


class StockExitView(APIView):
    """
    POST: Remove stock from a product.

    Request Body:
    {"quantity": "500", "unit": "g", "reason": "Staff meal"}

    Returns:
        - 201: Stock removed, with the new quantity and the alert flag
        - 409: Not enough stock; nothing is changed
    """

    def post(self, request, pk):
        serializer = StockExitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        actor = get_actor(request)

        if data.get('unit'):
            level = services.decrement_stock_with_conversion(
                pk, data['quantity'], data['unit'], data['reason'],
                menu_id=data.get('menu_id'), actor=actor,
            )
        else:
            level = services.decrement_stock(
                pk, data['quantity'], data['reason'],
                menu_id=data.get('menu_id'), actor=actor,
            )

        response = StockLevelSerializer({
            'product_id': pk,
            'new_quantity': level.new_quantity,
            'is_under_threshold': level.is_under_threshold,
        })
        return Response(response.data, status=status.HTTP_201_CREATED)


class StockAdjustmentView(APIView):
    """POST: Set the stock to a physically counted quantity."""

    def post(self, request, pk):
        serializer = StockAdjustmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        new_quantity = services.adjust_stock(
            pk, data['counted_quantity'], data['reason'],
            kind=data['kind'], actor=get_actor(request),
        )
        return Response({'product_id': pk, 'new_quantity': str(new_quantity)})


class StockExpiryView(APIView):
    """POST: Write off expired stock."""

    def post(self, request, pk):
        serializer = StockEntrySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        level = services.record_expiry(
            pk,
            serializer.validated_data['quantity'],
            serializer.validated_data['reason'],
            actor=get_actor(request),
        )
        response = StockLevelSerializer({
            'product_id': pk,
            'new_quantity': level.new_quantity,
            'is_under_threshold': level.is_under_threshold,
        })
        return Response(response.data, status=status.HTTP_201_CREATED)


class StockMovementListView(APIView):
    """GET: Movement history of a product, most recent first."""

    def get(self, request, pk):
        movements = services.get_movement_history(pk)
        return Response(StockMovementSerializer(movements, many=True).data)


# =============================================================================
# Unit Views
# =============================================================================

class UnitConversionView(APIView):
    """
    GET: Convert a quantity between two units.

    Query Parameters:
        - quantity, from_unit, to_unit
    """

    def get(self, request):
        serializer = UnitConversionSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        converted = convert(data['quantity'], data['from_unit'], data['to_unit'])
        return Response({
            'quantity': str(data['quantity']),
            'from_unit': parse_unit(data['from_unit']).symbol,
            'to_unit': parse_unit(data['to_unit']).symbol,
            'converted_quantity': str(converted),
        })
