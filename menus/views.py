"""
Menu API Views.

Implements:
- GET /menus/ - List menus with optimized queries
- POST /menus/ - Create a draft menu
- GET/PATCH/DELETE /menus/{id}/ - Menu detail, draft update and delete
- POST/DELETE /menus/{id}/ingredients/ - Manage ingredients of a draft
- POST /menus/{id}/confirm|cancel|prepare/ - Lifecycle transitions
- GET /menus/feasible/?date= - Drafts the current stock can cover
"""
from rest_framework import generics, status
from rest_framework.exceptions import ValidationError
from rest_framework.fields import DateField
from rest_framework.response import Response
from rest_framework.views import APIView

from core.api import get_actor
from . import ingredients, services
from .models import Menu
from .serializers import (
    MenuCancelSerializer,
    MenuCreateSerializer,
    MenuIngredientCreateSerializer,
    MenuIngredientSerializer,
    MenuListSerializer,
    MenuSerializer,
    MenuUpdateSerializer,
)


def _menu_response(menu_id, status_code=status.HTTP_200_OK):
    """Fetch a fresh menu with all relations and serialize it."""
    return Response(MenuSerializer(services.get_menu(menu_id)).data, status=status_code)


class MenuListCreateView(generics.ListCreateAPIView):
    """
    GET: List menus
    POST: Create a draft menu

    Query Parameters (GET):
        - status: Filter by status (DRAFT, CONFIRMED, PREPARED, CANCELLED)
        - service_date: Filter by service date (YYYY-MM-DD)
    """

    def get_serializer_class(self):
        if self.request.method == 'POST':
            return MenuCreateSerializer
        return MenuListSerializer

    def get_queryset(self):
        queryset = Menu.objects.prefetch_related('ingredients')

        status_filter = self.request.query_params.get('status', '').upper()
        if status_filter in Menu.Status.values:
            queryset = queryset.filter(status=status_filter)

        service_date = self.request.query_params.get('service_date')
        if service_date:
            queryset = queryset.filter(service_date=DateField().to_internal_value(service_date))

        return queryset.order_by('-service_date', 'name')

    def create(self, request, *args, **kwargs):
        serializer = MenuCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        menu = services.create_menu(actor=get_actor(request), **serializer.validated_data)
        return _menu_response(menu.id, status.HTTP_201_CREATED)


class MenuDetailView(APIView):
    """
    GET: Retrieve a menu with its ingredients
    PATCH: Update a draft menu's base fields
    DELETE: Delete a draft menu
    """

    def get(self, request, pk):
        return _menu_response(pk)

    def patch(self, request, pk):
        serializer = MenuUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        services.update_menu(pk, actor=get_actor(request), **serializer.validated_data)
        return _menu_response(pk)

    def delete(self, request, pk):
        services.delete_menu(pk, actor=get_actor(request))
        return Response(status=status.HTTP_204_NO_CONTENT)


class MenuIngredientView(APIView):
    """
    POST: Add a product to a draft menu
    DELETE: Remove a product from a draft menu (query parameter `product_id`)
    """

    def post(self, request, pk):
        serializer = MenuIngredientCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        ingredient = ingredients.add_ingredient(
            pk,
            data['product_id'],
            data['quantity'],
            unit=data.get('unit'),
            note=data['note'],
            actor=get_actor(request),
        )
        return Response(MenuIngredientSerializer(ingredient).data, status=status.HTTP_201_CREATED)

    def delete(self, request, pk):
        product_id = request.query_params.get('product_id', '')
        if not product_id.isdigit():
            raise ValidationError({'product_id': 'A numeric product_id query parameter is required'})

        ingredients.remove_ingredient(pk, int(product_id), actor=get_actor(request))
        return _menu_response(pk)


class MenuConfirmView(APIView):
    """
    POST: Confirm a draft menu and consume its ingredients' stock.

    Returns:
        - 200: Menu confirmed
        - 409: Stock does not cover an ingredient, or the menu cannot be confirmed
    """

    def post(self, request, pk):
        services.confirm_menu(pk, actor=get_actor(request))
        return _menu_response(pk)


class MenuCancelView(APIView):
    """
    POST: Cancel a menu; a confirmed menu gets its stock back.

    Request Body:
    {"reason": "Event cancelled"}
    """

    def post(self, request, pk):
        serializer = MenuCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        services.cancel_menu(pk, reason=serializer.validated_data['reason'], actor=get_actor(request))
        return _menu_response(pk)


class MenuPrepareView(APIView):
    """POST: Mark a confirmed menu as prepared."""

    def post(self, request, pk):
        services.mark_prepared(pk, actor=get_actor(request))
        return _menu_response(pk)


class FeasibleMenuListView(APIView):
    """
    GET: Draft menus for a date whose ingredients the current stock covers.

    Query Parameters:
        - date: Service date (YYYY-MM-DD), required
    """

    def get(self, request):
        raw_date = request.query_params.get('date')
        if not raw_date:
            raise ValidationError({'date': 'This query parameter is required'})
        service_date = DateField().to_internal_value(raw_date)

        menus = services.get_feasible_menus(service_date)
        return Response(MenuListSerializer(menus, many=True).data)
