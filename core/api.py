"""
DRF glue shared by the inventory and menus APIs.

- exception_handler: maps the service error taxonomy to HTTP responses
- get_actor: identifies who performs a request, for audit fields
"""
import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from .exceptions import (
    IncompatibleUnitsError,
    InputValidationError,
    InsufficientStockError,
    InvalidStateTransitionError,
    KitchenStockError,
    NotFoundError,
)

logger = logging.getLogger(__name__)

ACTOR_HEADER = 'HTTP_X_ACTOR'

# Most specific first: the first matching entry wins
ERROR_RESPONSES = (
    (NotFoundError, status.HTTP_404_NOT_FOUND, 'Not Found'),
    (InsufficientStockError, status.HTTP_409_CONFLICT, 'Insufficient Stock'),
    (InvalidStateTransitionError, status.HTTP_409_CONFLICT, 'Invalid State Transition'),
    (IncompatibleUnitsError, status.HTTP_400_BAD_REQUEST, 'Incompatible Units'),
    (InputValidationError, status.HTTP_400_BAD_REQUEST, 'Validation Error'),
    (KitchenStockError, status.HTTP_400_BAD_REQUEST, 'Error'),
)


def exception_handler(exc, context):
    """
    Custom exception handler that turns service errors into JSON responses.

    Response format matches the rest of the API:
        {'error': '<category>', 'detail': '<message>'}

    Anything that is not a service error falls through to DRF's default handler.
    """
    for error_class, status_code, label in ERROR_RESPONSES:
        if isinstance(exc, error_class):
            request = context.get('request')
            path = request.path if request is not None else ''
            logger.warning(f"{label} on {path}: {exc}")
            return Response({'error': label, 'detail': str(exc)}, status=status_code)

    if isinstance(exc, DjangoValidationError):
        return Response(
            {'error': 'Validation Error', 'detail': ' '.join(exc.messages)},
            status=status.HTTP_400_BAD_REQUEST
        )

    return drf_exception_handler(exc, context)


def get_actor(request):
    """Username of the authenticated user, else the X-Actor header, else None."""
    user = getattr(request, 'user', None)
    if user is not None and user.is_authenticated:
        return user.get_username()
    actor = request.META.get(ACTOR_HEADER, '').strip()
    return actor or None
