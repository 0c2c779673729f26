"""
Error taxonomy for the stock and menu services.

Every failure raised by the service layer is one of these types. None of them
is fatal: a failed operation leaves all state as it was before the call.
"""


class KitchenStockError(Exception):
    """Base exception for stock and menu errors."""
    pass


class InputValidationError(KitchenStockError):
    """Raised when a required input is missing, blank or negative."""
    pass


class NotFoundError(KitchenStockError):
    """Raised when a referenced product, menu or ingredient does not exist."""

    def __init__(self, entity: str, identifier, message=None):
        self.entity = entity
        self.identifier = identifier
        if message is None:
            message = f"{entity} {identifier} not found"
        super().__init__(message)


class InsufficientStockError(KitchenStockError):
    """Raised when a requested quantity exceeds the available stock."""

    def __init__(self, product_name: str, available, requested, unit=None, message=None):
        self.product_name = product_name
        self.available = available
        self.requested = requested
        self.unit = unit
        if message is None:
            suffix = f" {unit}" if unit else ""
            message = (
                f"Insufficient stock for '{product_name}': "
                f"available {available}{suffix}, requested {requested}{suffix}"
            )
        super().__init__(message)


class IncompatibleUnitsError(KitchenStockError):
    """Raised when converting between units of different categories."""

    def __init__(self, from_unit, to_unit, message=None):
        self.from_unit = from_unit
        self.to_unit = to_unit
        if message is None:
            message = f"Cannot convert from '{from_unit}' to '{to_unit}': incompatible unit categories"
        super().__init__(message)


class InvalidStateTransitionError(KitchenStockError):
    """Raised when an operation is not allowed in the menu's current status."""

    def __init__(self, message, current_status=None, action=None):
        self.current_status = current_status
        self.action = action
        super().__init__(message)
