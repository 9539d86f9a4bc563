# backend/services/errors.py
"""Errors raised by the stock tracking core.

Every error carries a human readable ``message`` and a ``context`` dict
(product id, attempted delta, operation, ...) so callers can build useful
responses. ``main.py`` maps each family to an HTTP status.
"""


class InventoryError(Exception):
    retryable = False

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def with_context(self, **context) -> "InventoryError":
        for key, value in context.items():
            self.context.setdefault(key, value)
        return self


# --- Malformed input, rejected before any mutation ---

class ValidationError(InventoryError):
    pass

class InvalidQuantityError(ValidationError):
    pass

class InvalidReasonError(ValidationError):
    pass

class InvalidMovementTypeError(ValidationError):
    pass

class InvalidThresholdsError(ValidationError):
    pass

class NoOpAdjustmentError(ValidationError):
    pass

class InactiveProductError(ValidationError):
    pass

class SaleStateError(ValidationError):
    pass


# --- Unknown identifiers ---

class NotFoundError(InventoryError):
    pass

class ProductNotFoundError(NotFoundError):
    pass

class StockRecordNotFoundError(NotFoundError):
    pass

class SaleNotFoundError(NotFoundError):
    pass


# --- Recoverable conflicts ---

class StockRecordExistsError(InventoryError):
    pass

class InsufficientStockError(InventoryError):
    retryable = True

    def __init__(self, message: str = "Stock changed, please retry", **context):
        super().__init__(message, **context)

class ConcurrencyConflictError(InventoryError):
    retryable = True


# --- Storage failures ---

class StorageError(InventoryError):
    def __init__(self, message: str = "Inventory storage is unavailable", **context):
        super().__init__(message, **context)
