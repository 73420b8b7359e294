"""Custom exceptions for the storefront."""

from typing import Optional


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    pass


class ValidationError(StorefrontError):
    """Raised when a request payload is malformed or incomplete.

    ``field_errors`` maps a field name to every message collected for it.
    """

    def __init__(self, field_errors: Optional[dict[str, list[str]]] = None, message: str = "Invalid payload"):
        self.field_errors = field_errors or {}
        super().__init__(message)


class NotFoundError(StorefrontError):
    """Raised when a product, order or other resource does not exist."""

    def __init__(self, resource: str, ids=None):
        self.resource = resource
        self.ids = list(ids) if ids is not None else []
        msg = f"{resource} not found"
        if self.ids:
            msg = f"{msg}: {', '.join(str(i) for i in self.ids)}"
        super().__init__(msg)


class AuthError(StorefrontError):
    """Raised when a route needs an identity and none could be established."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class ConflictError(StorefrontError):
    """Raised when a write collides with existing data (duplicate email)."""

    pass


class StockError(StorefrontError):
    """Raised when a cart asks for more units than a product has."""

    def __init__(self, product_id: int, name: str, requested: int, available: Optional[int] = None):
        self.product_id = product_id
        self.name = name
        self.requested = requested
        self.available = available
        msg = f"Insufficient stock for {name} (product {product_id}): requested {requested}"
        if available is not None:
            msg = f"{msg}, available {available}"
        super().__init__(msg)


class PersistenceError(StorefrontError):
    """Raised when the data store fails unexpectedly."""

    pass
