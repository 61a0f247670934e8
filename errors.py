"""Custom exceptions for the shoe store API.

Every exception carries the HTTP status code it maps to, so the API layer can
turn any of them into the ``{"success": false, "error": ...}`` envelope.
"""

from typing import List, Optional


class StoreError(Exception):
    """Base exception for all store errors."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(StoreError):
    """Raised when input is missing or malformed."""

    status_code = 400


class EmptyCartError(ValidationError):
    def __init__(self):
        super().__init__("No order items provided")


class MissingShippingAddressError(ValidationError):
    def __init__(self, missing: Optional[List[str]] = None):
        self.missing = missing or []
        msg = "Shipping address is required"
        if self.missing:
            msg = f"Shipping address is incomplete: missing {', '.join(self.missing)}"
        super().__init__(msg)


class InvalidStatusTransitionError(ValidationError):
    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change order status from {current} to {requested}")


class NotFoundError(StoreError):
    """Raised when a product, order or variant does not exist."""

    status_code = 404


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found")


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("Order not found")


class ColorNotFoundError(NotFoundError):
    def __init__(self, product_name: str, color: str):
        self.product_name = product_name
        self.color = color
        super().__init__(f"Color {color} not available for {product_name}")


class SizeNotFoundError(NotFoundError):
    def __init__(self, product_name: str, color: str, size: str):
        self.product_name = product_name
        self.color = color
        self.size = size
        super().__init__(f"Size {size} not available for {product_name} in {color}")


class InsufficientStockError(StoreError):
    """Raised when a requested quantity exceeds the variant's stock."""

    status_code = 400

    def __init__(self, product_name: str, color: str, size: str, available: int):
        self.product_name = product_name
        self.color = color
        self.size = size
        self.available = available
        super().__init__(
            f"Insufficient stock for {product_name} ({color}, size {size}). "
            f"Only {available} available."
        )


class AuthenticationError(StoreError):
    status_code = 401

    def __init__(self, message: str = "Not authorized. Please log in."):
        super().__init__(message)


class AuthorizationError(StoreError):
    status_code = 403


class NotCancellableError(StoreError):
    status_code = 400

    def __init__(self, status: str):
        self.order_status = status
        super().__init__(f"Order cannot be cancelled at this stage ({status})")


class StorageError(StoreError):
    """Raised when the database rejects or fails an operation."""

    status_code = 500


class ConcurrentModificationError(StorageError):
    """Raised when a product document changed under a conditional write."""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product {product_id} was modified concurrently")
