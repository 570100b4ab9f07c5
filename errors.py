"""Domain errors raised by the service modules and mapped to HTTP responses in main.py."""


class StoreError(Exception):
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(StoreError):
    """A referenced order, product, category or review does not exist."""
    status_code = 404


class InsufficientStock(StoreError):
    """Requested quantity exceeds the product's available stock."""

    def __init__(self, product_name: str, detail: str = None):
        super().__init__(detail or f"Insufficient stock for product: {product_name}")
        self.product_name = product_name


class InvalidCategory(StoreError):
    """Category is missing, inactive or already taken."""


class Unauthorized(StoreError):
    status_code = 401


class InvalidTransition(StoreError):
    """Order status change rejected by the strict transition table."""
    status_code = 409


class NotificationFailure(Exception):
    """Email delivery failed. Only ever raised inside the notification outbox."""

    def __init__(self, message: str, reason: str = "unknown"):
        super().__init__(message)
        # "auth", "connection" or "unknown"; drives the operator guidance that gets logged
        self.reason = reason
