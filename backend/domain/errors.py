"""
Custom domain exceptions for consistent error handling.

These exceptions are mapped to HTTP status codes by the global exception handler
in main.py.
"""
from fastapi import HTTPException, status


class DomainError(HTTPException):
    """Base class for all domain-specific errors."""
    def __init__(self, message: str, status_code: int = status.HTTP_400_BAD_REQUEST, details: dict | None = None):
        super().__init__(status_code=status_code, detail=message)
        self.message = message
        self.details = details or {}


class NotFoundError(DomainError):
    """Resource not found (404)."""
    def __init__(self, resource_type: str, identifier: str, details: dict | None = None):
        message = f"{resource_type} not found: {identifier}"
        super().__init__(message, status_code=status.HTTP_404_NOT_FOUND, details=details)


class ValidationError(DomainError):
    """Validation error (400)."""
    def __init__(self, message: str, field: str | None = None, details: dict | None = None):
        if field:
            message = f"Validation error on {field}: {message}"
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST, details=details)


class UnauthorizedError(DomainError):
    """Unauthorized access (401)."""
    def __init__(self, message: str = "Unauthorized", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_401_UNAUTHORIZED, details=details)


class ConflictError(DomainError):
    """Resource conflict (409)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_409_CONFLICT, details=details)


class DependencyError(DomainError):
    """Payment, email or storage provider failure (500)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, details=details)


class ConfigurationError(DomainError):
    """Required credential or URL absent (500)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, details=details)


# ── Order workflow specifics ────────────────────────────────────────

class InvalidAmountError(ValidationError):
    def __init__(self, amount=None):
        super().__init__(
            "Invalid amount: must be a positive integer in minor currency units",
            details={"amount": amount},
        )


class SignatureInvalidError(ValidationError):
    def __init__(self, message: str = "Webhook signature verification failed"):
        super().__init__(message)


class InvalidStatusError(ValidationError):
    def __init__(self, value, allowed: list[str]):
        super().__init__(
            f"Invalid status. Must be one of: {', '.join(allowed)}",
            details={"status": value, "allowed": allowed},
        )


class MalformedPaymentPayloadError(ValidationError):
    def __init__(self, message: str = "Payment intent payload is missing or malformed"):
        super().__init__(message)


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id: str):
        super().__init__("Order", order_id)
        self.order_id = order_id


class DuplicateOrderError(ConflictError):
    def __init__(self, order_id: str):
        super().__init__(f"Order already recorded: {order_id}", details={"orderId": order_id})
        self.order_id = order_id


class GatewayNotConfiguredError(ConfigurationError):
    def __init__(self, message: str = "Stripe is not configured. Set STRIPE_SECRET_KEY or enable test mode."):
        super().__init__(message)
