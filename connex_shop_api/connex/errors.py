"""Exceptions raised by the order lifecycle and its provider clients.

Each carries the HTTP status it maps to and a generic ``public_message``;
the detailed ``str(exc)`` is for the server log only.
"""
from __future__ import annotations


class ShopError(Exception):
    """Base exception for the shop backend."""

    status_code = 500
    public_message = "Internal server error"


class ValidationError(ShopError):
    """Raised when caller input is missing or malformed."""

    status_code = 400

    def __init__(self, message: str):
        self.public_message = message
        super().__init__(message)


class InvalidPhoneNumberError(ValidationError):
    """Raised when a phone number cannot be put in international form."""

    def __init__(self, phone: str):
        self.phone = phone
        super().__init__("Invalid phone number")


class OrderNotFoundError(ShopError):
    status_code = 404
    public_message = "Order not found"

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class PaymentConflictError(ShopError):
    """Raised when payment is requested for an order that can no longer take one."""

    status_code = 409
    public_message = "Order has already been paid"

    def __init__(self, order_id: int, reason: str):
        self.order_id = order_id
        self.reason = reason
        super().__init__(f"Order {order_id}: {reason}")


class ConfigurationError(ShopError):
    public_message = "Server configuration error"


class PersistenceError(ShopError):
    public_message = "Database error"


class OrderCreationError(PersistenceError):
    public_message = "Order creation failed"


class ProviderError(ShopError):
    """Base for failures talking to M-Pesa or the SMS gateway."""

    status_code = 502
    public_message = "Upstream provider error"


class ProviderAuthError(ProviderError):
    """Raised when the OAuth exchange does not yield an access token."""

    public_message = "Failed to initiate M-Pesa payment."


class ProviderTransportError(ProviderError):
    """Timeouts and connection failures; safe to retry."""

    def __init__(self, provider: str, detail: str):
        self.provider = provider
        super().__init__(f"{provider} request failed: {detail}")


class PaymentRejectedError(ProviderError):
    """Raised when the STK push comes back without a success ResponseCode."""

    public_message = "Failed to initiate M-Pesa payment."

    def __init__(self, response_code: str | None, description: str = ""):
        self.response_code = response_code
        msg = f"STK push rejected (ResponseCode={response_code})"
        if description:
            msg = f"{msg}: {description}"
        super().__init__(msg)


class NotificationError(ProviderError):
    public_message = "Failed to send notification"
