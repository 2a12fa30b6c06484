"""Exceptions raised by the storefront engines."""

from typing import Optional


class StorefrontError(Exception):
    """Base class for storefront failures."""


class UnauthenticatedError(StorefrontError):
    """The remote service rejected the bearer credential (HTTP 401)."""


class GatewayError(StorefrontError):
    """The remote service answered with a non-success status or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InventoryError(StorefrontError):
    """A requested quantity exceeds the known stock level."""

    def __init__(self, product_id: str, requested: int, available: int, in_cart: int = 0) -> None:
        self.product_id = product_id
        self.requested = requested
        self.available = available
        self.in_cart = in_cart
        message = f"Only {available} items available in stock"
        if in_cart:
            message += f". You already have {in_cart} in your cart."
        super().__init__(message)


class NotFoundError(StorefrontError):
    """A referenced cart line or address does not exist."""
