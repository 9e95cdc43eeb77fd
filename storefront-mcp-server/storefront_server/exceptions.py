"""Errors raised by the cart subsystem."""

from typing import Optional


class CartError(Exception):
    """Base class for cart errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class StorageCorruption(CartError):
    """The persisted guest cart could not be read."""


class NetworkFailure(CartError):
    """A storefront request did not complete."""


class NotAuthenticated(CartError):
    """A server cart operation was attempted without a bearer token."""


class ServerRejected(CartError):
    """The storefront answered with a non-success status."""

    def __init__(
        self, message: str, status_code: Optional[int] = None, code: Optional[str] = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
