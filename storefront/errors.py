# storefront/errors.py
from typing import Optional


class BackendError(Exception):
    """Failed request to the hosted backend (network, auth or validation)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        return self.message


class CheckoutError(Exception):
    pass


class CheckoutInProgress(CheckoutError):
    """A submission is already waiting for the backend."""


class StorageFull(Exception):
    """The entry no longer fits in the shopper's storage; nothing was written."""

    def __init__(self, message: str = "Your cart is full. Remove an item before adding more."):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message
