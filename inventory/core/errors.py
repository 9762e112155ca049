"""Error taxonomy shared by the device services.

User errors carry a message meant for the caller. ``StorageError`` is
internal: its message accumulates operation context and is only ever logged.
"""
from __future__ import annotations


class InventoryError(Exception):
    """Base class for every error raised by the inventory services."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(InventoryError):
    status_code = 404


class BadRequestError(InventoryError):
    status_code = 400


class InvalidStateError(InventoryError):
    status_code = 409


class StorageError(InventoryError):
    def with_context(self, context: str) -> "StorageError":
        self.message = f"{context}: {self.message}"
        self.args = (self.message,)
        return self

    @classmethod
    def wrap(cls, exc: BaseException, context: str) -> "StorageError":
        if isinstance(exc, StorageError):
            return exc.with_context(context)
        return cls(f"{context}: {exc}")


USER_ERRORS = (NotFoundError, BadRequestError, InvalidStateError)
