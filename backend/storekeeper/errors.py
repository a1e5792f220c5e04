# Overview: Error taxonomy shared by services, routes and the CLI.

from __future__ import annotations


class StorekeeperError(Exception):
    """Base class for errors reported back to the caller."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ValidationError(StorekeeperError, ValueError):
    """400-level input problem."""


class NotFoundError(StorekeeperError, LookupError):
    """Operation on a missing item, invoice or return."""


class InsufficientStockError(StorekeeperError):
    """
    Sale (or manual deduction) requested more units than are on hand.

    Carries the item name and both quantities so the UI can display the
    message without a further lookup.
    """

    def __init__(self, *, item_id: int, item_name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {item_name}. Available {available}, requested {requested}.",
            details={
                "item_id": item_id,
                "item_name": item_name,
                "available": available,
                "requested": requested,
            },
        )
        self.item_id = item_id
        self.item_name = item_name
        self.available = available
        self.requested = requested


class ExcessReturnQuantityError(StorekeeperError):
    """Return requested more units than remain returnable on the invoice."""

    def __init__(
        self,
        *,
        item_id: int,
        item_name: str,
        invoiced: int,
        already_returned: int,
        requested: int,
    ):
        returnable = invoiced - already_returned
        super().__init__(
            f"Cannot return {requested} units of {item_name}. Invoiced: {invoiced}, "
            f"already returned: {already_returned}, returnable: {returnable}",
            details={
                "item_id": item_id,
                "item_name": item_name,
                "invoiced": invoiced,
                "already_returned": already_returned,
                "returnable": returnable,
                "requested": requested,
            },
        )
        self.item_id = item_id
        self.item_name = item_name
        self.invoiced = invoiced
        self.already_returned = already_returned
        self.requested = requested


class StorageUnavailableError(StorekeeperError):
    """Underlying store is unreachable. Fatal, never retried."""


class BackupError(StorekeeperError):
    """Raised when a backup/restore operation cannot be performed."""
