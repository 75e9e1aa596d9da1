"""Exceptions raised by the ledger.

Every ledger operation validates its inputs before any document is written,
so all of these except ``StoreCommitFailure`` (and its ``StoreConflict``
subclass) guarantee that nothing was changed.
"""


class LedgerError(Exception):
    """Base class for all ledger failures."""


class InvalidAmount(LedgerError, ValueError):
    """A payment amount, price or quantity is non-positive or malformed."""


class ExceedsBalance(LedgerError):
    """A payment is larger than the client's outstanding debt."""


class InsufficientStock(LedgerError):
    """A sale or edit needs more units than the product has on hand."""

    def __init__(self, product_id: str, requested: int, available: int) -> None:
        super().__init__(
            f"Product {product_id} has {available} unit(s) in stock; {requested} requested"
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class NotFound(LedgerError):
    """A referenced client, transaction or product does not exist."""

    def __init__(self, collection: str, key: str, detail: str = "") -> None:
        message = f"{collection}/{key} not found"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.collection = collection
        self.key = key


class ProductInUse(LedgerError):
    """A product cannot be removed while outstanding transactions refer to it."""

    def __init__(self, product_id: str, transaction_ids) -> None:
        super().__init__(
            f"Product {product_id} is used by {len(transaction_ids)} outstanding transaction(s)"
        )
        self.product_id = product_id
        self.transaction_ids = list(transaction_ids)


class InvalidStatusTransition(LedgerError):
    """A manual status change is not allowed from the current status."""


class StoreCommitFailure(LedgerError):
    """The atomic batch write was rejected by the document store."""


class StoreConflict(StoreCommitFailure):
    """A document changed between the read and the batch commit."""
