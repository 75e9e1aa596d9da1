"""Data models for the ledger.

This module defines dataclasses representing the entities the ledger keeps
consistent: clients, products and instalment sale transactions, plus the
value objects returned by payment allocation and accepted by transaction
edits. Each stored entity knows how to convert itself to and from the plain
JSON document kept by :mod:`murabaha_ledger.store`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .utils import to_decimal

CLIENTS = "clients"
PRODUCTS = "products"
TRANSACTIONS = "transactions"


class TransactionStatus:
    ACTIVE = "active"
    COMPLETED = "completed"
    OVERDUE = "overdue"
    ARCHIVED = "archived"

    ALL = frozenset({ACTIVE, COMPLETED, OVERDUE, ARCHIVED})
    # statuses that take part in payment allocation
    OUTSTANDING = frozenset({ACTIVE, OVERDUE})


@dataclass
class Client:
    """A client owing money on one or more transactions.

    ``total_due`` is denormalized: it must always equal the sum of
    ``remaining_amount`` over the client's non-archived transactions, and is
    rewritten in the same batch as any change to those transactions.
    """

    id: str
    name: str
    phone: str
    total_due: Decimal
    referred_by: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "phone": self.phone,
            "totalDue": str(self.total_due),
            "referredBy": self.referred_by,
        }

    @classmethod
    def from_document(cls, key: str, data: Dict[str, Any]) -> "Client":
        return cls(
            id=key,
            name=data["name"],
            phone=data.get("phone", ""),
            total_due=to_decimal(data.get("totalDue", "0")),
            referred_by=data.get("referredBy"),
        )


@dataclass
class Product:
    """A product sold on instalments. ``stock`` never goes negative."""

    id: str
    name: str
    purchase_price: Decimal
    selling_price: Decimal
    stock: int

    def to_document(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "purchasePrice": str(self.purchase_price),
            "sellingPrice": str(self.selling_price),
            "stock": self.stock,
        }

    @classmethod
    def from_document(cls, key: str, data: Dict[str, Any]) -> "Product":
        return cls(
            id=key,
            name=data["name"],
            purchase_price=to_decimal(data["purchasePrice"]),
            selling_price=to_decimal(data["sellingPrice"]),
            stock=int(data.get("stock", 0)),
        )


@dataclass
class Transaction:
    """An instalment sale of ``quantity`` units of a product to a client.

    Attributes
    ----------
    purchase_price: Decimal
        Unit purchase price paid by the seller.
    selling_price: Decimal
        Unit selling price per billing period (month). The profit per unit
        and period is ``selling_price - purchase_price``.
    total_amount: Decimal
        ``purchase_price * quantity`` plus the profit over all billed months.
    paid_amount, remaining_amount: Decimal
        Always sum to ``total_amount`` (within tolerance).
    """

    id: str
    client_id: str
    product_id: str
    product_name: str
    quantity: int
    purchase_price: Decimal
    selling_price: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    issue_date: date
    due_date: date
    status: str = TransactionStatus.ACTIVE

    def to_document(self) -> Dict[str, Any]:
        return {
            "clientId": self.client_id,
            "productId": self.product_id,
            "productName": self.product_name,
            "quantity": self.quantity,
            "purchasePrice": str(self.purchase_price),
            "sellingPrice": str(self.selling_price),
            "totalAmount": str(self.total_amount),
            "paidAmount": str(self.paid_amount),
            "remainingAmount": str(self.remaining_amount),
            "issueDate": self.issue_date.isoformat(),
            "dueDate": self.due_date.isoformat(),
            "status": self.status,
        }

    @classmethod
    def from_document(cls, key: str, data: Dict[str, Any]) -> "Transaction":
        return cls(
            id=key,
            client_id=data["clientId"],
            product_id=data["productId"],
            product_name=data.get("productName", ""),
            quantity=int(data["quantity"]),
            purchase_price=to_decimal(data["purchasePrice"]),
            selling_price=to_decimal(data["sellingPrice"]),
            total_amount=to_decimal(data["totalAmount"]),
            paid_amount=to_decimal(data.get("paidAmount", "0")),
            remaining_amount=to_decimal(data["remainingAmount"]),
            issue_date=date.fromisoformat(data["issueDate"]),
            due_date=date.fromisoformat(data["dueDate"]),
            status=data.get("status", TransactionStatus.ACTIVE),
        )


@dataclass
class TransactionEdit:
    """Full replacement set of the mutable fields of a transaction."""

    product_id: str
    quantity: int
    issue_date: date
    due_date: date
    purchase_price: Decimal
    selling_price: Decimal  # per unit and period


@dataclass
class Allocation:
    """The share of a payment applied to one transaction."""

    transaction_id: str
    applied: Decimal
    paid_after: Decimal
    remaining_after: Decimal
    status_after: str


@dataclass
class PaymentResult:
    """Outcome of a registered payment."""

    client_id: str
    amount: Decimal
    applied_total: Decimal
    total_due_after: Decimal
    allocations: List[Allocation] = field(default_factory=list)
