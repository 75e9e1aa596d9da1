"""Balance-keeping operations over the document store.

:class:`Ledger` is the only path through which transactions, product stock
and client balances change. Each operation reads the documents it needs,
validates everything up front, and then commits all of its writes as a single
batch, so a client's ``total_due`` is always rewritten together with the
transactions it summarizes. Because every batch write is conditioned on the
versions read here, two operators working on the same client cannot silently
overwrite each other: the later commit fails with ``StoreConflict`` and can
simply be retried by the caller.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
from uuid import uuid4

from .config import DELETE_POLICIES, DELETE_POLICY_TOTAL
from .data_models import (
    CLIENTS,
    PRODUCTS,
    TRANSACTIONS,
    Client,
    PaymentResult,
    Product,
    Transaction,
    TransactionEdit,
    TransactionStatus,
)
from .engine import (
    allocate_payment,
    compute_total_amount,
    recompute_transaction,
    resolve_status,
    stock_changes,
)
from .errors import (
    ExceedsBalance,
    InsufficientStock,
    InvalidAmount,
    InvalidStatusTransition,
    NotFound,
    ProductInUse,
)
from .store import Document, DocumentStore
from .utils import TOLERANCE, ZERO, is_settled, round_money, to_decimal

logger = logging.getLogger(__name__)

TransactionRef = Union[str, Transaction]


def _money(value: Any, what: str) -> Decimal:
    try:
        amount = round_money(value)
    except ValueError as exc:
        raise InvalidAmount(f"Invalid {what}: {value!r}") from exc
    if amount <= ZERO:
        raise InvalidAmount(f"{what.capitalize()} must be positive; got {amount}")
    return amount


def _quantity(value: Any) -> int:
    try:
        number = to_decimal(value)
    except ValueError as exc:
        raise InvalidAmount(f"Invalid quantity: {value!r}") from exc
    if number != number.to_integral_value() or number <= 0:
        raise InvalidAmount(f"Quantity must be a positive whole number; got {value}")
    return int(number)


class Ledger:
    """Consistency-preserving operations on clients, products and transactions.

    Parameters
    ----------
    store: DocumentStore
        Where documents live. The ledger never caches documents between
        calls.
    delete_policy: str
        ``"total"`` removes the transaction's full ``total_amount`` from the
        client's balance on deletion; ``"remaining"`` removes only what is
        still owed.
    clock: callable
        Returns today's date; used for overdue decisions.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        delete_policy: str = DELETE_POLICY_TOTAL,
        clock: Callable[[], date] = date.today,
    ) -> None:
        if delete_policy not in DELETE_POLICIES:
            raise ValueError(f"Unknown delete policy: {delete_policy}")
        self._store = store
        self._delete_policy = delete_policy
        self._clock = clock

    # ------------------------------------------------------------------ reads

    def get_client(self, client_id: str) -> Client:
        doc = self._load(CLIENTS, client_id)
        return Client.from_document(doc.key, doc.data)

    def get_product(self, product_id: str) -> Product:
        doc = self._load(PRODUCTS, product_id)
        return Product.from_document(doc.key, doc.data)

    def get_transaction(self, transaction_id: str) -> Transaction:
        doc = self._load(TRANSACTIONS, transaction_id)
        return Transaction.from_document(doc.key, doc.data)

    def list_clients(self) -> List[Client]:
        return [Client.from_document(d.key, d.data) for d in self._store.where(CLIENTS)]

    def list_products(self) -> List[Product]:
        return [Product.from_document(d.key, d.data) for d in self._store.where(PRODUCTS)]

    def client_transactions(self, client_id: str) -> List[Transaction]:
        docs = self._store.where(TRANSACTIONS, ("clientId", "==", client_id))
        transactions = [Transaction.from_document(d.key, d.data) for d in docs]
        return sorted(transactions, key=lambda t: (t.issue_date, t.id))

    def list_transactions(
        self,
        status: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[Transaction]:
        """All transactions, optionally filtered by status and issue-date range.

        ``start`` and ``end`` are inclusive. Results are ordered by issue date.
        """
        conditions = []
        if status is not None:
            if status not in TransactionStatus.ALL:
                raise ValueError(f"Unknown status: {status!r}")
            conditions.append(("status", "==", status))
        if start is not None:
            conditions.append(("issueDate", ">=", start))
        if end is not None:
            conditions.append(("issueDate", "<=", end))
        docs = self._store.where(TRANSACTIONS, *conditions)
        transactions = [Transaction.from_document(d.key, d.data) for d in docs]
        return sorted(transactions, key=lambda t: (t.issue_date, t.id))

    def client_statement(self, client_id: str) -> Tuple[Client, List[Transaction]]:
        return self.get_client(client_id), self.client_transactions(client_id)

    def audit_client(self, client_id: str) -> Dict[str, Any]:
        """Compare the stored balance with the sum of outstanding transactions."""
        client, transactions = self.client_statement(client_id)
        computed = round_money(
            sum(
                (t.remaining_amount for t in transactions if t.status != TransactionStatus.ARCHIVED),
                ZERO,
            )
        )
        difference = round_money(client.total_due - computed)
        return {
            "client_id": client.id,
            "total_due": client.total_due,
            "computed_due": computed,
            "difference": difference,
            "consistent": abs(difference) <= TOLERANCE,
        }

    # ------------------------------------------------------ clients, products

    def add_client(self, name: str, phone: str = "", referred_by: Optional[str] = None) -> Client:
        name = (name or "").strip()
        if not name:
            raise ValueError("Client name must not be empty")
        if referred_by:
            self._load(CLIENTS, referred_by)
        client = Client(
            id=uuid4().hex,
            name=name,
            phone=(phone or "").strip(),
            total_due=ZERO,
            referred_by=referred_by,
        )
        batch = self._store.batch()
        batch.create(CLIENTS, client.id, client.to_document())
        self._store.commit(batch)
        logger.info("Added client %s (%s)", client.id, client.name)
        return client

    def add_product(
        self, name: str, purchase_price: Any, selling_price: Any, stock: int = 0
    ) -> Product:
        name = (name or "").strip()
        if not name:
            raise ValueError("Product name must not be empty")
        product = Product(
            id=uuid4().hex,
            name=name,
            purchase_price=_money(purchase_price, "purchase price"),
            selling_price=_money(selling_price, "selling price"),
            stock=self._stock_level(stock),
        )
        batch = self._store.batch()
        batch.create(PRODUCTS, product.id, product.to_document())
        self._store.commit(batch)
        logger.info("Added product %s (%s), stock %d", product.id, product.name, product.stock)
        return product

    def update_product(
        self,
        product_id: str,
        *,
        name: Optional[str] = None,
        purchase_price: Any = None,
        selling_price: Any = None,
        stock: Optional[int] = None,
    ) -> Product:
        doc = self._load(PRODUCTS, product_id)
        product = Product.from_document(doc.key, doc.data)
        if name is not None:
            if not name.strip():
                raise ValueError("Product name must not be empty")
            product.name = name.strip()
        if purchase_price is not None:
            product.purchase_price = _money(purchase_price, "purchase price")
        if selling_price is not None:
            product.selling_price = _money(selling_price, "selling price")
        if stock is not None:
            product.stock = self._stock_level(stock)
        batch = self._store.batch()
        batch.update(doc, product.to_document())
        self._store.commit(batch)
        logger.info("Updated product %s", product.id)
        return product

    def delete_product(self, product_id: str) -> Product:
        """Remove a product that no outstanding transaction refers to."""
        doc = self._load(PRODUCTS, product_id)
        in_use = self._store.where(
            TRANSACTIONS,
            ("productId", "==", product_id),
            ("status", "in", sorted(TransactionStatus.OUTSTANDING)),
        )
        if in_use:
            logger.warning(
                "Deletion of product %s rejected: %d outstanding transaction(s)", product_id, len(in_use)
            )
            raise ProductInUse(product_id, [d.key for d in in_use])
        batch = self._store.batch()
        batch.delete(doc)
        self._store.commit(batch)
        logger.info("Deleted product %s", product_id)
        return Product.from_document(doc.key, doc.data)

    # ------------------------------------------------------------ transactions

    def record_sale(
        self,
        client_id: str,
        product_id: str,
        quantity: int,
        issue_date: date,
        due_date: date,
        purchase_price: Any = None,
        selling_price: Any = None,
    ) -> Transaction:
        """Record an instalment sale.

        Prices default to the product's current prices. The sale takes
        ``quantity`` units out of stock and adds the full amount to the
        client's balance.
        """
        quantity = _quantity(quantity)
        client_doc = self._load(CLIENTS, client_id)
        product_doc = self._load(PRODUCTS, product_id)
        client = Client.from_document(client_doc.key, client_doc.data)
        product = Product.from_document(product_doc.key, product_doc.data)
        purchase = _money(
            product.purchase_price if purchase_price is None else purchase_price, "purchase price"
        )
        selling = _money(
            product.selling_price if selling_price is None else selling_price, "selling price"
        )
        if quantity > product.stock:
            logger.warning("Sale of %d x %s rejected: %d in stock", quantity, product.id, product.stock)
            raise InsufficientStock(product.id, quantity, product.stock)

        try:
            total = compute_total_amount(purchase, selling, quantity, issue_date, due_date)
            total_due = round_money(client.total_due + total)
        except ValueError as exc:
            raise InvalidAmount(f"Sale total out of range: {exc}") from exc
        trans = Transaction(
            id=uuid4().hex,
            client_id=client.id,
            product_id=product.id,
            product_name=product.name,
            quantity=quantity,
            purchase_price=purchase,
            selling_price=selling,
            total_amount=total,
            paid_amount=ZERO,
            remaining_amount=total,
            issue_date=issue_date,
            due_date=due_date,
            status=resolve_status(total, due_date, self._clock()),
        )
        batch = self._store.batch()
        batch.create(TRANSACTIONS, trans.id, trans.to_document())
        batch.update(product_doc, {"stock": product.stock - quantity})
        batch.update(client_doc, {"totalDue": str(total_due)})
        self._store.commit(batch)
        logger.info(
            "Recorded sale %s: client %s, %d x %s, total %s",
            trans.id, client.id, quantity, product.id, total,
        )
        return trans

    def register_payment(self, client_id: str, amount: Any) -> PaymentResult:
        """Apply a payment to a client's outstanding transactions.

        The payment settles overdue transactions first and older ones before
        newer ones; a single payment may close out several transactions. All
        touched transactions and the client's balance are written in one
        batch.

        Raises
        ------
        InvalidAmount
            If ``amount`` is not a positive number.
        NotFound
            If the client does not exist or owes nothing on any transaction.
        ExceedsBalance
            If ``amount`` is larger than the client's ``total_due``.
        """
        amount = _money(amount, "payment amount")
        client_doc = self._load(CLIENTS, client_id)
        client = Client.from_document(client_doc.key, client_doc.data)
        if amount > client.total_due + TOLERANCE:
            logger.warning(
                "Payment of %s for client %s rejected: balance is %s", amount, client_id, client.total_due
            )
            raise ExceedsBalance(
                f"Payment of {amount} exceeds the outstanding balance of {client.total_due}"
            )

        docs = {
            d.key: d
            for d in self._store.where(
                TRANSACTIONS,
                ("clientId", "==", client_id),
                ("status", "in", sorted(TransactionStatus.OUTSTANDING)),
            )
        }
        transactions = [Transaction.from_document(d.key, d.data) for d in docs.values()]
        if not any(t.remaining_amount > ZERO for t in transactions):
            raise NotFound(CLIENTS, client_id, "no outstanding transactions")

        allocations = allocate_payment(transactions, amount)
        applied_total = round_money(sum((a.applied for a in allocations), ZERO))
        total_due_after = round_money(client.total_due - applied_total)

        batch = self._store.batch()
        for alloc in allocations:
            logger.debug(
                "Allocating %s to transaction %s (remaining %s, %s)",
                alloc.applied, alloc.transaction_id, alloc.remaining_after, alloc.status_after,
            )
            batch.update(
                docs[alloc.transaction_id],
                {
                    "paidAmount": str(alloc.paid_after),
                    "remainingAmount": str(alloc.remaining_after),
                    "status": alloc.status_after,
                },
            )
        batch.update(client_doc, {"totalDue": str(total_due_after)})
        self._store.commit(batch)
        logger.info(
            "Registered payment of %s for client %s across %d transaction(s); balance now %s",
            amount, client_id, len(allocations), total_due_after,
        )
        return PaymentResult(
            client_id=client_id,
            amount=amount,
            applied_total=applied_total,
            total_due_after=total_due_after,
            allocations=allocations,
        )

    def apply_transaction_edit(self, transaction: TransactionRef, edit: TransactionEdit) -> Transaction:
        """Replace the mutable fields of a transaction and reconcile balances.

        The total is recomputed from the new prices, quantity and dates while
        the amount already paid carries forward. Product stock and the
        client's balance move by the difference against the stored
        transaction, so repeating the same edit changes nothing further.
        """
        edit = TransactionEdit(
            product_id=edit.product_id,
            quantity=_quantity(edit.quantity),
            issue_date=edit.issue_date,
            due_date=edit.due_date,
            purchase_price=_money(edit.purchase_price, "purchase price"),
            selling_price=_money(edit.selling_price, "selling price"),
        )
        trans_doc = self._load(TRANSACTIONS, self._transaction_id(transaction))
        trans = Transaction.from_document(trans_doc.key, trans_doc.data)
        if trans.status == TransactionStatus.ARCHIVED:
            raise InvalidStatusTransition(f"Transaction {trans.id} is archived and cannot be edited")
        client_doc = self._load(CLIENTS, trans.client_id)
        product_docs = {trans.product_id: self._load(PRODUCTS, trans.product_id)}
        if edit.product_id not in product_docs:
            product_docs[edit.product_id] = self._load(PRODUCTS, edit.product_id)

        new_stock: Dict[str, int] = {}
        for product_id, change in stock_changes(trans, edit).items():
            available = int(product_docs[product_id].data.get("stock", 0))
            if available + change < 0:
                logger.warning(
                    "Edit of transaction %s rejected: product %s has %d in stock, needs %d",
                    trans.id, product_id, available, -change,
                )
                raise InsufficientStock(product_id, -change, available)
            if change:
                new_stock[product_id] = available + change

        product_name = product_docs[edit.product_id].data["name"]
        try:
            updated = recompute_transaction(trans, edit, product_name, self._clock())
        except ValueError as exc:
            raise InvalidAmount(f"Transaction total out of range: {exc}") from exc
        if updated.paid_amount > updated.total_amount + TOLERANCE:
            raise InvalidAmount(
                f"Transaction {trans.id} already has {updated.paid_amount} paid, "
                f"more than the new total of {updated.total_amount}"
            )
        client = Client.from_document(client_doc.key, client_doc.data)
        due_change = round_money(updated.remaining_amount - trans.remaining_amount)
        try:
            total_due = round_money(client.total_due + due_change)
        except ValueError as exc:
            raise InvalidAmount(f"Client balance out of range: {exc}") from exc

        batch = self._store.batch()
        batch.update(trans_doc, updated.to_document())
        for product_id, stock in new_stock.items():
            batch.update(product_docs[product_id], {"stock": stock})
        if due_change:
            batch.update(client_doc, {"totalDue": str(total_due)})
        self._store.commit(batch)
        logger.info(
            "Edited transaction %s: total %s -> %s, remaining %s -> %s",
            trans.id, trans.total_amount, updated.total_amount,
            trans.remaining_amount, updated.remaining_amount,
        )
        return updated

    def delete_transaction(self, transaction: TransactionRef) -> Transaction:
        """Remove a transaction, returning its units to stock.

        The client's balance is reduced by the transaction's ``total_amount``
        under the default policy, or by its ``remaining_amount`` under the
        ``"remaining"`` policy. Archived transactions no longer count towards
        the balance and leave it untouched.
        """
        trans_doc = self._load(TRANSACTIONS, self._transaction_id(transaction))
        trans = Transaction.from_document(trans_doc.key, trans_doc.data)
        product_doc = self._store.get(PRODUCTS, trans.product_id)
        client_doc = self._store.get(CLIENTS, trans.client_id)

        batch = self._store.batch()
        if product_doc is not None:
            stock = int(product_doc.data.get("stock", 0)) + trans.quantity
            batch.update(product_doc, {"stock": stock})
        else:
            logger.warning("Product %s of transaction %s no longer exists", trans.product_id, trans.id)
        if client_doc is not None and trans.status != TransactionStatus.ARCHIVED:
            client = Client.from_document(client_doc.key, client_doc.data)
            if self._delete_policy == DELETE_POLICY_TOTAL:
                reduction = trans.total_amount
            else:
                reduction = trans.remaining_amount
            batch.update(client_doc, {"totalDue": str(round_money(client.total_due - reduction))})
        elif client_doc is None:
            logger.warning("Client %s of transaction %s no longer exists", trans.client_id, trans.id)
        batch.delete(trans_doc)
        self._store.commit(batch)
        logger.info("Deleted transaction %s; %d unit(s) back in stock", trans.id, trans.quantity)
        return trans

    def set_status(self, transaction: TransactionRef, status: str) -> Transaction:
        """Apply a manual status change.

        Only two manual moves exist: reopening a completed transaction
        (``completed -> active``) and archiving any transaction that is not
        archived yet. Archiving takes the remaining amount off the client's
        balance; ``archived`` is final.
        """
        if status not in TransactionStatus.ALL:
            raise ValueError(f"Unknown status: {status!r}")
        trans_doc = self._load(TRANSACTIONS, self._transaction_id(transaction))
        trans = Transaction.from_document(trans_doc.key, trans_doc.data)
        if trans.status == TransactionStatus.ARCHIVED:
            raise InvalidStatusTransition(f"Transaction {trans.id} is archived")

        batch = self._store.batch()
        if status == TransactionStatus.ARCHIVED:
            client_doc = self._load(CLIENTS, trans.client_id)
            client = Client.from_document(client_doc.key, client_doc.data)
            batch.update(
                client_doc,
                {"totalDue": str(round_money(client.total_due - trans.remaining_amount))},
            )
        elif not (status == TransactionStatus.ACTIVE and trans.status == TransactionStatus.COMPLETED):
            raise InvalidStatusTransition(f"Cannot change status from {trans.status} to {status}")

        batch.update(trans_doc, {"status": status})
        self._store.commit(batch)
        logger.info("Transaction %s: %s -> %s", trans.id, trans.status, status)
        trans.status = status
        return trans

    def refresh_overdue(self, today: Optional[date] = None) -> List[str]:
        """Mark active transactions past their due date as overdue.

        Returns the identifiers of the transactions that changed.
        """
        today = today or self._clock()
        docs = self._store.where(
            TRANSACTIONS,
            ("status", "==", TransactionStatus.ACTIVE),
            ("dueDate", "<", today),
        )
        batch = self._store.batch()
        changed: List[str] = []
        for doc in docs:
            trans = Transaction.from_document(doc.key, doc.data)
            if is_settled(trans.remaining_amount):
                continue
            batch.update(doc, {"status": TransactionStatus.OVERDUE})
            changed.append(trans.id)
        self._store.commit(batch)
        if changed:
            logger.info("Marked %d transaction(s) overdue", len(changed))
        return changed

    # ---------------------------------------------------------------- helpers

    def _load(self, collection: str, key: str) -> Document:
        doc = self._store.get(collection, key) if key else None
        if doc is None:
            raise NotFound(collection, key)
        return doc

    @staticmethod
    def _transaction_id(transaction: TransactionRef) -> str:
        return transaction.id if isinstance(transaction, Transaction) else transaction

    @staticmethod
    def _stock_level(stock: Any) -> int:
        try:
            level = to_decimal(stock)
        except ValueError as exc:
            raise InvalidAmount(f"Invalid stock level: {stock!r}") from exc
        if level != level.to_integral_value() or level < 0:
            raise InvalidAmount(f"Stock must be a non-negative whole number; got {stock}")
        return int(level)
