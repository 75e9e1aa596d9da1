"""Core calculation engine for the ledger.

This module implements the balance arithmetic without touching storage:
pricing an instalment sale over its billed months, deciding a transaction's
status, ordering outstanding transactions for payment allocation and
distributing a payment across them. :mod:`murabaha_ledger.ledger` wraps these
functions with document reads, validation and atomic batch writes.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List

from .data_models import Allocation, Transaction, TransactionEdit, TransactionStatus
from .utils import ZERO, duration_in_months, is_settled, round_money


def compute_total_amount(
    purchase_price: Decimal,
    selling_price: Decimal,
    quantity: int,
    issue_date: date,
    due_date: date,
) -> Decimal:
    """Return the amount owed for an instalment sale.

    The formula is:

        profit = (selling_price - purchase_price) * quantity * months
        total  = purchase_price * quantity + profit

    where ``months`` is the billed duration, ``max(1, ceil(days / 30))``.
    """
    months = duration_in_months(issue_date, due_date)
    profit = (selling_price - purchase_price) * quantity * months
    return round_money(purchase_price * quantity + profit)


def resolve_status(remaining: Decimal, due_date: date, today: date) -> str:
    """Status implied by a balance and a due date."""
    if is_settled(remaining):
        return TransactionStatus.COMPLETED
    if due_date < today:
        return TransactionStatus.OVERDUE
    return TransactionStatus.ACTIVE


def order_for_allocation(transactions: Iterable[Transaction]) -> List[Transaction]:
    """Return outstanding transactions in the order payments settle them.

    Overdue transactions come first; within each group the oldest issue date
    wins. The identifier breaks remaining ties so the order is deterministic.
    """
    outstanding = [t for t in transactions if t.status in TransactionStatus.OUTSTANDING]
    return sorted(
        outstanding,
        key=lambda t: (t.status != TransactionStatus.OVERDUE, t.issue_date, t.id),
    )


def allocate_payment(transactions: Iterable[Transaction], amount: Decimal) -> List[Allocation]:
    """Distribute ``amount`` across ``transactions``.

    Each transaction absorbs at most its own remaining amount. A transaction
    whose balance drops to zero (within tolerance) becomes ``completed``;
    otherwise its status is left as it was, so a partial payment never turns
    an overdue transaction back into an active one.
    """
    unallocated = round_money(amount)
    allocations: List[Allocation] = []
    for trans in order_for_allocation(transactions):
        if unallocated <= ZERO:
            break
        applied = min(unallocated, trans.remaining_amount)
        if applied <= ZERO:
            continue
        paid = round_money(trans.paid_amount + applied)
        remaining = max(ZERO, round_money(trans.remaining_amount - applied))
        status = TransactionStatus.COMPLETED if is_settled(remaining) else trans.status
        allocations.append(
            Allocation(
                transaction_id=trans.id,
                applied=round_money(applied),
                paid_after=paid,
                remaining_after=remaining,
                status_after=status,
            )
        )
        unallocated = round_money(unallocated - applied)
    return allocations


def recompute_transaction(
    trans: Transaction, edit: TransactionEdit, product_name: str, today: date
) -> Transaction:
    """Return ``trans`` with every derived field recomputed from ``edit``.

    Prior payments carry forward against the new total instead of being
    reset. The computation is a full replacement, so applying the same edit
    twice yields the same transaction.
    """
    total = compute_total_amount(
        edit.purchase_price, edit.selling_price, edit.quantity, edit.issue_date, edit.due_date
    )
    remaining = max(ZERO, round_money(total - trans.paid_amount))
    return replace(
        trans,
        product_id=edit.product_id,
        product_name=product_name,
        quantity=edit.quantity,
        purchase_price=edit.purchase_price,
        selling_price=edit.selling_price,
        total_amount=total,
        remaining_amount=remaining,
        issue_date=edit.issue_date,
        due_date=edit.due_date,
        status=resolve_status(remaining, edit.due_date, today),
    )


def stock_changes(trans: Transaction, edit: TransactionEdit) -> Dict[str, int]:
    """Map product id to the change in stock an edit implies.

    Negative values take units out of stock. For the same product only the
    quantity delta moves; when the product changes the old product gets its
    full quantity back and the new one gives up the new quantity.
    """
    if edit.product_id == trans.product_id:
        return {trans.product_id: trans.quantity - edit.quantity}
    return {trans.product_id: trans.quantity, edit.product_id: -edit.quantity}
