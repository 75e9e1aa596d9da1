from datetime import date
from decimal import Decimal

import pytest

from murabaha_ledger.data_models import Transaction, TransactionEdit, TransactionStatus
from murabaha_ledger.engine import (
    allocate_payment,
    compute_total_amount,
    order_for_allocation,
    recompute_transaction,
    resolve_status,
    stock_changes,
)
from murabaha_ledger.utils import duration_in_months, round_money


def make_transaction(tid, remaining, status, issue_date, paid="0", product_id="p1", quantity=2):
    remaining = Decimal(remaining)
    paid = Decimal(paid)
    return Transaction(
        id=tid,
        client_id="c1",
        product_id=product_id,
        product_name="Tablet",
        quantity=quantity,
        purchase_price=Decimal("100"),
        selling_price=Decimal("110"),
        total_amount=remaining + paid,
        paid_amount=paid,
        remaining_amount=remaining,
        issue_date=issue_date,
        due_date=date(2024, 12, 31),
        status=status,
    )


@pytest.mark.parametrize(
    "issue, due, months",
    [
        (date(2024, 1, 1), date(2024, 1, 1), 1),
        (date(2024, 1, 1), date(2024, 1, 31), 1),
        (date(2024, 1, 1), date(2024, 3, 1), 2),
        (date(2024, 1, 1), date(2024, 3, 2), 3),
        (date(2024, 3, 1), date(2024, 1, 1), 1),
    ],
)
def test_duration_in_months(issue, due, months):
    assert duration_in_months(issue, due) == months


def test_compute_total_amount_adds_profit_per_month():
    # 60 days -> 2 months; profit (110 - 100) * 2 units * 2 months = 40
    total = compute_total_amount(Decimal("100"), Decimal("110"), 2, date(2024, 1, 1), date(2024, 3, 1))
    assert total == Decimal("240.00")


def test_round_money_is_half_up():
    assert round_money("0.005") == Decimal("0.01")
    assert round_money(2.675) == Decimal("2.68")


def test_resolve_status():
    today = date(2024, 6, 1)
    assert resolve_status(Decimal("0.01"), date(2024, 1, 1), today) == TransactionStatus.COMPLETED
    assert resolve_status(Decimal("5"), date(2024, 5, 31), today) == TransactionStatus.OVERDUE
    assert resolve_status(Decimal("5"), today, today) == TransactionStatus.ACTIVE


def test_allocation_order_overdue_first_then_oldest():
    t1 = make_transaction("t1", "100", TransactionStatus.OVERDUE, date(2024, 1, 1))
    t2 = make_transaction("t2", "100", TransactionStatus.ACTIVE, date(2024, 2, 1))
    t3 = make_transaction("t3", "100", TransactionStatus.OVERDUE, date(2023, 12, 1))
    done = make_transaction("t4", "0", TransactionStatus.COMPLETED, date(2023, 1, 1))
    archived = make_transaction("t5", "50", TransactionStatus.ARCHIVED, date(2023, 1, 1))

    ordered = order_for_allocation([t1, t2, t3, done, archived])

    assert [t.id for t in ordered] == ["t3", "t1", "t2"]


def test_allocate_payment_example():
    t1 = make_transaction("t1", "100", TransactionStatus.OVERDUE, date(2024, 1, 1))
    t2 = make_transaction("t2", "200", TransactionStatus.ACTIVE, date(2024, 2, 1))

    allocations = allocate_payment([t2, t1], Decimal("150"))

    assert [a.transaction_id for a in allocations] == ["t1", "t2"]
    first, second = allocations
    assert first.applied == Decimal("100.00")
    assert first.remaining_after == Decimal("0.00")
    assert first.status_after == TransactionStatus.COMPLETED
    assert second.applied == Decimal("50.00")
    assert second.paid_after == Decimal("50.00")
    assert second.remaining_after == Decimal("150.00")
    assert second.status_after == TransactionStatus.ACTIVE


def test_partial_payment_keeps_overdue_status():
    t1 = make_transaction("t1", "100", TransactionStatus.OVERDUE, date(2024, 1, 1))

    (alloc,) = allocate_payment([t1], Decimal("40"))

    assert alloc.remaining_after == Decimal("60.00")
    assert alloc.status_after == TransactionStatus.OVERDUE


def test_allocation_stops_when_payment_exhausted():
    t1 = make_transaction("t1", "100", TransactionStatus.ACTIVE, date(2024, 1, 1))
    t2 = make_transaction("t2", "100", TransactionStatus.ACTIVE, date(2024, 2, 1))

    allocations = allocate_payment([t1, t2], Decimal("100"))

    assert [a.transaction_id for a in allocations] == ["t1"]


def test_recompute_carries_payments_forward():
    trans = make_transaction("t1", "140", TransactionStatus.ACTIVE, date(2024, 5, 1), paid="100")
    edit = TransactionEdit(
        product_id="p1",
        quantity=3,
        issue_date=date(2024, 5, 1),
        due_date=date(2024, 6, 30),
        purchase_price=Decimal("100"),
        selling_price=Decimal("110"),
    )

    updated = recompute_transaction(trans, edit, "Tablet", date(2024, 6, 1))

    assert updated.total_amount == Decimal("360.00")
    assert updated.paid_amount == Decimal("100")
    assert updated.remaining_amount == Decimal("260.00")
    assert updated.status == TransactionStatus.ACTIVE
    assert recompute_transaction(updated, edit, "Tablet", date(2024, 6, 1)) == updated


def test_stock_changes_same_product_moves_delta():
    trans = make_transaction("t1", "100", TransactionStatus.ACTIVE, date(2024, 1, 1), quantity=2)
    edit = TransactionEdit("p1", 5, date(2024, 1, 1), date(2024, 2, 1), Decimal("1"), Decimal("2"))
    assert stock_changes(trans, edit) == {"p1": -3}


def test_stock_changes_new_product_swaps_full_quantities():
    trans = make_transaction("t1", "100", TransactionStatus.ACTIVE, date(2024, 1, 1), quantity=2)
    edit = TransactionEdit("p2", 4, date(2024, 1, 1), date(2024, 2, 1), Decimal("1"), Decimal("2"))
    assert stock_changes(trans, edit) == {"p1": 2, "p2": -4}
