"""Output helpers for the ledger CLI.

This module provides simple functions to render client statements, payment
allocations and balance audits in a tabular text format.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable

from .data_models import Client, PaymentResult, Product, Transaction


def print_statement(client: Client, transactions: Iterable[Transaction]) -> None:
    """Print a client's balance followed by all of their transactions."""
    print(f"Client             : {client.name} ({client.id})")
    if client.phone:
        print(f"Phone              : {client.phone}")
    print(f"Total due          : {client.total_due:.2f}")
    print("-" * 72)
    print_transactions(transactions)


def print_transactions(transactions: Iterable[Transaction]) -> None:
    headers = ["Id", "Product", "Qty", "Issued", "Due", "Total", "Paid", "Remaining", "Status"]
    print("\t".join(headers))
    for t in transactions:
        row = [
            t.id[:8],
            t.product_name,
            str(t.quantity),
            t.issue_date.isoformat(),
            t.due_date.isoformat(),
            f"{t.total_amount:.2f}",
            f"{t.paid_amount:.2f}",
            f"{t.remaining_amount:.2f}",
            t.status,
        ]
        print("\t".join(row))


def print_transaction(t: Transaction) -> None:
    print(f"Transaction        : {t.id}")
    print(f"Product            : {t.product_name} x {t.quantity}")
    print(f"Period             : {t.issue_date.isoformat()} - {t.due_date.isoformat()}")
    print(f"Total              : {t.total_amount:.2f}")
    print(f"Paid               : {t.paid_amount:.2f}")
    print(f"Remaining          : {t.remaining_amount:.2f}")
    print(f"Status             : {t.status}")


def print_product(p: Product) -> None:
    print(f"Product            : {p.name} ({p.id})")
    print(f"Purchase price     : {p.purchase_price:.2f}")
    print(f"Selling price      : {p.selling_price:.2f}")
    print(f"Stock              : {p.stock}")


def print_payment(result: PaymentResult) -> None:
    """Print how a payment was spread across transactions."""
    print("Payment")
    print("-" * 72)
    print(f"Amount             : {result.amount:.2f}")
    print(f"Applied            : {result.applied_total:.2f}")
    print(f"Balance after      : {result.total_due_after:.2f}")
    print("-" * 72)
    print("\t".join(["Id", "Applied", "Paid", "Remaining", "Status"]))
    for a in result.allocations:
        print(
            "\t".join(
                [
                    a.transaction_id[:8],
                    f"{a.applied:.2f}",
                    f"{a.paid_after:.2f}",
                    f"{a.remaining_after:.2f}",
                    a.status_after,
                ]
            )
        )


def print_audit(report: Dict[str, Any]) -> None:
    print(f"Stored total due   : {report['total_due']:.2f}")
    print(f"Computed total due : {report['computed_due']:.2f}")
    print(f"Difference         : {report['difference']:.2f}")
    print("Consistent" if report["consistent"] else "INCONSISTENT")
