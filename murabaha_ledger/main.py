"""Command‑line interface for the ledger.

This module uses the ``click`` library to implement a multi‑command
interface over :class:`murabaha_ledger.ledger.Ledger`: registering clients and
products, recording instalment sales, taking payments, editing or deleting
transactions and inspecting a client's balance.
"""

from __future__ import annotations

import functools
from decimal import Decimal
from typing import Optional

import click

from .config import DELETE_POLICIES, load_settings
from .data_models import TransactionEdit, TransactionStatus
from .errors import LedgerError
from .formatter import (
    print_audit,
    print_payment,
    print_product,
    print_statement,
    print_transaction,
    print_transactions,
)
from .ledger import Ledger
from .logging_setup import setup_logging
from .store import DocumentStore
from .utils import parse_date, to_decimal


def parse_amount(value: str) -> Decimal:
    """Parse a numeric string with optional suffixes.

    Accepts plain numbers ("1500.50") and shorthand with ``k``/``m`` suffixes
    (e.g., "15k" meaning 15_000).
    """
    value = value.strip().lower().replace(",", "")
    factor = Decimal(1)
    if value.endswith("k"):
        factor = Decimal(1_000)
        value = value[:-1]
    elif value.endswith("m"):
        factor = Decimal(1_000_000)
        value = value[:-1]
    try:
        return to_decimal(value) * factor
    except ValueError:
        raise click.BadParameter(f"Invalid amount: {value}")


def parse_date_option(ctx, param, value):
    if value is None:
        return None
    try:
        return parse_date(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc))


def parse_amount_option(ctx, param, value):
    if value is None:
        return None
    return parse_amount(value)


def ledger_command(func):
    """Pass the ledger to a command and report ledger failures as CLI errors."""

    @functools.wraps(func)
    @click.pass_obj
    def wrapper(ledger: Ledger, *args, **kwargs):
        try:
            return func(ledger, *args, **kwargs)
        except LedgerError as exc:
            raise click.ClickException(f"{type(exc).__name__}: {exc}")
        except ValueError as exc:
            raise click.ClickException(str(exc))

    return wrapper


@click.group()
@click.option("--database", "database", help="SQLAlchemy URL of the ledger database")
@click.option("--log-level", "log_level", help="Logging level (DEBUG, INFO, WARNING, ...)")
@click.option(
    "--delete-policy",
    "delete_policy",
    type=click.Choice(DELETE_POLICIES),
    help="Amount removed from the client's balance when a transaction is deleted",
)
@click.pass_context
def cli(ctx: click.Context, database: Optional[str], log_level: Optional[str], delete_policy: Optional[str]) -> None:
    """Keep instalment sales, payments and client balances consistent."""
    settings = load_settings()
    if database:
        settings.database_url = database
    if log_level:
        settings.log_level = log_level.upper()
    if delete_policy:
        settings.delete_policy = delete_policy
    setup_logging(settings.log_level, settings.log_file)
    store = DocumentStore(settings.database_url)
    ctx.call_on_close(store.dispose)
    ctx.obj = Ledger(store, delete_policy=settings.delete_policy)


@cli.command("add-client")
@click.argument("name")
@click.option("--phone", "phone", default="", help="Client phone number")
@click.option("--referred-by", "referred_by", help="Id of the referring client")
@ledger_command
def add_client(ledger: Ledger, name: str, phone: str, referred_by: Optional[str]) -> None:
    """Register a new client with a zero balance."""
    client = ledger.add_client(name, phone, referred_by)
    click.echo(client.id)


@cli.command("add-product")
@click.argument("name")
@click.option("--purchase-price", "purchase_price", required=True, callback=parse_amount_option, help="Unit purchase price")
@click.option("--selling-price", "selling_price", required=True, callback=parse_amount_option, help="Unit selling price per month")
@click.option("--stock", "stock", type=int, default=0, show_default=True, help="Units on hand")
@ledger_command
def add_product(ledger: Ledger, name: str, purchase_price: Decimal, selling_price: Decimal, stock: int) -> None:
    """Register a new product."""
    product = ledger.add_product(name, purchase_price, selling_price, stock)
    click.echo(product.id)


@cli.command("products")
@ledger_command
def products(ledger: Ledger) -> None:
    """List all products."""
    for product in ledger.list_products():
        print_product(product)
        click.echo()


@cli.command("delete-product")
@click.argument("product_id")
@ledger_command
def delete_product(ledger: Ledger, product_id: str) -> None:
    """Remove a product no outstanding transaction refers to."""
    product = ledger.delete_product(product_id)
    click.echo(f"Deleted product {product.id}")


@cli.command("transactions")
@click.option("--status", "status", type=click.Choice(sorted(TransactionStatus.ALL)), help="Only this status")
@click.option("--from", "start", callback=parse_date_option, help="Earliest issue date (YYYY-MM-DD)")
@click.option("--to", "end", callback=parse_date_option, help="Latest issue date (YYYY-MM-DD)")
@ledger_command
def transactions(ledger: Ledger, status: Optional[str], start, end) -> None:
    """List transactions across all clients."""
    print_transactions(ledger.list_transactions(status, start, end))


@cli.command()
@click.option("--client", "client_id", required=True, help="Client id")
@click.option("--product", "product_id", required=True, help="Product id")
@click.option("--quantity", "-q", "quantity", required=True, type=int, help="Units sold")
@click.option("--issue-date", "issue_date", required=True, callback=parse_date_option, help="Issue date (YYYY-MM-DD)")
@click.option("--due-date", "due_date", required=True, callback=parse_date_option, help="Due date (YYYY-MM-DD)")
@click.option("--purchase-price", "purchase_price", callback=parse_amount_option, help="Override the product's purchase price")
@click.option("--selling-price", "selling_price", callback=parse_amount_option, help="Override the product's selling price")
@ledger_command
def sell(ledger: Ledger, client_id, product_id, quantity, issue_date, due_date, purchase_price, selling_price) -> None:
    """Record an instalment sale."""
    trans = ledger.record_sale(
        client_id, product_id, quantity, issue_date, due_date, purchase_price, selling_price
    )
    print_transaction(trans)


@cli.command()
@click.argument("client_id")
@click.argument("amount")
@ledger_command
def pay(ledger: Ledger, client_id: str, amount: str) -> None:
    """Register a payment of AMOUNT from CLIENT_ID."""
    result = ledger.register_payment(client_id, parse_amount(amount))
    print_payment(result)


@cli.command()
@click.argument("transaction_id")
@click.option("--product", "product_id", help="New product id")
@click.option("--quantity", "-q", "quantity", type=int, help="New quantity")
@click.option("--issue-date", "issue_date", callback=parse_date_option, help="New issue date (YYYY-MM-DD)")
@click.option("--due-date", "due_date", callback=parse_date_option, help="New due date (YYYY-MM-DD)")
@click.option("--purchase-price", "purchase_price", callback=parse_amount_option, help="New unit purchase price")
@click.option("--selling-price", "selling_price", callback=parse_amount_option, help="New unit selling price per month")
@ledger_command
def edit(ledger: Ledger, transaction_id, product_id, quantity, issue_date, due_date, purchase_price, selling_price) -> None:
    """Edit a transaction. Options left out keep their current value."""
    current = ledger.get_transaction(transaction_id)
    changes = TransactionEdit(
        product_id=product_id or current.product_id,
        quantity=quantity if quantity is not None else current.quantity,
        issue_date=issue_date or current.issue_date,
        due_date=due_date or current.due_date,
        purchase_price=purchase_price if purchase_price is not None else current.purchase_price,
        selling_price=selling_price if selling_price is not None else current.selling_price,
    )
    print_transaction(ledger.apply_transaction_edit(current, changes))


@cli.command()
@click.argument("transaction_id")
@ledger_command
def delete(ledger: Ledger, transaction_id: str) -> None:
    """Delete a transaction and return its units to stock."""
    trans = ledger.delete_transaction(transaction_id)
    click.echo(f"Deleted transaction {trans.id}")


@cli.command()
@click.argument("transaction_id")
@click.argument("status", type=click.Choice([TransactionStatus.ACTIVE, TransactionStatus.ARCHIVED]))
@ledger_command
def status(ledger: Ledger, transaction_id: str, status: str) -> None:
    """Reopen (active) or archive a transaction."""
    print_transaction(ledger.set_status(transaction_id, status))


@cli.command("refresh-overdue")
@click.option("--today", "today", callback=parse_date_option, help="Reference date (YYYY-MM-DD)")
@ledger_command
def refresh_overdue(ledger: Ledger, today) -> None:
    """Mark active transactions past their due date as overdue."""
    changed = ledger.refresh_overdue(today)
    click.echo(f"{len(changed)} transaction(s) marked overdue")


@cli.command()
@click.argument("client_id")
@ledger_command
def statement(ledger: Ledger, client_id: str) -> None:
    """Show a client's balance and transactions."""
    client, transactions = ledger.client_statement(client_id)
    print_statement(client, transactions)


@cli.command()
@click.argument("client_id")
@ledger_command
def audit(ledger: Ledger, client_id: str) -> None:
    """Check a client's stored balance against their transactions."""
    report = ledger.audit_client(client_id)
    print_audit(report)
    if not report["consistent"]:
        raise click.exceptions.Exit(1)


if __name__ == "__main__":
    cli()
