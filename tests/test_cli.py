from decimal import Decimal

import click
import pytest
from click.testing import CliRunner

from murabaha_ledger.main import cli, parse_amount


@pytest.fixture
def run(db_url):
    runner = CliRunner()

    def invoke(*args):
        return runner.invoke(cli, ["--database", db_url, "--log-level", "ERROR", *args])

    return invoke


def last_line(result):
    return result.output.strip().splitlines()[-1]


def test_parse_amount_suffixes():
    assert parse_amount("1,500.50") == Decimal("1500.50")
    assert parse_amount("15k") == Decimal("15000")
    assert parse_amount("1.2m") == Decimal("1200000.0")
    with pytest.raises(click.BadParameter):
        parse_amount("lots")


def test_sale_payment_and_statement(run):
    result = run("add-client", "Amina", "--phone", "+222 555 0101")
    assert result.exit_code == 0, result.output
    client_id = last_line(result)
    result = run("add-product", "Tablet", "--purchase-price", "100", "--selling-price", "110", "--stock", "10")
    assert result.exit_code == 0, result.output
    product_id = last_line(result)

    result = run(
        "sell", "--client", client_id, "--product", product_id, "-q", "2",
        "--issue-date", "2024-05-01", "--due-date", "2024-06-30",
    )
    assert result.exit_code == 0, result.output
    assert "Total              : 240.00" in result.output

    result = run("pay", client_id, "100")
    assert result.exit_code == 0, result.output
    assert "Balance after      : 140.00" in result.output

    result = run("statement", client_id)
    assert result.exit_code == 0, result.output
    assert "Total due          : 140.00" in result.output
    assert "Tablet" in result.output

    result = run("audit", client_id)
    assert result.exit_code == 0, result.output
    assert "Consistent" in result.output


def test_payment_errors_are_reported(run):
    client_id = last_line(run("add-client", "Amina"))

    result = run("pay", client_id, "50")
    assert result.exit_code == 1
    assert "ExceedsBalance" in result.output

    result = run("pay", "missing", "50")
    assert result.exit_code == 1
    assert "NotFound" in result.output


def test_edit_and_delete(run):
    client_id = last_line(run("add-client", "Amina"))
    product_id = last_line(
        run("add-product", "Tablet", "--purchase-price", "100", "--selling-price", "110", "--stock", "3")
    )
    result = run(
        "sell", "--client", client_id, "--product", product_id, "-q", "2",
        "--issue-date", "2024-05-01", "--due-date", "2030-06-30",
    )
    transaction_id = result.output.split("Transaction        : ")[1].split()[0]

    result = run("edit", transaction_id, "-q", "5")
    assert result.exit_code == 1
    assert "InsufficientStock" in result.output

    result = run("edit", transaction_id, "-q", "3", "--due-date", "2024-06-30")
    assert result.exit_code == 0, result.output
    assert "Total              : 360.00" in result.output

    result = run("delete", transaction_id)
    assert result.exit_code == 0, result.output
    result = run("products")
    assert "Stock              : 3" in result.output


def test_bad_date_is_rejected(run):
    result = run("refresh-overdue", "--today", "tomorrow")
    assert result.exit_code == 2
    assert "Invalid date string" in result.output


def test_transactions_listing_and_product_removal(run):
    client_id = last_line(run("add-client", "Amina"))
    product_id = last_line(
        run("add-product", "Tablet", "--purchase-price", "100", "--selling-price", "110", "--stock", "3")
    )
    result = run(
        "sell", "--client", client_id, "--product", product_id, "-q", "1",
        "--issue-date", "2024-05-01", "--due-date", "2030-06-30",
    )
    transaction_id = result.output.split("Transaction        : ")[1].split()[0]

    result = run("transactions", "--status", "active", "--from", "2024-05-01")
    assert result.exit_code == 0, result.output
    assert transaction_id[:8] in result.output
    result = run("transactions", "--to", "2024-04-30")
    assert transaction_id[:8] not in result.output

    result = run("delete-product", product_id)
    assert result.exit_code == 1
    assert "ProductInUse" in result.output

    assert run("delete", transaction_id).exit_code == 0
    result = run("delete-product", product_id)
    assert result.exit_code == 0, result.output
    assert f"Deleted product {product_id}" in result.output
