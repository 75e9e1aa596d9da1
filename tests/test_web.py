from datetime import date

import pytest

from ledger_web.app import create_app
from murabaha_ledger.config import Settings
from murabaha_ledger.ledger import Ledger


@pytest.fixture
def client(store):
    ledger = Ledger(store, clock=lambda: date(2024, 6, 1))
    app = create_app(Settings(database_url="sqlite://", log_level="WARNING"), ledger=ledger)
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture
def sale(client):
    client_id = client.post("/clients", json={"name": "Amina", "phone": "+222 555 0101"}).get_json()["id"]
    product_id = client.post(
        "/products", json={"name": "Tablet", "purchasePrice": "100", "sellingPrice": "110", "stock": 10}
    ).get_json()["id"]
    resp = client.post(
        "/transactions",
        json={
            "clientId": client_id,
            "productId": product_id,
            "quantity": 2,
            "issueDate": "2024-05-01",
            "dueDate": "2024-06-30",
        },
    )
    assert resp.status_code == 201
    return client_id, product_id, resp.get_json()["id"]


def test_sale_and_payment(client, sale):
    client_id, _, transaction_id = sale

    resp = client.post(f"/clients/{client_id}/payments", json={"amount": 100})
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["totalDueAfter"] == "140.00"
    assert body["allocations"][0]["transactionId"] == transaction_id

    statement = client.get(f"/clients/{client_id}").get_json()
    assert statement["totalDue"] == "140.00"
    assert statement["transactions"][0]["remainingAmount"] == "140.00"
    assert client.get(f"/clients/{client_id}/audit").get_json()["consistent"] is True


@pytest.mark.parametrize(
    "amount, status, error",
    [("0", 400, "InvalidAmount"), ("1e30", 400, "InvalidAmount"), ("1000", 422, "ExceedsBalance")],
)
def test_payment_errors(client, sale, amount, status, error):
    client_id, _, _ = sale
    resp = client.post(f"/clients/{client_id}/payments", json={"amount": amount})
    assert resp.status_code == status
    assert resp.get_json()["error"] == error


def test_unknown_client_is_404(client):
    resp = client.get("/clients/missing")
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "NotFound"


def test_missing_field_is_400(client):
    resp = client.post("/clients", json={"phone": "1"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "ValidationError"


def test_edit_insufficient_stock_is_409(client, sale):
    client_id, product_id, transaction_id = sale
    payload = {
        "productId": product_id,
        "quantity": 20,
        "issueDate": "2024-05-01",
        "dueDate": "2024-06-30",
        "purchasePrice": "100",
        "sellingPrice": "110",
    }
    resp = client.put(f"/transactions/{transaction_id}", json=payload)
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "InsufficientStock"

    payload["quantity"] = 3
    resp = client.put(f"/transactions/{transaction_id}", json=payload)
    assert resp.status_code == 200
    assert resp.get_json()["totalAmount"] == "360.00"


def test_archive_and_delete(client, sale):
    client_id, product_id, transaction_id = sale

    resp = client.post(f"/transactions/{transaction_id}/status", json={"status": "archived"})
    assert resp.status_code == 200
    assert client.get(f"/clients/{client_id}").get_json()["totalDue"] == "0.00"

    resp = client.post(f"/transactions/{transaction_id}/status", json={"status": "active"})
    assert resp.status_code == 409

    assert client.delete(f"/transactions/{transaction_id}").status_code == 200
    products = client.get("/products").get_json()
    assert products[0]["stock"] == 10


def test_refresh_overdue(client, sale):
    _, _, transaction_id = sale
    resp = client.post("/transactions/refresh-overdue", json={"today": "2024-07-01"})
    assert resp.get_json()["changed"] == [transaction_id]


def test_out_of_range_product_price_is_400(client):
    resp = client.post(
        "/products", json={"name": "Tablet", "purchasePrice": "1e30", "sellingPrice": "1e31", "stock": 1}
    )
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "InvalidAmount"
    assert client.get("/products").get_json() == []


def test_list_transactions_filters(client, sale):
    _, _, transaction_id = sale

    assert [t["id"] for t in client.get("/transactions").get_json()] == [transaction_id]
    assert client.get("/transactions?status=active&from=2024-05-01&to=2024-05-01").get_json()[0]["id"] == transaction_id
    assert client.get("/transactions?status=completed").get_json() == []
    assert client.get("/transactions?from=2024-05-02").get_json() == []

    resp = client.get("/transactions?status=paused")
    assert resp.status_code == 400


def test_delete_product(client, sale):
    client_id, product_id, _ = sale

    resp = client.delete(f"/products/{product_id}")
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "ProductInUse"

    client.post(f"/clients/{client_id}/payments", json={"amount": "240"})
    resp = client.delete(f"/products/{product_id}")
    assert resp.status_code == 200
    assert client.get("/products").get_json() == []
    assert client.delete(f"/products/{product_id}").status_code == 404
