"""JSON web API over the ledger.

Every endpoint is a thin call into :class:`murabaha_ledger.ledger.Ledger`;
ledger failures come back as ``{"error": <class name>, "message": ...}`` with
an HTTP status chosen per failure type.
"""

import logging

from flask import Flask, jsonify, request

from murabaha_ledger.config import Settings, load_settings
from murabaha_ledger.data_models import TransactionEdit
from murabaha_ledger.errors import (
    ExceedsBalance,
    InsufficientStock,
    InvalidAmount,
    InvalidStatusTransition,
    LedgerError,
    NotFound,
    ProductInUse,
    StoreCommitFailure,
    StoreConflict,
)
from murabaha_ledger.ledger import Ledger
from murabaha_ledger.logging_setup import setup_logging
from murabaha_ledger.store import DocumentStore
from murabaha_ledger.utils import parse_date

logger = logging.getLogger(__name__)

# most specific first
ERROR_STATUS = [
    (InvalidAmount, 400),
    (NotFound, 404),
    (ExceedsBalance, 422),
    (InsufficientStock, 409),
    (InvalidStatusTransition, 409),
    (ProductInUse, 409),
    (StoreConflict, 409),
    (StoreCommitFailure, 503),
]


def _client_json(client):
    return {
        "id": client.id,
        "name": client.name,
        "phone": client.phone,
        "totalDue": client.total_due,
        "referredBy": client.referred_by,
    }


def _product_json(product):
    return {"id": product.id, **product.to_document()}


def _transaction_json(trans):
    return {"id": trans.id, **trans.to_document()}


def _payment_json(result):
    return {
        "clientId": result.client_id,
        "amount": result.amount,
        "appliedTotal": result.applied_total,
        "totalDueAfter": result.total_due_after,
        "allocations": [
            {
                "transactionId": a.transaction_id,
                "applied": a.applied,
                "paidAmount": a.paid_after,
                "remainingAmount": a.remaining_after,
                "status": a.status_after,
            }
            for a in result.allocations
        ],
    }


def _form():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    return data


def _required(data, name):
    value = data.get(name)
    if value is None or value == "":
        raise ValueError(f"Missing field: {name}")
    return value


def create_app(settings: Settings = None, ledger: Ledger = None) -> Flask:
    settings = settings or load_settings()
    setup_logging(settings.log_level, settings.log_file)
    if ledger is None:
        ledger = Ledger(DocumentStore(settings.database_url), delete_policy=settings.delete_policy)

    app = Flask(__name__)
    app.extensions["ledger"] = ledger

    @app.errorhandler(LedgerError)
    def handle_ledger_error(exc):
        status = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 500)
        if status >= 500:
            logger.error("Ledger failure: %s", exc)
        return jsonify(error=type(exc).__name__, message=str(exc)), status

    @app.errorhandler(ValueError)
    def handle_value_error(exc):
        return jsonify(error="ValidationError", message=str(exc)), 400

    @app.get("/clients")
    def list_clients():
        return jsonify([_client_json(c) for c in ledger.list_clients()])

    @app.post("/clients")
    def add_client():
        data = _form()
        client = ledger.add_client(_required(data, "name"), data.get("phone", ""), data.get("referredBy"))
        return jsonify(_client_json(client)), 201

    @app.get("/clients/<client_id>")
    def client_statement(client_id):
        client, transactions = ledger.client_statement(client_id)
        payload = _client_json(client)
        payload["transactions"] = [_transaction_json(t) for t in transactions]
        return jsonify(payload)

    @app.get("/clients/<client_id>/audit")
    def audit_client(client_id):
        report = ledger.audit_client(client_id)
        return jsonify(
            clientId=report["client_id"],
            totalDue=report["total_due"],
            computedDue=report["computed_due"],
            difference=report["difference"],
            consistent=report["consistent"],
        )

    @app.post("/clients/<client_id>/payments")
    def register_payment(client_id):
        data = _form()
        result = ledger.register_payment(client_id, _required(data, "amount"))
        return jsonify(_payment_json(result)), 201

    @app.get("/products")
    def list_products():
        return jsonify([_product_json(p) for p in ledger.list_products()])

    @app.post("/products")
    def add_product():
        data = _form()
        product = ledger.add_product(
            _required(data, "name"),
            _required(data, "purchasePrice"),
            _required(data, "sellingPrice"),
            data.get("stock", 0),
        )
        return jsonify(_product_json(product)), 201

    @app.patch("/products/<product_id>")
    def update_product(product_id):
        data = _form()
        product = ledger.update_product(
            product_id,
            name=data.get("name"),
            purchase_price=data.get("purchasePrice"),
            selling_price=data.get("sellingPrice"),
            stock=data.get("stock"),
        )
        return jsonify(_product_json(product))

    @app.delete("/products/<product_id>")
    def delete_product(product_id):
        return jsonify(_product_json(ledger.delete_product(product_id)))

    @app.get("/transactions")
    def list_transactions():
        args = request.args
        transactions = ledger.list_transactions(
            status=args.get("status") or None,
            start=parse_date(args["from"]) if args.get("from") else None,
            end=parse_date(args["to"]) if args.get("to") else None,
        )
        return jsonify([_transaction_json(t) for t in transactions])

    @app.post("/transactions")
    def record_sale():
        data = _form()
        trans = ledger.record_sale(
            _required(data, "clientId"),
            _required(data, "productId"),
            _required(data, "quantity"),
            parse_date(_required(data, "issueDate")),
            parse_date(_required(data, "dueDate")),
            data.get("purchasePrice"),
            data.get("sellingPrice"),
        )
        return jsonify(_transaction_json(trans)), 201

    @app.get("/transactions/<transaction_id>")
    def get_transaction(transaction_id):
        return jsonify(_transaction_json(ledger.get_transaction(transaction_id)))

    @app.put("/transactions/<transaction_id>")
    def edit_transaction(transaction_id):
        data = _form()
        changes = TransactionEdit(
            product_id=_required(data, "productId"),
            quantity=_required(data, "quantity"),
            issue_date=parse_date(_required(data, "issueDate")),
            due_date=parse_date(_required(data, "dueDate")),
            purchase_price=_required(data, "purchasePrice"),
            selling_price=_required(data, "sellingPrice"),
        )
        trans = ledger.apply_transaction_edit(transaction_id, changes)
        return jsonify(_transaction_json(trans))

    @app.delete("/transactions/<transaction_id>")
    def delete_transaction(transaction_id):
        trans = ledger.delete_transaction(transaction_id)
        return jsonify(_transaction_json(trans))

    @app.post("/transactions/<transaction_id>/status")
    def set_status(transaction_id):
        data = _form()
        trans = ledger.set_status(transaction_id, _required(data, "status"))
        return jsonify(_transaction_json(trans))

    @app.post("/transactions/refresh-overdue")
    def refresh_overdue():
        data = request.get_json(silent=True) or {}
        today = parse_date(data["today"]) if data.get("today") else None
        return jsonify(changed=ledger.refresh_overdue(today))

    return app


if __name__ == "__main__":
    print("Starting ledger web app...")
    create_app().run(host="0.0.0.0", port=8710, debug=True)
