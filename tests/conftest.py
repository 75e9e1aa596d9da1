import logging
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from murabaha_ledger.data_models import (
    CLIENTS,
    PRODUCTS,
    TRANSACTIONS,
    Client,
    Product,
    Transaction,
    TransactionStatus,
)
from murabaha_ledger.ledger import Ledger
from murabaha_ledger.store import DocumentStore

TODAY = date(2024, 6, 1)


@pytest.fixture(autouse=True)
def restore_root_logging():
    """Drop handlers added by setup_logging so streams don't leak between tests."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
    root.setLevel(level)


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'ledger.sqlite3'}"


@pytest.fixture
def store(db_url):
    s = DocumentStore(db_url)
    yield s
    s.dispose()


@pytest.fixture
def ledger(store):
    return Ledger(store, clock=lambda: TODAY)


class Seeder:
    """Writes documents straight into the store to set up exact balances."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def client(self, total_due="0", name="Amina") -> Client:
        client = Client(id=uuid4().hex, name=name, phone="", total_due=Decimal(total_due))
        self._create(CLIENTS, client.id, client.to_document())
        return client

    def product(self, stock=10, purchase="100", selling="110", name="Tablet") -> Product:
        product = Product(
            id=uuid4().hex,
            name=name,
            purchase_price=Decimal(purchase),
            selling_price=Decimal(selling),
            stock=stock,
        )
        self._create(PRODUCTS, product.id, product.to_document())
        return product

    def transaction(
        self,
        client: Client,
        remaining,
        status=TransactionStatus.ACTIVE,
        issue_date=date(2024, 1, 1),
        due_date=date(2024, 12, 31),
        paid="0",
        product_id="missing-product",
        quantity=1,
    ) -> Transaction:
        remaining = Decimal(remaining)
        paid = Decimal(paid)
        trans = Transaction(
            id=uuid4().hex,
            client_id=client.id,
            product_id=product_id,
            product_name="Tablet",
            quantity=quantity,
            purchase_price=remaining + paid,
            selling_price=remaining + paid,
            total_amount=remaining + paid,
            paid_amount=paid,
            remaining_amount=remaining,
            issue_date=issue_date,
            due_date=due_date,
            status=status,
        )
        self._create(TRANSACTIONS, trans.id, trans.to_document())
        return trans

    def _create(self, collection, key, data):
        batch = self.store.batch()
        batch.create(collection, key, data)
        self.store.commit(batch)


@pytest.fixture
def seed(store):
    return Seeder(store)
