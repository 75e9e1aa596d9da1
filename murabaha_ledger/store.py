"""Document store backing the ledger.

This module abstracts persistence as a small document database: JSON
documents addressed by ``(collection, key)``, point lookups, filtered scans
and an all-or-nothing batch write. It defaults to SQLite for local
development, but accepts any SQLAlchemy-compatible URL (e.g.
PostgreSQL/MySQL).

Every document carries a version number. Updates and deletes in a batch are
written with ``WHERE version = <version the caller read>``, so a batch built
from stale reads fails as a whole with :class:`StoreConflict` instead of
silently overwriting a concurrent change.
"""

from __future__ import annotations

import json
import logging
import operator
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import Column, DateTime, Integer, String, Text, create_engine, delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from .errors import StoreCommitFailure, StoreConflict
from .utils import to_decimal

logger = logging.getLogger(__name__)

Base = declarative_base()

Condition = Tuple[str, str, Any]

_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda field_value, options: field_value in options,
}


class DocumentModel(Base):
    __tablename__ = "documents"

    collection = Column(String(64), primary_key=True)
    key = Column(String(64), primary_key=True)
    data_json = Column(Text, nullable=False)
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)


@dataclass(frozen=True)
class Document:
    """A snapshot of a stored document as of ``version``."""

    collection: str
    key: str
    data: Dict[str, Any]
    version: int


@dataclass
class _Operation:
    kind: str  # "create", "update" or "delete"
    collection: str
    key: str
    data: Optional[Dict[str, Any]]
    expected_version: Optional[int]


class WriteBatch:
    """Collects writes to be committed together.

    Updates take the :class:`Document` snapshot they modify; the snapshot's
    version becomes the commit precondition. Several updates to the same
    document are merged into one write.
    """

    def __init__(self) -> None:
        self._operations: List[_Operation] = []
        self._index: Dict[Tuple[str, str], _Operation] = {}

    def create(self, collection: str, key: str, data: Dict[str, Any]) -> None:
        self._add(_Operation("create", collection, key, dict(data), None))

    def update(self, document: Document, fields: Dict[str, Any]) -> None:
        queued = self._index.get((document.collection, document.key))
        if queued is not None and queued.kind == "update":
            queued.data.update(fields)
            return
        merged = {**document.data, **fields}
        self._add(_Operation("update", document.collection, document.key, merged, document.version))

    def delete(self, document: Document) -> None:
        self._add(_Operation("delete", document.collection, document.key, None, document.version))

    def _add(self, op: _Operation) -> None:
        ident = (op.collection, op.key)
        if ident in self._index:
            raise ValueError(f"{op.collection}/{op.key} is already part of this batch")
        self._index[ident] = op
        self._operations.append(op)

    @property
    def operations(self) -> List[_Operation]:
        return list(self._operations)

    def __len__(self) -> int:
        return len(self._operations)


class DocumentStore:
    """Database-backed document store."""

    def __init__(self, url: str, *, echo: bool = False) -> None:
        self._engine = create_engine(url, echo=echo, future=True)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)

    def get(self, collection: str, key: str) -> Optional[Document]:
        with self._session_factory() as session:
            row = session.get(DocumentModel, (collection, key))
            return self._to_document(row) if row is not None else None

    def where(self, collection: str, *conditions: Condition) -> List[Document]:
        """Return the documents of ``collection`` matching every condition.

        Conditions are ``(field, op, value)`` tuples with ``op`` one of
        ``==``, ``!=``, ``<``, ``<=``, ``>``, ``>=`` or ``in``. Dates compare
        by their ISO form and ``Decimal`` values compare numerically.
        """
        for _, op, _ in conditions:
            if op not in _OPERATORS:
                raise ValueError(f"Unsupported operator: {op}")
        with self._session_factory() as session:
            rows: Iterable[DocumentModel] = session.execute(
                select(DocumentModel)
                .where(DocumentModel.collection == collection)
                .order_by(DocumentModel.key.asc())
            ).scalars()
            documents = [self._to_document(row) for row in rows]
        return [doc for doc in documents if all(_matches(doc.data, c) for c in conditions)]

    def batch(self) -> WriteBatch:
        return WriteBatch()

    def commit(self, batch: WriteBatch) -> None:
        """Apply every operation of ``batch`` in one database transaction."""
        if not len(batch):
            return
        now = datetime.utcnow()
        with self._session_factory() as session:
            try:
                for op in batch.operations:
                    self._apply(session, op, now)
                session.commit()
            except StoreConflict:
                session.rollback()
                logger.warning("Batch of %d write(s) rejected: stale read", len(batch))
                raise
            except IntegrityError as exc:
                session.rollback()
                raise StoreConflict(f"Document already exists: {exc.orig}") from exc
            except SQLAlchemyError as exc:
                session.rollback()
                logger.error("Batch commit failed: %s", exc)
                raise StoreCommitFailure(str(exc)) from exc
        logger.debug("Committed batch of %d write(s)", len(batch))

    def dispose(self) -> None:
        self._engine.dispose()

    @staticmethod
    def _apply(session, op: _Operation, now: datetime) -> None:
        if op.kind == "create":
            session.add(
                DocumentModel(
                    collection=op.collection,
                    key=op.key,
                    data_json=json.dumps(op.data, sort_keys=True),
                    version=1,
                    updated_at=now,
                )
            )
            session.flush()
            return
        match = (
            (DocumentModel.collection == op.collection)
            & (DocumentModel.key == op.key)
            & (DocumentModel.version == op.expected_version)
        )
        if op.kind == "update":
            statement = (
                update(DocumentModel)
                .where(match)
                .values(
                    data_json=json.dumps(op.data, sort_keys=True),
                    version=op.expected_version + 1,
                    updated_at=now,
                )
            )
        else:
            statement = delete(DocumentModel).where(match)
        result = session.execute(statement.execution_options(synchronize_session=False))
        if result.rowcount != 1:
            raise StoreConflict(
                f"{op.collection}/{op.key} changed since version {op.expected_version}"
            )

    @staticmethod
    def _to_document(row: DocumentModel) -> Document:
        return Document(
            collection=row.collection,
            key=row.key,
            data=json.loads(row.data_json),
            version=row.version,
        )


def _normalize(value: Any) -> Any:
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_normalize(v) for v in value]
    return value


def _matches(data: Dict[str, Any], condition: Condition) -> bool:
    field, op, value = condition
    if field not in data:
        return False
    field_value = data[field]
    value = _normalize(value)
    if isinstance(value, Decimal):
        try:
            field_value = to_decimal(field_value)
        except ValueError:
            return False
    return _OPERATORS[op](field_value, value)
