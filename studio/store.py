"""
Document store adapter.

Exposes get / query / add / set / update / delete over named collections
and an all-or-nothing multi-document transaction. Backed by the
StoreDocument model; Django database errors never leave this module raw.
"""

import logging
import operator
import uuid
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from django.db import DatabaseError, IntegrityError, OperationalError, transaction

from . import errors
from .conf import studio_setting
from .models import StoreDocument


logger = logging.getLogger(__name__)

COURSES = 'courses'
SCHEDULES = 'schedules'
BOOKINGS = 'bookings'
USERS = 'users'
CART = 'cart'

COLLECTIONS = (COURSES, SCHEDULES, BOOKINGS, USERS, CART)

OPERATORS = {
    '==': operator.eq,
    '!=': operator.ne,
    '<': operator.lt,
    '<=': operator.le,
    '>': operator.gt,
    '>=': operator.ge,
    'in': lambda actual, expected: actual in expected,
}

Predicate = Tuple[str, str, Any]
Ordering = Tuple[str, str]
Row = Tuple[str, Dict[str, Any]]


def new_document_id() -> str:
    """Generate an id for a new document."""
    return uuid.uuid4().hex


@contextmanager
def translate_database_errors(action: str):
    """Re-raise Django database errors as studio errors."""
    try:
        yield
    except OperationalError as exc:
        raise errors.TransientStoreError(f"{action} failed: {exc}") from exc
    except IntegrityError as exc:
        raise errors.UnknownError(f"{action} failed: {exc}", code='already-exists') from exc
    except DatabaseError as exc:
        raise errors.UnknownError(f"{action} failed: {exc}") from exc


class Transaction:
    """
    Handle passed to a transaction function.

    Reads lock the rows they touch. Writes are buffered and applied in
    order when the transaction commits, so every read has to happen before
    the first write.
    """

    def __init__(self, store: 'DocumentStore'):
        self._store = store
        self._writes: List[Tuple[str, str, str, Optional[Dict[str, Any]]]] = []

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Read a document, or None when it does not exist."""
        if self._writes:
            raise errors.UnknownError(
                "Transactions require all reads to be executed before all writes"
            )
        document = (
            StoreDocument.objects.using(self._store.using)
            .select_for_update()
            .by_id(collection, doc_id)
            .first()
        )
        return dict(document.data) if document else None

    def create(self, collection: str, data: Dict[str, Any]) -> str:
        """Queue the creation of a new document and return its id."""
        doc_id = new_document_id()
        self._writes.append(('set', collection, doc_id, dict(data)))
        return doc_id

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._writes.append(('set', collection, doc_id, dict(data)))

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        self._writes.append(('update', collection, doc_id, dict(fields)))

    def delete(self, collection: str, doc_id: str) -> None:
        self._writes.append(('delete', collection, doc_id, None))

    @property
    def pending_writes(self) -> int:
        return len(self._writes)

    def commit(self) -> None:
        """Apply the buffered writes. Called inside the atomic block."""
        for kind, collection, doc_id, payload in self._writes:
            self._store._apply_write(kind, collection, doc_id, payload)
        self._writes = []


class DocumentStore:
    """
    Typed access to the document collections.

    Args:
        using: Django database alias
    """

    def __init__(self, using: str = 'default'):
        self.using = using

    def _documents(self):
        return StoreDocument.objects.using(self.using)

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Return a document's data, or None when it does not exist."""
        with translate_database_errors(f"Reading {collection}/{doc_id}"):
            document = self._documents().by_id(collection, doc_id).first()
        return dict(document.data) if document else None

    def query(
        self,
        collection: str,
        where: Iterable[Predicate] = (),
        order_by: Iterable[Ordering] = ()
    ) -> List[Row]:
        """
        Return (id, data) rows of a collection matching every predicate.

        Args:
            collection: collection name
            where: (field, op, value) predicates; op is one of OPERATORS
            order_by: (field, 'asc' | 'desc') pairs, most significant first

        Raises:
            ValueError: If a predicate uses an unknown operator
        """
        where = list(where)
        for field, op, _ in where:
            if op not in OPERATORS:
                raise ValueError(f"Unsupported operator {op!r} for field {field!r}")

        equality = {field: value for field, op, value in where if op == '=='}
        remaining = [predicate for predicate in where if predicate[1] != '==']

        with translate_database_errors(f"Querying {collection}"):
            documents = list(
                self._documents().in_collection(collection).matching(**equality)
            )

        rows = [
            (document.doc_id, dict(document.data))
            for document in documents
            if all(_matches(document.data, *predicate) for predicate in remaining)
        ]
        return _sort_rows(rows, list(order_by))

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        """Insert a document under a generated id and return the id."""
        doc_id = new_document_id()
        with translate_database_errors(f"Adding to {collection}"):
            self._apply_write('set', collection, doc_id, dict(data))
        return doc_id

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Create or replace a document."""
        with translate_database_errors(f"Writing {collection}/{doc_id}"):
            self._apply_write('set', collection, doc_id, dict(data))

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        """
        Merge fields into an existing document.

        Raises:
            NotFound: If the document does not exist
        """
        with translate_database_errors(f"Updating {collection}/{doc_id}"):
            self._apply_write('update', collection, doc_id, dict(fields))

    def delete(self, collection: str, doc_id: str) -> bool:
        """Delete a document. Returns False when it did not exist."""
        with translate_database_errors(f"Deleting {collection}/{doc_id}"):
            deleted, _ = self._documents().by_id(collection, doc_id).delete()
        return deleted > 0

    def run_transaction(
        self,
        fn: Callable[[Transaction], Any],
        max_attempts: Optional[int] = None
    ) -> Any:
        """
        Run ``fn(tx)`` atomically and return its result.

        Operational database errors (locks, contention, lost connections)
        are retried; every attempt starts from a clean snapshot. Any other
        exception raised by ``fn`` or by the commit rolls the whole
        transaction back and propagates.

        Raises:
            TransientStoreError: If every attempt failed with an operational error
        """
        attempts = max_attempts or studio_setting('TRANSACTION_MAX_ATTEMPTS')
        last_error = None

        for attempt in range(1, attempts + 1):
            try:
                with transaction.atomic(using=self.using):
                    tx = Transaction(self)
                    result = fn(tx)
                    tx.commit()
                return result
            except OperationalError as exc:
                last_error = exc
                logger.warning(
                    "Transaction attempt %d/%d failed: %s", attempt, attempts, exc
                )
            except IntegrityError as exc:
                raise errors.UnknownError(
                    f"Transaction failed: {exc}", code='already-exists'
                ) from exc
            except DatabaseError as exc:
                raise errors.UnknownError(f"Transaction failed: {exc}") from exc

        raise errors.TransientStoreError(
            f"Transaction failed after {attempts} attempts"
        ) from last_error

    def _apply_write(
        self,
        kind: str,
        collection: str,
        doc_id: str,
        payload: Optional[Dict[str, Any]]
    ) -> None:
        """Apply a single write to the database."""
        documents = self._documents()

        if kind == 'set':
            documents.update_or_create(
                collection=collection,
                doc_id=doc_id,
                defaults={'data': payload}
            )
        elif kind == 'update':
            document = documents.by_id(collection, doc_id).first()
            if document is None:
                raise errors.NotFound(f"No document to update: {collection}/{doc_id}")
            document.data = {**document.data, **payload}
            document.save(update_fields=['data', 'updated_at'])
        elif kind == 'delete':
            documents.by_id(collection, doc_id).delete()
        else:
            raise ValueError(f"Unknown write kind: {kind}")


def _matches(data: Dict[str, Any], field: str, op: str, value: Any) -> bool:
    """Evaluate a non-equality predicate against document data."""
    actual = data.get(field)
    if actual is None and op != '!=':
        return False
    try:
        return OPERATORS[op](actual, value)
    except TypeError:
        return False


def _sort_rows(rows: List[Row], order_by: List[Ordering]) -> List[Row]:
    """Stable multi-key sort; missing values sort last."""
    for field, direction in reversed(order_by):
        descending = direction == 'desc'
        rows.sort(
            key=lambda row: _sort_key(row[1].get(field), descending),
            reverse=descending
        )
    return rows


def _sort_key(value: Any, descending: bool) -> Tuple[bool, Any]:
    present = value is not None
    return (present if descending else not present, value if present else 0)
