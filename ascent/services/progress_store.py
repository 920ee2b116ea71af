"""
ascent.services.progress_store — Progress Store Collaborator
=============================================================

The document store holding one progression record per user.  The engine
only ever talks to it through :class:`ProgressStore`; two implementations
ship here:

* :class:`SqlProgressStore` — SQLAlchemy, one ``user_progress`` row per
  user.  Production backend (PostgreSQL), SQLite in tests.
* :class:`MemoryProgressStore` — process-local dicts, for tests and local
  development.

Semantics shared by both:

* non-array fields are last-write-wins;
* array fields hold JSON objects unique by ``id`` (``category`` for stats)
  and use union-append semantics;
* ``atomic_increment`` / ``atomic_max`` commute under any interleaving;
* ``array_move`` is the one-way active → completed transition; it reports
  whether *this* call performed it, so a reward guarded by it is granted
  once;
* ``array_append`` and ``array_move`` take an ``experience`` bonus that is
  added in the same transaction as the guarded write, so an unlock or a
  completion never commits without the experience it earns.

All methods are synchronous; the engine calls them through
:func:`~ascent.database.engine.run_db`.
"""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any, Protocol

from sqlalchemy import Engine, select, update
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session

from ascent.database.engine import get_session
from ascent.database.models import (
    ARRAY_FIELDS,
    COUNTER_FIELDS,
    DOCUMENT_FIELDS,
    UserProgressRow,
)
from ascent.engine.events import parse_timestamp

logger = logging.getLogger(__name__)

__all__ = [
    "MemoryProgressStore",
    "ProgressNotFoundError",
    "ProgressStore",
    "SqlProgressStore",
    "StoreUnavailableError",
]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------
class StoreUnavailableError(RuntimeError):
    """The store could not be reached (connectivity, timeout).

    Always safe to retry: every engine operation is an atomic increment or
    idempotent against the persisted state.
    """

    retryable = True


class ProgressNotFoundError(LookupError):
    """A field operation targeted a user with no progression record."""


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------
class ProgressStore(Protocol):
    def get(self, user_id: str) -> dict[str, Any] | None: ...

    def create(self, user_id: str, document: Mapping[str, Any]) -> bool: ...

    def set(self, user_id: str, document: Mapping[str, Any], *, merge: bool = False) -> None: ...

    def update(
        self,
        user_id: str,
        fields: Mapping[str, Any],
        *,
        if_match: Mapping[str, Any] | None = None,
    ) -> bool: ...

    def array_append(
        self, user_id: str, field: str, value: Mapping[str, Any], *, experience: int = 0
    ) -> bool: ...
    def array_replace(self, user_id: str, field: str, value: Mapping[str, Any]) -> bool: ...

    def array_move(
        self,
        user_id: str,
        source: str,
        target: str,
        value: Mapping[str, Any],
        *,
        experience: int = 0,
    ) -> bool: ...

    def atomic_increment(self, user_id: str, field: str, amount: int) -> int: ...

    def atomic_max(self, user_id: str, field: str, value: int) -> int: ...


# ---------------------------------------------------------------------------
# Shared document helpers
# ---------------------------------------------------------------------------
def blank_document(user_id: str) -> dict[str, Any]:
    doc: dict[str, Any] = {
        "user_id": user_id,
        "level": 1,
        "experience": 0,
        "streak": 0,
        "last_active": None,
    }
    for name in ARRAY_FIELDS:
        doc[name] = []
    return doc


def item_key(field: str) -> str:
    """Identity key of the objects stored in array *field*."""
    return "category" if field == "stats" else "id"


def _check_field(field: str, allowed: frozenset[str], kind: str) -> None:
    if field not in allowed:
        raise ValueError(f"{field!r} is not a {kind} field of the progress document")


def _normalize(field: str, value: Any) -> Any:
    if field == "last_active":
        return parse_timestamp(value)
    return value


def _index_of(items: list[dict[str, Any]], key: str, ident: Any) -> int:
    for i, item in enumerate(items):
        if item.get(key) == ident:
            return i
    return -1


def _union(existing: list[dict[str, Any]], incoming: list[dict[str, Any]], key: str) -> list:
    merged = list(existing)
    for item in incoming:
        if _index_of(merged, key, item.get(key)) < 0:
            merged.append(item)
    return merged


def _apply(doc: dict[str, Any], document: Mapping[str, Any], *, merge: bool) -> None:
    for name, value in document.items():
        if name not in DOCUMENT_FIELDS:
            continue
        if merge and name in ARRAY_FIELDS:
            doc[name] = _union(doc.get(name) or [], list(value or []), item_key(name))
        else:
            doc[name] = _normalize(name, value)


def _matches(doc: Mapping[str, Any], if_match: Mapping[str, Any] | None) -> bool:
    if not if_match:
        return True
    return all(
        _normalize(name, doc.get(name)) == _normalize(name, expected)
        for name, expected in if_match.items()
    )


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------
class MemoryProgressStore:
    """Thread-safe in-process store.

    Documents are deep-copied on the way in and out, so callers can never
    mutate stored state by accident.
    """

    def __init__(self) -> None:
        self._docs: dict[str, dict[str, Any]] = {}
        self._lock = threading.RLock()

    def _doc(self, user_id: str) -> dict[str, Any]:
        doc = self._docs.get(user_id)
        if doc is None:
            raise ProgressNotFoundError(user_id)
        return doc

    def get(self, user_id: str) -> dict[str, Any] | None:
        with self._lock:
            doc = self._docs.get(user_id)
            return copy.deepcopy(doc) if doc is not None else None

    def create(self, user_id: str, document: Mapping[str, Any]) -> bool:
        with self._lock:
            if user_id in self._docs:
                return False
            doc = blank_document(user_id)
            _apply(doc, copy.deepcopy(dict(document)), merge=False)
            self._docs[user_id] = doc
            return True

    def set(self, user_id: str, document: Mapping[str, Any], *, merge: bool = False) -> None:
        with self._lock:
            existing = self._docs.get(user_id)
            doc = existing if merge and existing is not None else blank_document(user_id)
            _apply(doc, copy.deepcopy(dict(document)), merge=merge)
            self._docs[user_id] = doc

    def update(
        self,
        user_id: str,
        fields: Mapping[str, Any],
        *,
        if_match: Mapping[str, Any] | None = None,
    ) -> bool:
        with self._lock:
            doc = self._docs.get(user_id)
            if doc is None or not _matches(doc, if_match):
                return False
            _apply(doc, copy.deepcopy(dict(fields)), merge=False)
            return True

    def array_append(
        self, user_id: str, field: str, value: Mapping[str, Any], *, experience: int = 0
    ) -> bool:
        _check_field(field, ARRAY_FIELDS, "array")
        key = item_key(field)
        with self._lock:
            doc = self._doc(user_id)
            items = doc[field]
            if _index_of(items, key, value.get(key)) >= 0:
                return False
            items.append(copy.deepcopy(dict(value)))
            if experience:
                doc["experience"] += experience
            return True

    def array_replace(self, user_id: str, field: str, value: Mapping[str, Any]) -> bool:
        _check_field(field, ARRAY_FIELDS, "array")
        key = item_key(field)
        with self._lock:
            items = self._doc(user_id)[field]
            i = _index_of(items, key, value.get(key))
            if i < 0:
                return False
            items[i] = copy.deepcopy(dict(value))
            return True

    def array_move(
        self,
        user_id: str,
        source: str,
        target: str,
        value: Mapping[str, Any],
        *,
        experience: int = 0,
    ) -> bool:
        _check_field(source, ARRAY_FIELDS, "array")
        _check_field(target, ARRAY_FIELDS, "array")
        key = item_key(source)
        with self._lock:
            doc = self._doc(user_id)
            i = _index_of(doc[source], key, value.get(key))
            if i < 0:
                return False
            del doc[source][i]
            doc[target] = _union(doc[target], [copy.deepcopy(dict(value))], key)
            if experience:
                doc["experience"] += experience
            return True

    def atomic_increment(self, user_id: str, field: str, amount: int) -> int:
        _check_field(field, COUNTER_FIELDS, "counter")
        with self._lock:
            doc = self._doc(user_id)
            doc[field] += amount
            return doc[field]

    def atomic_max(self, user_id: str, field: str, value: int) -> int:
        _check_field(field, COUNTER_FIELDS, "counter")
        with self._lock:
            doc = self._doc(user_id)
            previous = doc[field]
            if value > previous:
                doc[field] = value
            return previous


# ---------------------------------------------------------------------------
# SQLAlchemy store
# ---------------------------------------------------------------------------
def _row_to_document(row: UserProgressRow) -> dict[str, Any]:
    doc: dict[str, Any] = {
        "user_id": row.user_id,
        "level": row.level,
        "experience": row.experience,
        "streak": row.streak,
        "last_active": parse_timestamp(row.last_active),
    }
    for name in ARRAY_FIELDS:
        doc[name] = list(getattr(row, name) or [])
    return doc


def _write_document(row: UserProgressRow, doc: Mapping[str, Any]) -> None:
    for name in DOCUMENT_FIELDS:
        if name in doc:
            setattr(row, name, doc[name])


class SqlProgressStore:
    """SQLAlchemy-backed store over the ``user_progress`` table.

    Each method is one transaction.  Rows are read ``FOR UPDATE`` on
    dialects that support it.  In-process calls are additionally
    serialized by a lock: SQLite allows a single writer, ignores row locks
    and may share one connection between threads.  Connectivity failures
    surface as :class:`StoreUnavailableError`.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._lock = threading.RLock()

    # -------------------------------------------------------------------
    # Transaction helpers
    # -------------------------------------------------------------------
    @contextmanager
    def _reading(self, op: str) -> Iterator[Session]:
        with self._lock:
            try:
                with Session(self._engine) as session:
                    yield session
            except (OperationalError, InterfaceError) as exc:
                logger.warning("Progress store unreachable during %s: %s", op, exc)
                raise StoreUnavailableError(f"progress store unavailable during {op}") from exc

    @contextmanager
    def _writing(self, op: str) -> Iterator[Session]:
        with self._lock:
            try:
                with get_session(self._engine) as session:
                    yield session
            except (OperationalError, InterfaceError) as exc:
                logger.warning("Progress store unreachable during %s: %s", op, exc)
                raise StoreUnavailableError(f"progress store unavailable during {op}") from exc

    @staticmethod
    def _locked_row(session: Session, user_id: str) -> UserProgressRow:
        row = session.get(UserProgressRow, user_id, with_for_update=True)
        if row is None:
            raise ProgressNotFoundError(user_id)
        return row

    # -------------------------------------------------------------------
    # Document operations
    # -------------------------------------------------------------------
    def get(self, user_id: str) -> dict[str, Any] | None:
        with self._reading("get") as session:
            row = session.get(UserProgressRow, user_id)
            return _row_to_document(row) if row is not None else None

    def create(self, user_id: str, document: Mapping[str, Any]) -> bool:
        with self._writing("create") as session:
            if session.get(UserProgressRow, user_id, with_for_update=True) is not None:
                return False
            doc = blank_document(user_id)
            _apply(doc, document, merge=False)
            row = UserProgressRow(user_id=user_id)
            _write_document(row, doc)
            session.add(row)
            return True

    def set(self, user_id: str, document: Mapping[str, Any], *, merge: bool = False) -> None:
        with self._writing("set") as session:
            row = session.get(UserProgressRow, user_id, with_for_update=True)
            if row is None:
                row = UserProgressRow(user_id=user_id)
                session.add(row)
                doc = blank_document(user_id)
            elif merge:
                doc = _row_to_document(row)
            else:
                doc = blank_document(user_id)
            _apply(doc, document, merge=merge)
            _write_document(row, doc)

    def update(
        self,
        user_id: str,
        fields: Mapping[str, Any],
        *,
        if_match: Mapping[str, Any] | None = None,
    ) -> bool:
        with self._writing("update") as session:
            row = session.get(UserProgressRow, user_id, with_for_update=True)
            if row is None:
                return False
            doc = _row_to_document(row)
            if not _matches(doc, if_match):
                return False
            _apply(doc, fields, merge=False)
            _write_document(row, {k: doc[k] for k in fields if k in DOCUMENT_FIELDS})
            return True

    # -------------------------------------------------------------------
    # Array operations
    # -------------------------------------------------------------------
    def array_append(
        self, user_id: str, field: str, value: Mapping[str, Any], *, experience: int = 0
    ) -> bool:
        _check_field(field, ARRAY_FIELDS, "array")
        key = item_key(field)
        with self._writing("array_append") as session:
            row = self._locked_row(session, user_id)
            items = list(getattr(row, field) or [])
            if _index_of(items, key, value.get(key)) >= 0:
                return False
            setattr(row, field, [*items, dict(value)])
            if experience:
                row.experience += experience
            return True

    def array_replace(self, user_id: str, field: str, value: Mapping[str, Any]) -> bool:
        _check_field(field, ARRAY_FIELDS, "array")
        key = item_key(field)
        with self._writing("array_replace") as session:
            row = self._locked_row(session, user_id)
            items = list(getattr(row, field) or [])
            i = _index_of(items, key, value.get(key))
            if i < 0:
                return False
            items[i] = dict(value)
            setattr(row, field, items)
            return True

    def array_move(
        self,
        user_id: str,
        source: str,
        target: str,
        value: Mapping[str, Any],
        *,
        experience: int = 0,
    ) -> bool:
        _check_field(source, ARRAY_FIELDS, "array")
        _check_field(target, ARRAY_FIELDS, "array")
        key = item_key(source)
        with self._writing("array_move") as session:
            row = self._locked_row(session, user_id)
            remaining = list(getattr(row, source) or [])
            i = _index_of(remaining, key, value.get(key))
            if i < 0:
                return False
            del remaining[i]
            setattr(row, source, remaining)
            setattr(row, target, _union(list(getattr(row, target) or []), [dict(value)], key))
            if experience:
                row.experience += experience
            return True

    # -------------------------------------------------------------------
    # Counter operations
    # -------------------------------------------------------------------
    def atomic_increment(self, user_id: str, field: str, amount: int) -> int:
        _check_field(field, COUNTER_FIELDS, "counter")
        column = getattr(UserProgressRow, field)
        with self._writing("atomic_increment") as session:
            result = session.execute(
                update(UserProgressRow)
                .where(UserProgressRow.user_id == user_id)
                .values({column: column + amount})
            )
            if result.rowcount == 0:
                raise ProgressNotFoundError(user_id)
            return session.scalar(
                select(column).where(UserProgressRow.user_id == user_id)
            )

    def atomic_max(self, user_id: str, field: str, value: int) -> int:
        _check_field(field, COUNTER_FIELDS, "counter")
        with self._writing("atomic_max") as session:
            row = self._locked_row(session, user_id)
            previous = getattr(row, field)
            if value > previous:
                setattr(row, field, value)
            return previous
