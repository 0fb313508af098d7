from __future__ import annotations

"""Document store used to share a game between clients.

The interface is deliberately narrow: whole-document reads, field-path
updates with atomic increments, equality queries, batched writes and
per-document change subscriptions. Two backends are provided, an
in-process one for tests and local hot-seat games, and a SQL one
(SQLAlchemy) that several processes can share.
"""

import copy
import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from . import settings

logger = logging.getLogger("nationsim.Store")
logger.addHandler(logging.NullHandler())

Snapshot = Dict[str, Any]
Callback = Callable[[Snapshot], None]
DocKey = Tuple[str, str]


class StoreError(Exception):
    """Raised when the document store cannot complete an operation."""


class DocumentNotFoundError(StoreError):
    """Raised when updating a document that does not exist."""


class PreconditionFailedError(StoreError):
    """Raised when a write's expected field values no longer hold."""


class _VersionConflict(Exception):
    """Another writer committed the document first."""


# --------------------------------------------------------------------
# Field transforms
# --------------------------------------------------------------------
class Increment:
    """Add ``value`` to the numeric field (missing fields count as 0)."""

    def __init__(self, value: float):
        self.value = value

    def __repr__(self) -> str:
        return f"Increment({self.value!r})"


class ArrayUnion:
    """Append each value not already present in the array field."""

    def __init__(self, *values: Any):
        self.values = list(values)

    def __repr__(self) -> str:
        return f"ArrayUnion({self.values!r})"


class _DeleteField:
    def __repr__(self) -> str:
        return "DELETE_FIELD"


DELETE_FIELD = _DeleteField()


def get_path(data: Dict[str, Any], path: str, default: Any = None) -> Any:
    """Read a dotted field path such as ``player_data.abc.resources``."""
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def apply_updates(doc: Dict[str, Any], updates: Dict[str, Any]) -> None:
    """Apply dotted-path updates to ``doc`` in place."""
    for path, value in updates.items():
        parts = path.split(".")
        parent = doc
        for part in parts[:-1]:
            child = parent.get(part)
            if not isinstance(child, dict):
                if value is DELETE_FIELD:
                    parent = None
                    break
                child = {}
                parent[part] = child
            parent = child
        if parent is None:
            continue

        leaf = parts[-1]
        if value is DELETE_FIELD:
            parent.pop(leaf, None)
        elif isinstance(value, Increment):
            current = parent.get(leaf, 0)
            if not isinstance(current, (int, float)) or isinstance(current, bool):
                current = 0
            parent[leaf] = current + value.value
        elif isinstance(value, ArrayUnion):
            current = parent.get(leaf)
            items = list(current) if isinstance(current, list) else []
            for item in value.values:
                if item not in items:
                    items.append(copy.deepcopy(item))
            parent[leaf] = items
        else:
            parent[leaf] = copy.deepcopy(value)


# --------------------------------------------------------------------
# Batched writes
# --------------------------------------------------------------------
class WriteBatch:
    """Collects writes that are applied together by ``commit``."""

    def __init__(self, store: "DocumentStore"):
        self._store = store
        self._ops: List[Tuple[str, str, str, Dict[str, Any]]] = []

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> "WriteBatch":
        self._ops.append(("set", collection, doc_id, data))
        return self

    def update(self, collection: str, doc_id: str, updates: Dict[str, Any]) -> "WriteBatch":
        self._ops.append(("update", collection, doc_id, updates))
        return self

    def require(self, collection: str, doc_id: str, expected: Dict[str, Any]) -> "WriteBatch":
        """Fail the whole batch unless each field path currently equals its value."""
        self._ops.append(("require", collection, doc_id, expected))
        return self

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        self._ops.append(("set", collection, doc_id, data))
        return doc_id

    def commit(self) -> None:
        if self._ops:
            self._store._write(self._ops)
        self._ops = []


# --------------------------------------------------------------------
# Store interface
# --------------------------------------------------------------------
class DocumentStore(ABC):
    """Shared document storage with per-document change subscriptions."""

    def __init__(self) -> None:
        self._subscribers: Dict[DocKey, List[Callback]] = {}
        self._sub_lock = threading.Lock()

    # Reads -------------------------------------------------------------
    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Snapshot]:
        """Return a copy of the document, or None if it does not exist."""

    @abstractmethod
    def _all(self, collection: str) -> List[Tuple[str, Snapshot]]:
        """Every (id, document) pair of ``collection``."""

    def query(
        self,
        collection: str,
        field: Optional[str] = None,
        value: Any = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Tuple[str, Snapshot]]:
        """Documents whose ``field`` equals ``value``, optionally sorted."""
        docs = self._all(collection)
        if field is not None:
            docs = [(i, d) for i, d in docs if get_path(d, field) == value]
        if order_by is not None:
            docs.sort(key=lambda item: _sort_key(get_path(item[1], order_by)), reverse=descending)
        return docs

    # Writes ------------------------------------------------------------
    @abstractmethod
    def _write(self, ops: List[Tuple[str, str, str, Dict[str, Any]]]) -> None:
        """Apply all ops atomically, then notify subscribers."""

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._write([("set", collection, doc_id, data)])

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        self.set(collection, doc_id, data)
        return doc_id

    def update(
        self,
        collection: str,
        doc_id: str,
        updates: Dict[str, Any],
        expected: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Apply field-path updates. Raises DocumentNotFoundError for missing documents.

        With ``expected`` the update only goes through if those field paths
        still hold the given values at write time; otherwise
        PreconditionFailedError is raised and nothing is written.
        """
        ops = [("require", collection, doc_id, expected)] if expected else []
        ops.append(("update", collection, doc_id, updates))
        self._write(ops)

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    # Subscriptions -----------------------------------------------------
    def subscribe(self, collection: str, doc_id: str, callback: Callback) -> Callable[[], None]:
        """Call ``callback`` with a fresh snapshot after every write to the document.

        Returns a function that unsubscribes; once it has returned the
        callback is not invoked again.
        """
        key = (collection, doc_id)
        with self._sub_lock:
            self._subscribers.setdefault(key, []).append(callback)

        def unsubscribe() -> None:
            with self._sub_lock:
                callbacks = self._subscribers.get(key, [])
                if callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks:
                    self._subscribers.pop(key, None)

        return unsubscribe

    def _notify(self, changed: Dict[DocKey, Snapshot]) -> None:
        for key, snapshot in changed.items():
            with self._sub_lock:
                callbacks = list(self._subscribers.get(key, []))
            for callback in callbacks:
                with self._sub_lock:
                    if callback not in self._subscribers.get(key, []):
                        continue
                try:
                    callback(copy.deepcopy(snapshot))
                except Exception:
                    logger.exception("Subscriber for %s/%s failed", *key)

    def close(self) -> None:
        with self._sub_lock:
            self._subscribers.clear()


def _sort_key(value: Any) -> Tuple[int, Any]:
    # None sorts first; mixed types compare by their string form
    if value is None:
        return (0, "")
    if isinstance(value, (int, float)):
        return (1, value)
    return (2, str(value))


_MISSING = object()


def _apply_op(doc: Optional[Snapshot], op: str, collection: str, doc_id: str, data: Dict[str, Any]) -> Snapshot:
    if op == "set":
        return copy.deepcopy(data)
    if doc is None:
        raise DocumentNotFoundError(f"No document {collection}/{doc_id}")
    if op == "require":
        for path, value in data.items():
            actual = get_path(doc, path, _MISSING)
            if actual != value:
                found = "missing" if actual is _MISSING else repr(actual)
                raise PreconditionFailedError(f"{collection}/{doc_id} {path} is {found}, expected {value!r}")
        return doc
    apply_updates(doc, data)
    return doc


def _written_keys(ops: List[Tuple[str, str, str, Dict[str, Any]]]) -> List[DocKey]:
    return list(dict.fromkeys((collection, doc_id) for op, collection, doc_id, _ in ops if op != "require"))


# --------------------------------------------------------------------
# In-memory backend
# --------------------------------------------------------------------
class InMemoryDocumentStore(DocumentStore):
    """Thread-safe store kept in process memory."""

    def __init__(self) -> None:
        super().__init__()
        self._docs: Dict[str, Dict[str, Snapshot]] = {}
        self._lock = threading.Lock()

    def get(self, collection: str, doc_id: str) -> Optional[Snapshot]:
        with self._lock:
            doc = self._docs.get(collection, {}).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def _all(self, collection: str) -> List[Tuple[str, Snapshot]]:
        with self._lock:
            return [(i, copy.deepcopy(d)) for i, d in self._docs.get(collection, {}).items()]

    def _write(self, ops: List[Tuple[str, str, str, Dict[str, Any]]]) -> None:
        with self._lock:
            staged: Dict[DocKey, Snapshot] = {}
            for op, collection, doc_id, data in ops:
                key = (collection, doc_id)
                current = staged.get(key)
                if current is None:
                    existing = self._docs.get(collection, {}).get(doc_id)
                    current = copy.deepcopy(existing) if existing is not None else None
                staged[key] = _apply_op(current, op, collection, doc_id, data)

            written = _written_keys(ops)
            for collection, doc_id in written:
                self._docs.setdefault(collection, {})[doc_id] = staged[(collection, doc_id)]
            changed = {key: copy.deepcopy(staged[key]) for key in written}
        self._notify(changed)


# --------------------------------------------------------------------
# SQL backend
# --------------------------------------------------------------------
class SqlDocumentStore(DocumentStore):
    """
    Documents stored as JSON text in a single ``documents`` table.

    Every row carries a version counter. Writes only land if the version
    is unchanged since it was read, so concurrent writers in different
    processes retry instead of overwriting each other. Writes from this process notify subscribers directly. Writes made by
    other processes are picked up by a background poller comparing each
    subscribed document's version counter.
    """

    def __init__(self, engine: Engine, poll_interval: float = settings.SQL_POLL_INTERVAL):
        super().__init__()
        self.engine = engine
        self.poll_interval = poll_interval
        self._lock = threading.Lock()
        self._versions: Dict[DocKey, int] = {}
        self._stop = threading.Event()
        self._poller: Optional[threading.Thread] = None
        self.ensure_schema()

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "SqlDocumentStore":
        engine = create_engine(url, pool_pre_ping=True, future=True)
        return cls(engine, **kwargs)

    def ensure_schema(self) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    text(
                        """
                        CREATE TABLE IF NOT EXISTS documents (
                            collection VARCHAR(64) NOT NULL,
                            doc_id VARCHAR(64) NOT NULL,
                            body TEXT NOT NULL,
                            version INTEGER NOT NULL DEFAULT 1,
                            PRIMARY KEY (collection, doc_id)
                        )
                        """
                    )
                )
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to create documents table: {e}") from e

    def get(self, collection: str, doc_id: str) -> Optional[Snapshot]:
        try:
            with self.engine.connect() as conn:
                row = conn.execute(
                    text("SELECT body FROM documents WHERE collection=:c AND doc_id=:i"),
                    {"c": collection, "i": doc_id},
                ).first()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read {collection}/{doc_id}: {e}") from e
        return json.loads(row[0]) if row else None

    def _all(self, collection: str) -> List[Tuple[str, Snapshot]]:
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(
                    text("SELECT doc_id, body FROM documents WHERE collection=:c"),
                    {"c": collection},
                ).all()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to query {collection}: {e}") from e
        return [(row[0], json.loads(row[1])) for row in rows]

    def _write(self, ops: List[Tuple[str, str, str, Dict[str, Any]]]) -> None:
        """Read, apply and write back each document as a compare-and-swap on its version.

        If another process commits one of the documents in between, the
        transaction is rolled back and the ops are replayed on fresh data.
        """
        for attempt in range(1, settings.SQL_WRITE_ATTEMPTS + 1):
            try:
                with self._lock, self.engine.begin() as conn:
                    changed = self._swap(conn, ops)
                break
            except (_VersionConflict, IntegrityError) as e:
                logger.debug("Write attempt %d lost a race: %s", attempt, e)
            except SQLAlchemyError as e:
                raise StoreError(f"Write failed: {e}") from e
        else:
            raise StoreError(f"Write abandoned after {settings.SQL_WRITE_ATTEMPTS} conflicting attempts")
        self._notify(changed)

    def _swap(self, conn, ops: List[Tuple[str, str, str, Dict[str, Any]]]) -> Dict[DocKey, Snapshot]:
        staged: Dict[DocKey, Snapshot] = {}
        versions: Dict[DocKey, int] = {}
        for op, collection, doc_id, data in ops:
            key = (collection, doc_id)
            if key not in staged:
                row = conn.execute(
                    text("SELECT body, version FROM documents WHERE collection=:c AND doc_id=:i"),
                    {"c": collection, "i": doc_id},
                ).first()
                current = json.loads(row[0]) if row else None
                versions[key] = row[1] if row else 0
            else:
                current = staged[key]
            staged[key] = _apply_op(current, op, collection, doc_id, data)

        written = _written_keys(ops)
        for key in staged:
            collection, doc_id = key
            old = versions[key]
            if key not in written:
                # Only checked: the version must still be the one we read
                result = conn.execute(
                    text("UPDATE documents SET version=version WHERE collection=:c AND doc_id=:i AND version=:old"),
                    {"c": collection, "i": doc_id, "old": old},
                )
            elif old:
                result = conn.execute(
                    text(
                        "UPDATE documents SET body=:b, version=:v "
                        "WHERE collection=:c AND doc_id=:i AND version=:old"
                    ),
                    {"c": collection, "i": doc_id, "b": json.dumps(staged[key]), "v": old + 1, "old": old},
                )
            else:
                conn.execute(
                    text("INSERT INTO documents (collection, doc_id, body, version) VALUES (:c, :i, :b, 1)"),
                    {"c": collection, "i": doc_id, "b": json.dumps(staged[key])},
                )
                continue
            if result.rowcount != 1:
                raise _VersionConflict(f"{collection}/{doc_id} changed since version {old}")

        for key in written:
            self._versions[key] = versions[key] + 1
        return {key: staged[key] for key in written}

    def subscribe(self, collection: str, doc_id: str, callback: Callback) -> Callable[[], None]:
        key = (collection, doc_id)
        with self._lock:
            if key not in self._versions:
                self._versions[key] = self._read_version(key)
        unsubscribe = super().subscribe(collection, doc_id, callback)
        self._ensure_poller()
        return unsubscribe

    def _read_version(self, key: DocKey) -> int:
        try:
            with self.engine.connect() as conn:
                row = conn.execute(
                    text("SELECT version FROM documents WHERE collection=:c AND doc_id=:i"),
                    {"c": key[0], "i": key[1]},
                ).first()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read version of {key[0]}/{key[1]}: {e}") from e
        return row[0] if row else 0

    def _ensure_poller(self) -> None:
        if self._poller is not None and self._poller.is_alive():
            return
        self._stop.clear()
        self._poller = threading.Thread(target=self._poll_loop, name="sql-store-poller", daemon=True)
        self._poller.start()

    def _poll_loop(self) -> None:
        while not self._stop.wait(self.poll_interval):
            try:
                self.poll_once()
            except StoreError as e:
                logger.warning("Change polling failed: %s", e)

    def poll_once(self) -> None:
        """Notify subscribers of documents changed by other processes."""
        with self._sub_lock:
            keys = list(self._subscribers)
        changed: Dict[DocKey, Snapshot] = {}
        for key in keys:
            version = self._read_version(key)
            with self._lock:
                if version <= self._versions.get(key, 0):
                    continue
                self._versions[key] = version
            doc = self.get(*key)
            if doc is not None:
                changed[key] = doc
        if changed:
            self._notify(changed)

    def close(self) -> None:
        self._stop.set()
        if self._poller is not None:
            self._poller.join(timeout=self.poll_interval * 2)
            self._poller = None
        super().close()
        self.engine.dispose()
