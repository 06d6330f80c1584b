"""Transactional entity store backed by SQLite.

Each entity kind lives in its own table: an integer primary key, a few
mirrored columns used by named queries and uniqueness constraints, and the
full entity serialized as JSON.

Design:
- Unit of work: a ``StoreSession`` keeps an identity map of managed
  entities.  ``merge`` and ``remove`` only stage changes; nothing becomes
  visible to other readers until ``flush``.
- ``flush`` writes every staged change inside one SQLite transaction, so a
  failure leaves no partial state behind.
- ``PersistenceStore.transaction()`` scopes a session: staged changes are
  flushed on normal exit and discarded when the block raises.
- WAL journal mode for concurrent readers.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel

from datarepo.errors import DuplicateEntityError, PersistenceError
from datarepo.models.dataset import DataFile, Dataset
from datarepo.models.locks import DatasetLock
from datarepo.models.notifications import UserNotification
from datarepo.models.users import AuthenticatedUser, DatasetVersionUser

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

_SCHEMA = """
CREATE TABLE IF NOT EXISTS datasets (
    id          INTEGER PRIMARY KEY,
    owner_id    INTEGER,
    creator_id  INTEGER,
    protocol    TEXT,
    authority   TEXT,
    identifier  TEXT,
    harvested   INTEGER NOT NULL DEFAULT 0,
    index_time  TEXT,
    body_json   TEXT NOT NULL,
    UNIQUE (protocol, authority, identifier)
);
CREATE INDEX IF NOT EXISTS idx_datasets_owner ON datasets(owner_id, id);

CREATE TABLE IF NOT EXISTS data_files (
    id          INTEGER PRIMARY KEY,
    owner_id    INTEGER,
    protocol    TEXT,
    authority   TEXT,
    identifier  TEXT,
    body_json   TEXT NOT NULL,
    UNIQUE (protocol, authority, identifier)
);
CREATE INDEX IF NOT EXISTS idx_data_files_owner ON data_files(owner_id, id);

CREATE TABLE IF NOT EXISTS dataset_locks (
    id          INTEGER PRIMARY KEY,
    dataset_id  INTEGER NOT NULL,
    reason      TEXT NOT NULL,
    user_id     INTEGER,
    body_json   TEXT NOT NULL,
    UNIQUE (dataset_id, reason)
);
CREATE INDEX IF NOT EXISTS idx_dataset_locks_user ON dataset_locks(user_id, id);

CREATE TABLE IF NOT EXISTS users (
    id          INTEGER PRIMARY KEY,
    identifier  TEXT NOT NULL UNIQUE,
    body_json   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS notifications (
    id           INTEGER PRIMARY KEY,
    user_id      INTEGER NOT NULL,
    requestor_id INTEGER,
    object_id    INTEGER,
    type         TEXT NOT NULL,
    send_date    TEXT NOT NULL,
    read         INTEGER NOT NULL DEFAULT 0,
    emailed      INTEGER NOT NULL DEFAULT 0,
    body_json    TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, send_date);

CREATE TABLE IF NOT EXISTS dataset_version_users (
    id                  INTEGER PRIMARY KEY,
    dataset_version_id  TEXT NOT NULL,
    user_id             INTEGER NOT NULL,
    body_json           TEXT NOT NULL,
    UNIQUE (dataset_version_id, user_id)
);

CREATE TABLE IF NOT EXISTS sequences (
    name   TEXT PRIMARY KEY,
    value  INTEGER NOT NULL
);
"""

# Sequence backing the "storedProcGenerated" identifier style.
IDENTIFIER_SEQUENCE = "identifier"


class _Table:
    """Maps one entity model onto one table."""

    def __init__(self, name: str, model: type[BaseModel], columns: tuple[str, ...]) -> None:
        self.name = name
        self.model = model
        self.columns = columns

    def row_values(self, entity: BaseModel) -> list[Any]:
        values: list[Any] = []
        for column in self.columns:
            value = getattr(entity, column)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, bool):
                value = int(value)
            values.append(value)
        return values

    def upsert_sql(self) -> str:
        names = ", ".join(("id",) + self.columns + ("body_json",))
        marks = ", ".join("?" for _ in range(len(self.columns) + 2))
        updates = ", ".join(f"{c} = excluded.{c}" for c in self.columns + ("body_json",))
        return (
            f"INSERT INTO {self.name} ({names}) VALUES ({marks}) "
            f"ON CONFLICT(id) DO UPDATE SET {updates}"
        )


_TABLES: dict[type[BaseModel], _Table] = {
    Dataset: _Table(
        "datasets",
        Dataset,
        ("owner_id", "creator_id", "protocol", "authority", "identifier", "harvested", "index_time"),
    ),
    DataFile: _Table("data_files", DataFile, ("owner_id", "protocol", "authority", "identifier")),
    DatasetLock: _Table("dataset_locks", DatasetLock, ("dataset_id", "reason", "user_id")),
    AuthenticatedUser: _Table("users", AuthenticatedUser, ("identifier",)),
    UserNotification: _Table(
        "notifications",
        UserNotification,
        ("user_id", "requestor_id", "object_id", "type", "send_date", "read", "emailed"),
    ),
    DatasetVersionUser: _Table(
        "dataset_version_users", DatasetVersionUser, ("dataset_version_id", "user_id")
    ),
}


# ---------------------------------------------------------------------------
# Named queries: each selects the ids of one entity kind
# ---------------------------------------------------------------------------

NAMED_QUERIES: dict[str, tuple[type[BaseModel], str]] = {
    "dataset.all": (Dataset, "SELECT id FROM datasets ORDER BY id"),
    "dataset.by_owner": (
        Dataset,
        "SELECT id FROM datasets WHERE owner_id = :owner_id ORDER BY id",
    ),
    "dataset.by_creator": (
        Dataset,
        "SELECT id FROM datasets WHERE creator_id = :creator_id ORDER BY id",
    ),
    "dataset.by_global_id": (
        Dataset,
        "SELECT id FROM datasets WHERE identifier = :identifier "
        "AND authority IS :authority AND protocol IS :protocol",
    ),
    "dataset.local": (Dataset, "SELECT id FROM datasets WHERE harvested = 0 ORDER BY id"),
    "dataset.unindexed": (
        Dataset,
        "SELECT id FROM datasets WHERE index_time IS NULL ORDER BY id DESC",
    ),
    "datafile.by_owner": (
        DataFile,
        "SELECT id FROM data_files WHERE owner_id = :owner_id ORDER BY id",
    ),
    "datafile.by_global_id": (
        DataFile,
        "SELECT id FROM data_files WHERE identifier = :identifier "
        "AND authority IS :authority AND protocol IS :protocol",
    ),
    "lock.all": (DatasetLock, "SELECT id FROM dataset_locks ORDER BY id"),
    "lock.by_dataset": (
        DatasetLock,
        "SELECT id FROM dataset_locks WHERE dataset_id = :dataset_id ORDER BY id",
    ),
    "lock.by_dataset_and_reason": (
        DatasetLock,
        "SELECT id FROM dataset_locks WHERE dataset_id = :dataset_id AND reason = :reason",
    ),
    "lock.by_reason": (
        DatasetLock,
        "SELECT id FROM dataset_locks WHERE reason = :reason ORDER BY id",
    ),
    "lock.by_user": (
        DatasetLock,
        "SELECT id FROM dataset_locks WHERE user_id = :user_id ORDER BY id",
    ),
    "lock.by_reason_and_user": (
        DatasetLock,
        "SELECT id FROM dataset_locks WHERE reason = :reason AND user_id = :user_id ORDER BY id",
    ),
    "user.by_identifier": (
        AuthenticatedUser,
        "SELECT id FROM users WHERE identifier = :identifier",
    ),
    "notification.by_user": (
        UserNotification,
        "SELECT id FROM notifications WHERE user_id = :user_id ORDER BY send_date DESC, id DESC",
    ),
    "notification.by_requestor": (
        UserNotification,
        "SELECT id FROM notifications WHERE requestor_id = :requestor_id "
        "ORDER BY send_date DESC, id DESC",
    ),
    "notification.by_object": (
        UserNotification,
        "SELECT id FROM notifications WHERE object_id = :object_id "
        "ORDER BY send_date DESC, id DESC",
    ),
    "notification.unread_by_user": (
        UserNotification,
        "SELECT id FROM notifications WHERE user_id = :user_id AND read = 0 "
        "ORDER BY send_date DESC, id DESC",
    ),
    "notification.unemailed": (
        UserNotification,
        "SELECT id FROM notifications WHERE read = 0 AND emailed = 0 ORDER BY id",
    ),
    "version_user.by_version_and_user": (
        DatasetVersionUser,
        "SELECT id FROM dataset_version_users "
        "WHERE dataset_version_id = :dataset_version_id AND user_id = :user_id",
    ),
}


def _table_for(model: type[BaseModel]) -> _Table:
    try:
        return _TABLES[model]
    except KeyError:
        raise PersistenceError(f"No table mapped for {model.__name__}") from None


class PersistenceStore:
    """SQLite-backed entity store.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file. Created if it does not exist.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), check_same_thread=False, timeout=30.0)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(_SCHEMA)
            conn.commit()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def session(self) -> StoreSession:
        """Open a unit of work.  Nothing is written until ``flush()``."""
        return StoreSession(self)

    @contextmanager
    def transaction(self) -> Iterator[StoreSession]:
        """Scope a session: flush on normal exit, discard on exception."""
        session = StoreSession(self)
        try:
            yield session
        except BaseException:
            if session.has_pending_changes:
                logger.debug("Discarding unflushed changes after failure.")
            raise
        else:
            if session.has_pending_changes:
                session.flush()

    # ------------------------------------------------------------------
    # Detached reads
    # ------------------------------------------------------------------

    def find(self, model: type[T], entity_id: int | None) -> T | None:
        """Load one entity outside any session (a detached copy)."""
        if entity_id is None:
            return None
        table = _table_for(model)
        try:
            with self._connect() as conn:
                row = conn.execute(
                    f"SELECT body_json FROM {table.name} WHERE id = ?", (entity_id,)
                ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to load {model.__name__} {entity_id}: {exc}") from exc
        return model.model_validate_json(row[0]) if row else None

    def query(self, name: str, **params: Any) -> list[Any]:
        """Run a named query and return detached entities."""
        model, _ = self._named(name)
        return [entity for entity in (self.find(model, i) for i in self.query_ids(name, **params)) if entity]

    def query_ids(self, name: str, **params: Any) -> list[int]:
        """Run a named query and return matching ids only."""
        _, sql = self._named(name)
        try:
            with self._connect() as conn:
                rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Named query {name!r} failed: {exc}") from exc
        return [row[0] for row in rows]

    @staticmethod
    def _named(name: str) -> tuple[type[BaseModel], str]:
        try:
            return NAMED_QUERIES[name]
        except KeyError:
            raise PersistenceError(f"Unknown named query: {name!r}") from None

    # ------------------------------------------------------------------
    # Sequences
    # ------------------------------------------------------------------

    def next_sequence_value(self, name: str) -> int:
        """Advance and return a named sequence.  Runs in its own transaction."""
        try:
            with self._connect() as conn:
                conn.execute(
                    "INSERT INTO sequences (name, value) VALUES (?, 1) "
                    "ON CONFLICT(name) DO UPDATE SET value = value + 1",
                    (name,),
                )
                row = conn.execute("SELECT value FROM sequences WHERE name = ?", (name,)).fetchone()
                conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Sequence {name!r} unavailable: {exc}") from exc
        return int(row[0])

    def next_identifier_value(self) -> str:
        """Next value of the identifier sequence, for sequence-generated identifiers."""
        return str(self.next_sequence_value(IDENTIFIER_SEQUENCE))

    def _allocate_id(self, table: _Table) -> int:
        allocated = self.next_sequence_value(f"id:{table.name}")
        # Rows written before the sequence existed (imports) must not collide.
        with self._connect() as conn:
            row = conn.execute(f"SELECT MAX(id) FROM {table.name}").fetchone()
        highest = row[0] or 0
        while allocated <= highest:
            allocated = self.next_sequence_value(f"id:{table.name}")
        return allocated

    # ------------------------------------------------------------------
    # Writes (used by StoreSession.flush)
    # ------------------------------------------------------------------

    def _write(
        self,
        upserts: list[BaseModel],
        deletes: list[BaseModel],
    ) -> None:
        try:
            with self._connect() as conn:
                for entity in deletes:
                    table = _table_for(type(entity))
                    conn.execute(f"DELETE FROM {table.name} WHERE id = ?", (entity.id,))
                for entity in upserts:
                    table = _table_for(type(entity))
                    conn.execute(
                        table.upsert_sql(),
                        [entity.id, *table.row_values(entity), entity.model_dump_json()],
                    )
                conn.commit()
        except sqlite3.IntegrityError as exc:
            raise DuplicateEntityError(f"Uniqueness constraint violated: {exc}") from exc
        except sqlite3.Error as exc:
            raise PersistenceError(f"Flush failed: {exc}") from exc


class StoreSession:
    """Unit of work over a ``PersistenceStore``.

    Entities returned by ``find``/``merge`` are managed.  A merged entity is
    written on the next ``flush``; an entity that was only loaded is written
    only if it changed since it was loaded, so reading a row never
    overwrites a concurrent commit to it.
    """

    def __init__(self, store: PersistenceStore) -> None:
        self._store = store
        self._managed: dict[tuple[type[BaseModel], int], BaseModel] = {}
        self._removed: dict[tuple[type[BaseModel], int], BaseModel] = {}
        # JSON bodies of loaded, unmerged entities as last read or written.
        self._snapshots: dict[tuple[type[BaseModel], int], str] = {}
        self._pending = False

    @property
    def store(self) -> PersistenceStore:
        return self._store

    @property
    def has_pending_changes(self) -> bool:
        return self._pending or bool(self._dirty_loaded())

    # ------------------------------------------------------------------
    # Staging
    # ------------------------------------------------------------------

    def merge(self, entity: T) -> T:
        """Stage an entity for writing and return the managed instance.

        Entities without an id get one allocated immediately.
        """
        table = _table_for(type(entity))
        if entity.id is None:
            entity.id = self._store._allocate_id(table)
        key = (type(entity), entity.id)
        self._removed.pop(key, None)
        self._snapshots.pop(key, None)
        self._managed[key] = entity
        self._pending = True
        return entity

    def remove(self, entity: BaseModel) -> None:
        """Stage an entity for deletion."""
        if entity.id is None:
            return
        key = (type(entity), entity.id)
        self._managed.pop(key, None)
        self._snapshots.pop(key, None)
        self._removed[key] = entity
        self._pending = True

    def flush(self) -> None:
        """Write every staged change in one transaction."""
        dirty = set(self._dirty_loaded())
        upserts = [
            entity
            for key, entity in self._managed.items()
            if key not in self._snapshots or key in dirty
        ]
        deletes = list(self._removed.values())
        self._store._write(upserts, deletes)
        logger.debug("Flushed %d upserts and %d deletes.", len(upserts), len(deletes))
        # Everything written is now the baseline for later changes.
        for key, entity in self._managed.items():
            self._snapshots[key] = entity.model_dump_json()
        self._removed.clear()
        self._pending = False

    def _dirty_loaded(self) -> list[tuple[type[BaseModel], int]]:
        return [
            key
            for key, body in self._snapshots.items()
            if self._managed[key].model_dump_json() != body
        ]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find(self, model: type[T], entity_id: int | None) -> T | None:
        """Return the managed entity, loading it from the store if needed."""
        if entity_id is None:
            return None
        key = (model, entity_id)
        if key in self._removed:
            return None
        if key in self._managed:
            return self._managed[key]  # type: ignore[return-value]
        entity = self._store.find(model, entity_id)
        if entity is not None:
            self._managed[key] = entity
            self._snapshots[key] = entity.model_dump_json()
        return entity

    def query(self, name: str, **params: Any) -> list[Any]:
        """Run a named query against committed rows, resolved through the identity map."""
        model, _ = self._store._named(name)
        results = []
        for entity_id in self._store.query_ids(name, **params):
            entity = self.find(model, entity_id)
            if entity is not None:
                results.append(entity)
        return results

    def pending(self, model: type[T]) -> list[T]:
        """Managed entities of one kind, including ones not yet flushed."""
        return [e for (kind, _), e in self._managed.items() if kind is model]  # type: ignore[misc]
