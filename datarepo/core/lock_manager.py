"""LockManager — domain-level mutual exclusion on datasets.

At most one lock exists per (dataset, reason).  Acquiring a lock that is
already held returns the existing lock instead of creating a duplicate.

Locks are never expired automatically.  The lock table is the ownership
record; each holding user's ``dataset_lock_ids`` list is a secondary index
kept in step with it on every acquire and release.  Callers guarding an
operation should prefer ``locked()``, which releases on every exit path.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from datarepo.core.store import PersistenceStore, StoreSession
from datarepo.errors import DatasetLockedError, DuplicateEntityError, EntityNotFoundError
from datarepo.models.dataset import Dataset
from datarepo.models.locks import REVIEW_REASONS, DatasetLock, LockReason
from datarepo.models.users import AuthenticatedUser

logger = logging.getLogger(__name__)


class LockManager:
    """Acquires, releases, and checks dataset locks.

    Parameters
    ----------
    store:
        The persistence store holding locks, datasets, and users.
    """

    def __init__(self, store: PersistenceStore) -> None:
        self._store = store

    # ------------------------------------------------------------------
    # Acquire / release
    # ------------------------------------------------------------------

    def add_lock(
        self,
        dataset_id: int,
        reason: LockReason,
        user_id: int | None = None,
        info: str = "",
    ) -> DatasetLock:
        """Acquire a lock, returning the existing one if already held.

        Runs in its own transaction.

        Raises
        ------
        EntityNotFoundError
            If the dataset does not exist.
        """
        lock, _ = self._acquire(dataset_id, reason, user_id, info, exclusive=False)
        return lock

    def _acquire(
        self,
        dataset_id: int,
        reason: LockReason,
        user_id: int | None,
        info: str,
        exclusive: bool,
    ) -> tuple[DatasetLock, bool]:
        """Acquire a lock in one transaction; returns the lock and whether it is new.

        With ``exclusive`` an already-held lock raises ``DatasetLockedError``
        instead of being returned, including when a concurrent caller
        commits the same lock first.
        """
        if self._store.find(Dataset, dataset_id) is None:
            raise EntityNotFoundError(f"Dataset {dataset_id} not found")

        try:
            with self._store.transaction() as tx:
                existing = self._find_lock(tx, dataset_id, reason)
                if existing is not None:
                    if exclusive:
                        raise DatasetLockedError(dataset_id, [existing])
                    logger.debug(
                        "Lock %s already held on dataset %d", reason.value, dataset_id
                    )
                    return existing, False

                lock = tx.merge(
                    DatasetLock(
                        dataset_id=dataset_id,
                        reason=reason,
                        user_id=user_id,
                        start_time=datetime.now(timezone.utc),
                        info=info,
                    )
                )
                user = tx.find(AuthenticatedUser, user_id)
                if user is not None and lock.id not in user.dataset_lock_ids:
                    user.dataset_lock_ids = user.dataset_lock_ids + [lock.id]
        except DuplicateEntityError:
            # Another caller acquired the same (dataset, reason) first.
            winner = self.get_lock_for(dataset_id, reason)
            if winner is None:
                raise
            if exclusive:
                raise DatasetLockedError(dataset_id, [winner]) from None
            return winner, False

        logger.info("Acquired %s lock on dataset %d", reason.value, dataset_id)
        return lock, True

    def remove_locks(self, dataset_id: int, reason: LockReason) -> int:
        """Release every lock of *reason* on the dataset.

        Returns the number of locks removed.  Holding users' lock indices
        are updated in the same transaction.
        """
        with self._store.transaction() as tx:
            locks = tx.query(
                "lock.by_dataset_and_reason", dataset_id=dataset_id, reason=reason.value
            )
            for lock in locks:
                self._drop(tx, lock)

        if locks:
            logger.info(
                "Released %d %s lock(s) on dataset %d", len(locks), reason.value, dataset_id
            )
        return len(locks)

    def release_lock(self, lock: DatasetLock) -> bool:
        """Release one specific lock.  Returns False if it was already gone."""
        with self._store.transaction() as tx:
            current = tx.find(DatasetLock, lock.id)
            if current is None:
                return False
            self._drop(tx, current)
        logger.info("Released %s lock on dataset %d", lock.reason.value, lock.dataset_id)
        return True

    @staticmethod
    def _drop(tx: StoreSession, lock: DatasetLock) -> None:
        user = tx.find(AuthenticatedUser, lock.user_id)
        if user is not None and lock.id in user.dataset_lock_ids:
            user.dataset_lock_ids = [i for i in user.dataset_lock_ids if i != lock.id]
        tx.remove(lock)

    def update_lock(self, lock: DatasetLock) -> DatasetLock:
        """Persist changes to a lock's holder or info."""
        if lock.id is None:
            raise EntityNotFoundError("Lock has not been acquired")
        previous = self._store.find(DatasetLock, lock.id)
        if previous is None:
            raise EntityNotFoundError(f"Lock {lock.id} not found")

        with self._store.transaction() as tx:
            if previous.user_id != lock.user_id:
                old_user = tx.find(AuthenticatedUser, previous.user_id)
                if old_user is not None:
                    old_user.dataset_lock_ids = [
                        i for i in old_user.dataset_lock_ids if i != lock.id
                    ]
                new_user = tx.find(AuthenticatedUser, lock.user_id)
                if new_user is not None and lock.id not in new_user.dataset_lock_ids:
                    new_user.dataset_lock_ids = new_user.dataset_lock_ids + [lock.id]
            tx.merge(lock)
        return lock

    @contextmanager
    def locked(
        self,
        dataset_id: int,
        reason: LockReason,
        user_id: int | None = None,
        info: str = "",
    ) -> Iterator[DatasetLock]:
        """Hold a lock for the duration of a block.

        Unlike ``add_lock`` this is exclusive: if the lock is already held
        the block does not run and ``DatasetLockedError`` is raised, also
        when a concurrent caller commits the same lock first.  On every exit
        path only the lock this call created is released.
        """
        lock, _ = self._acquire(dataset_id, reason, user_id, info, exclusive=True)
        try:
            yield lock
        finally:
            self.release_lock(lock)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def check_dataset_lock(self, dataset_id: int) -> bool:
        """Return True if the dataset holds any lock."""
        return bool(self._store.query_ids("lock.by_dataset", dataset_id=dataset_id))

    def get_locks(self, dataset_id: int) -> list[DatasetLock]:
        return self._store.query("lock.by_dataset", dataset_id=dataset_id)

    def get_lock_for(self, dataset_id: int, reason: LockReason) -> DatasetLock | None:
        locks = self._store.query(
            "lock.by_dataset_and_reason", dataset_id=dataset_id, reason=reason.value
        )
        return locks[0] if locks else None

    def list_locks(
        self,
        reason: LockReason | None = None,
        user_id: int | None = None,
    ) -> list[DatasetLock]:
        """List locks, optionally filtered by reason and/or holding user."""
        if reason is not None and user_id is not None:
            return self._store.query(
                "lock.by_reason_and_user", reason=reason.value, user_id=user_id
            )
        if reason is not None:
            return self._store.query("lock.by_reason", reason=reason.value)
        if user_id is not None:
            return self._store.query("lock.by_user", user_id=user_id)
        return self._store.query("lock.all")

    def get_locks_by_user(self, user_id: int) -> list[DatasetLock]:
        """Locks held by a user, resolved through the user's lock index."""
        user = self._store.find(AuthenticatedUser, user_id)
        if user is None:
            return []
        locks = []
        for lock_id in user.dataset_lock_ids:
            lock = self._store.find(DatasetLock, lock_id)
            if lock is not None:
                locks.append(lock)
        return locks

    # ------------------------------------------------------------------
    # Conflict checks
    # ------------------------------------------------------------------

    def check_edit_lock(self, dataset_id: int, can_publish: bool = False) -> None:
        """Raise if the dataset holds a lock that blocks editing.

        An InReview lock only blocks callers who cannot publish; every other
        reason blocks everyone.

        Raises
        ------
        DatasetLockedError
            With the conflicting locks attached.
        """
        conflicting = [
            lock
            for lock in self.get_locks(dataset_id)
            if not (lock.reason in REVIEW_REASONS and can_publish)
        ]
        if conflicting:
            raise DatasetLockedError(dataset_id, conflicting)

    def check_publish_lock(self, dataset_id: int) -> None:
        """Raise if any lock other than InReview is held on the dataset."""
        self.check_edit_lock(dataset_id, can_publish=True)

    @staticmethod
    def _find_lock(
        session: StoreSession, dataset_id: int, reason: LockReason
    ) -> DatasetLock | None:
        locks = session.query(
            "lock.by_dataset_and_reason", dataset_id=dataset_id, reason=reason.value
        )
        return locks[0] if locks else None
