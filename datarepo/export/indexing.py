"""IndexingService — keeps the search index in step with the store."""

from __future__ import annotations

import logging
from concurrent.futures import Future
from datetime import datetime, timezone

from datarepo.config import RepoConfig
from datarepo.core.background import BackgroundRunner
from datarepo.core.collaborators import IndexService
from datarepo.core.store import PersistenceStore
from datarepo.errors import EntityNotFoundError
from datarepo.models.dataset import Dataset

logger = logging.getLogger(__name__)


class IndexingService:
    """Indexes datasets and records when each was last indexed.

    Parameters
    ----------
    store:
        The persistence store.
    index:
        The search-index collaborator.
    config:
        Supplies the worker-pool size.
    runner:
        Background runner for the async variants.
    """

    def __init__(
        self,
        store: PersistenceStore,
        index: IndexService,
        config: RepoConfig,
        runner: BackgroundRunner | None = None,
    ) -> None:
        self._store = store
        self._index = index
        self._config = config
        self._runner = runner

    def index_dataset(self, dataset_id: int, is_minor_update: bool = False) -> Dataset:
        dataset = self._store.find(Dataset, dataset_id)
        if dataset is None:
            raise EntityNotFoundError(f"Dataset {dataset_id} not found")
        self._index.index_dataset(dataset, is_minor_update)
        with self._store.transaction() as tx:
            managed = tx.find(Dataset, dataset_id)
            if managed is not None:
                managed.index_time = datetime.now(timezone.utc)
        return dataset

    def index_dataset_async(
        self, dataset_id: int, is_minor_update: bool = False
    ) -> Future[Dataset | None]:
        return self._background().submit(self.index_dataset, dataset_id, is_minor_update)

    def reindex_unindexed(self) -> int:
        """Index every dataset that has never been indexed.

        Returns the number indexed.  A failure on one dataset is logged and
        the rest are still attempted.
        """
        indexed = 0
        for dataset_id in self._store.query_ids("dataset.unindexed"):
            try:
                self.index_dataset(dataset_id)
            except Exception:
                logger.exception("Indexing dataset %d failed", dataset_id)
            else:
                indexed += 1
        logger.info("Indexed %d previously unindexed dataset(s)", indexed)
        return indexed

    def reindex_unindexed_async(self) -> Future[int | None]:
        return self._background().submit(self.reindex_unindexed)

    def _background(self) -> BackgroundRunner:
        if self._runner is None:
            self._runner = BackgroundRunner(
                self._config.max_background_workers, name="datarepo-index"
            )
        return self._runner
