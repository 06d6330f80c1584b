"""Persistent identifiers for the files of a dataset.

Runs after upload, usually in the background: every file of the dataset
that has no identifier yet gets one.  Unless registration is deferred to
publication, the identifier is registered immediately.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future

from datarepo.config import RepoConfig
from datarepo.core.background import BackgroundRunner
from datarepo.core.store import PersistenceStore
from datarepo.errors import EntityNotFoundError
from datarepo.identifiers.registrar import IdentifierRegistrar
from datarepo.models.dataset import DataFile, Dataset
from datarepo.models.identifiers import RegistrationOutcome

logger = logging.getLogger(__name__)


class FileIdentifierService:
    """Allocates (and optionally registers) identifiers for dataset files.

    Parameters
    ----------
    store:
        The persistence store.
    registrar:
        Registration-with-retry, shared with the dataset workflows.
    config:
        Supplies ``register_when_published`` and the PID defaults.
    runner:
        Background runner for ``obtain_file_identifiers_async``.
    """

    def __init__(
        self,
        store: PersistenceStore,
        registrar: IdentifierRegistrar,
        config: RepoConfig,
        runner: BackgroundRunner | None = None,
    ) -> None:
        self._store = store
        self._registrar = registrar
        self._config = config
        self._runner = runner

    def obtain_file_identifiers(self, dataset_id: int) -> dict[int, RegistrationOutcome | None]:
        """Give every unidentified file of the dataset an identifier.

        Returns, per file id, the registration outcome, or None when
        registration is deferred to publication and only an identifier was
        assigned.  Files that already have an identifier are skipped.
        """
        # Only the files change; the dataset is read detached so a concurrent
        # update of it is never overwritten by this job.
        dataset = self._store.find(Dataset, dataset_id)
        if dataset is None:
            raise EntityNotFoundError(f"Dataset {dataset_id} not found")

        results: dict[int, RegistrationOutcome | None] = {}
        with self._store.transaction() as tx:
            for file_id in dataset.file_ids:
                data_file = tx.find(DataFile, file_id)
                if data_file is None or data_file.identifier:
                    continue
                logger.info("Obtaining persistent id for datafile id=%d", file_id)

                if self._config.register_when_published:
                    self._registrar.apply_defaults(data_file)
                    data_file.identifier = self._registrar.generate_identifier(data_file, tx, dataset)
                    results[file_id] = None
                else:
                    results[file_id] = self._registrar.register(data_file, tx, dataset=dataset)
                logger.debug("datafile %d identifier: %s", file_id, data_file.identifier)
        return results

    def obtain_file_identifiers_async(
        self, dataset_id: int
    ) -> Future[dict[int, RegistrationOutcome | None] | None]:
        """Run ``obtain_file_identifiers`` on the background runner.

        Failures are logged and the future resolves to None.
        """
        if self._runner is None:
            self._runner = BackgroundRunner(
                self._config.max_background_workers, name="datarepo-filepids"
            )
        return self._runner.submit(self.obtain_file_identifiers, dataset_id)
