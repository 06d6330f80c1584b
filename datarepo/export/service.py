"""ExportService — bulk metadata export of published datasets.

The export-all job walks the ids of every local dataset and loads one
dataset at a time.  A dataset is exported when it is published, not
deaccessioned, and its last export predates its latest release (or
always, when forced).  Each dataset's failure is counted and logged and
never stops the job.

Every job writes its own log file, ``export_<timestamp>.log``, under the
configured log directory.  If that file cannot be opened the job does not
run.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from datarepo.config import RepoConfig
from datarepo.core.background import BackgroundRunner
from datarepo.core.store import PersistenceStore
from datarepo.errors import EntityNotFoundError
from datarepo.export.json_exporter import Exporter
from datarepo.models.dataset import Dataset

logger = logging.getLogger(__name__)

EXPORT_LOG_TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S"


class ExportSummary(BaseModel):
    """Counts reported by one export-all job."""

    model_config = ConfigDict(frozen=True)

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    forced: bool = False
    log_file: Path | None = None
    aborted: bool = False


def needs_export(dataset: Dataset, force: bool = False) -> bool:
    """Whether an export-all job should export this dataset.

    ``Dataset.is_released`` alone only says the dataset was published at
    some point; combined with "not deaccessioned" and a released version
    it is an accurate test.
    """
    released = dataset.released_version
    if not dataset.is_released or released is None or dataset.is_deaccessioned:
        return False
    if force:
        return True
    publication = released.release_time
    return publication is not None and (
        dataset.last_export_time is None or dataset.last_export_time < publication
    )


class ExportService:
    """Exports published datasets through an ``Exporter``.

    Parameters
    ----------
    store:
        The persistence store.
    exporter:
        Writes the export formats of one dataset.
    config:
        Supplies the log directory and the worker-pool size.
    runner:
        Background runner for the async variants.  Created on first use
        if not given.
    """

    def __init__(
        self,
        store: PersistenceStore,
        exporter: Exporter,
        config: RepoConfig,
        runner: BackgroundRunner | None = None,
    ) -> None:
        self._store = store
        self._exporter = exporter
        self._config = config
        self._runner = runner

    # ------------------------------------------------------------------
    # Single dataset
    # ------------------------------------------------------------------

    def export_dataset(self, dataset_id: int) -> list[Path]:
        """Export every format of one dataset and stamp its last export time."""
        dataset = self._store.find(Dataset, dataset_id)
        if dataset is None:
            raise EntityNotFoundError(f"Dataset {dataset_id} not found")
        written = self._exporter.export_all_formats(dataset)
        with self._store.transaction() as tx:
            managed = tx.find(Dataset, dataset_id)
            if managed is not None:
                managed.last_export_time = datetime.now(timezone.utc)
        return written

    def export_dataset_async(self, dataset_id: int) -> Future[list[Path] | None]:
        return self._background().submit(self.export_dataset, dataset_id)

    # ------------------------------------------------------------------
    # Export-all
    # ------------------------------------------------------------------

    def export_all(self, force: bool = False) -> ExportSummary:
        """Export every published dataset that needs it (all of them if forced)."""
        timestamp = datetime.now().strftime(EXPORT_LOG_TIMESTAMP_FORMAT)
        log_file = self._config.log_dir / f"export_{timestamp}.log"
        job_logger = logging.getLogger(f"{__name__}.ExportAll{timestamp}")
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(log_file, encoding="utf-8")
        except OSError:
            logger.exception("Cannot open export log %s; export-all job not started", log_file)
            return ExportSummary(forced=force, aborted=True)

        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        job_logger.addHandler(handler)
        job_logger.propagate = False
        job_logger.setLevel(logging.INFO)

        processed = succeeded = failed = 0
        try:
            job_logger.info("Starting an export all job")
            for dataset_id in self._store.query_ids("dataset.local"):
                # One dataset at a time; there may be very many.
                dataset = self._store.find(Dataset, dataset_id)
                if dataset is None or not needs_export(dataset, force):
                    continue
                processed += 1
                try:
                    self.export_dataset(dataset_id)
                except Exception as exc:  # noqa: BLE001
                    job_logger.info(
                        "Error exporting dataset: %s %s; %s",
                        dataset.display_name,
                        dataset.global_id_string,
                        exc,
                    )
                    failed += 1
                else:
                    job_logger.info(
                        "Success exporting dataset: %s %s",
                        dataset.display_name,
                        dataset.global_id_string,
                    )
                    succeeded += 1
            job_logger.info("Datasets processed: %d", processed)
            job_logger.info("Datasets exported successfully: %d", succeeded)
            job_logger.info("Datasets failures: %d", failed)
            job_logger.info("Finished export-all job.")
        finally:
            job_logger.removeHandler(handler)
            handler.close()

        logger.info(
            "Export-all finished: %d processed, %d succeeded, %d failed",
            processed,
            succeeded,
            failed,
        )
        return ExportSummary(
            processed=processed,
            succeeded=succeeded,
            failed=failed,
            forced=force,
            log_file=log_file,
        )

    def reexport_all(self) -> ExportSummary:
        """Export every published dataset regardless of its last export time."""
        return self.export_all(force=True)

    def export_all_async(self) -> Future[ExportSummary | None]:
        return self._background().submit(self.export_all, False)

    def reexport_all_async(self) -> Future[ExportSummary | None]:
        return self._background().submit(self.export_all, True)

    def _background(self) -> BackgroundRunner:
        if self._runner is None:
            self._runner = BackgroundRunner(
                self._config.max_background_workers, name="datarepo-export"
            )
        return self._runner
