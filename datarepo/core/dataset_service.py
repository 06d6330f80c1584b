"""DatasetService — dataset lookups, thumbnails, and storage accounting."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from datarepo.config import RepoConfig
from datarepo.core.store import PersistenceStore
from datarepo.errors import EntityNotFoundError, InvalidOperationError
from datarepo.models.dataset import DataFile, Dataset, DatasetVersion
from datarepo.models.identifiers import GlobalId
from datarepo.models.users import DatasetVersionUser

logger = logging.getLogger(__name__)


class DatasetService:
    """Read-mostly dataset operations shared by the workflows and the CLI.

    Parameters
    ----------
    store:
        The persistence store.
    config:
        Repository configuration (for the export cache location).
    """

    def __init__(self, store: PersistenceStore, config: RepoConfig) -> None:
        self._store = store
        self._config = config

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find(self, dataset_id: int) -> Dataset | None:
        return self._store.find(Dataset, dataset_id)

    def get(self, dataset_id: int) -> Dataset:
        """Like ``find`` but raises ``EntityNotFoundError``."""
        dataset = self.find(dataset_id)
        if dataset is None:
            raise EntityNotFoundError(f"Dataset {dataset_id} not found")
        return dataset

    def find_by_owner(self, owner_id: int) -> list[Dataset]:
        return self._store.query("dataset.by_owner", owner_id=owner_id)

    def find_published_by_owner(self, owner_id: int) -> list[Dataset]:
        return [d for d in self.find_by_owner(owner_id) if d.is_released]

    def find_by_creator(self, creator_id: int) -> list[Dataset]:
        return self._store.query("dataset.by_creator", creator_id=creator_id)

    def find_all_local_ids(self) -> list[int]:
        """Ids of every dataset that was not harvested from elsewhere."""
        return self._store.query_ids("dataset.local")

    def find_all_unindexed_ids(self) -> list[int]:
        return self._store.query_ids("dataset.unindexed")

    def find_by_global_id(self, global_id: str) -> Dataset | None:
        """Look up a dataset by ``protocol:authority/identifier``.

        Malformed strings find nothing.
        """
        gid = GlobalId.parse(global_id)
        if gid is None:
            logger.debug("Malformed global id %r", global_id)
            return None
        found = self._store.query(
            "dataset.by_global_id",
            protocol=gid.protocol,
            authority=gid.authority,
            identifier=gid.identifier,
        )
        return found[0] if found else None

    def files_of(self, dataset: Dataset) -> list[DataFile]:
        """The DataFile entities owned by the dataset."""
        files = []
        for file_id in dataset.file_ids:
            data_file = self._store.find(DataFile, file_id)
            if data_file is not None:
                files.append(data_file)
        return files

    def get_title_from_latest_version(self, dataset_id: int, include_draft: bool = True) -> str:
        """Title of the newest version, or of the newest released one.

        Returns an empty string when there is no such version.
        """
        dataset = self.find(dataset_id)
        if dataset is None:
            return ""
        for version in dataset.versions:
            if version.is_draft and not include_draft:
                continue
            title = version.get_field("title")
            return title.values[0] if title and title.values else ""
        return ""

    # ------------------------------------------------------------------
    # Version-user markers
    # ------------------------------------------------------------------

    def get_dataset_version_user(
        self, version: DatasetVersion, user_id: int
    ) -> DatasetVersionUser | None:
        found = self._store.query(
            "version_user.by_version_and_user",
            dataset_version_id=version.id,
            user_id=user_id,
        )
        return found[0] if found else None

    def touch_dataset_version_user(
        self, version: DatasetVersion, user_id: int, when: datetime | None = None
    ) -> DatasetVersionUser:
        """Create or refresh the "last interacted with" marker."""
        when = when or datetime.now(timezone.utc)
        with self._store.transaction() as tx:
            found = tx.query(
                "version_user.by_version_and_user",
                dataset_version_id=version.id,
                user_id=user_id,
            )
            if found:
                marker = found[0]
                marker.last_update_date = when
            else:
                marker = tx.merge(
                    DatasetVersionUser(
                        dataset_version_id=version.id, user_id=user_id, last_update_date=when
                    )
                )
        return marker

    # ------------------------------------------------------------------
    # Thumbnails
    # ------------------------------------------------------------------

    def set_dataset_file_as_thumbnail(self, dataset_id: int, data_file_id: int) -> Dataset:
        """Use one of the dataset's own files as its thumbnail."""
        with self._store.transaction() as tx:
            dataset = tx.find(Dataset, dataset_id)
            if dataset is None:
                raise EntityNotFoundError(f"Dataset {dataset_id} not found")
            if data_file_id not in dataset.file_ids:
                raise InvalidOperationError(
                    f"File {data_file_id} does not belong to dataset {dataset_id}"
                )
            dataset.thumbnail_file_id = data_file_id
            dataset.use_generic_thumbnail = False
        return dataset

    def remove_dataset_thumbnail(self, dataset_id: int) -> Dataset:
        with self._store.transaction() as tx:
            dataset = tx.find(Dataset, dataset_id)
            if dataset is None:
                raise EntityNotFoundError(f"Dataset {dataset_id} not found")
            dataset.thumbnail_file_id = None
            dataset.use_generic_thumbnail = True
        return dataset

    # ------------------------------------------------------------------
    # Storage accounting
    # ------------------------------------------------------------------

    def cached_export_dir(self, dataset: Dataset) -> Path:
        return self._config.export_dir / str(dataset.id)

    def find_storage_size(self, dataset: Dataset, count_cached_extras: bool = False) -> int:
        """Total bytes stored for the dataset.

        By default this is the size of every file plus the stored original
        of each ingested tabular file.  With ``count_cached_extras`` the
        cached metadata exports are counted instead of the originals.
        Harvested datasets store nothing locally.
        """
        if dataset.harvested:
            return 0

        total = 0
        for data_file in self.files_of(dataset):
            total += data_file.filesize
            if not count_cached_extras and data_file.is_tabular and data_file.original_file_size:
                total += data_file.original_file_size

        if count_cached_extras:
            cache_dir = self.cached_export_dir(dataset)
            if cache_dir.is_dir():
                total += sum(p.stat().st_size for p in cache_dir.glob("export_*.cached"))
        return total
