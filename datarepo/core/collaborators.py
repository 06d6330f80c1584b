"""Narrow interfaces to the services the workflows depend on.

Each collaborator is a ``Protocol`` so that tests and deployments can plug
in their own implementations.  Defaults that need no external system live
here as well.
"""

from __future__ import annotations

import base64
import hashlib
import logging
from typing import Protocol, runtime_checkable

from datarepo.models.dataset import DataFile, Dataset, DatasetVersion
from datarepo.models.users import Principal

logger = logging.getLogger(__name__)


@runtime_checkable
class IndexService(Protocol):
    """Search-index boundary."""

    def index_dataset(self, dataset: Dataset, is_minor_update: bool) -> None: ...


@runtime_checkable
class IngestService(Protocol):
    """Recomputes the version fingerprint after its file set changes."""

    def recalculate_version_unf(self, version: DatasetVersion, files: list[DataFile]) -> None: ...


@runtime_checkable
class PermissionService(Protocol):
    def can_edit(self, user: Principal, dataset: Dataset) -> bool: ...

    def can_publish(self, user: Principal, dataset: Dataset) -> bool: ...


class OwnershipPermissions:
    """Superusers may do anything; otherwise only the dataset's creator."""

    def can_edit(self, user: Principal, dataset: Dataset) -> bool:
        if not user.is_authenticated:
            return False
        return user.superuser or (user.id is not None and user.id == dataset.creator_id)

    def can_publish(self, user: Principal, dataset: Dataset) -> bool:
        return self.can_edit(user, dataset)


class NullIndexService:
    """Index service for deployments without a search index."""

    def index_dataset(self, dataset: Dataset, is_minor_update: bool) -> None:
        logger.debug("Index disabled; skipping dataset %s", dataset.id)


class DigestUnfCalculator:
    """Derives a version UNF from the UNFs of its files.

    The version fingerprint is ``UNF:6:`` followed by the base64 of the
    first 16 bytes of a SHA-256 over the sorted file fingerprints.  A
    version without fingerprinted files has no UNF.
    """

    def recalculate_version_unf(self, version: DatasetVersion, files: list[DataFile]) -> None:
        in_version = {fmd.data_file_id for fmd in version.file_metadatas}
        unfs = sorted(f.unf for f in files if f.id in in_version and f.unf)
        if not unfs:
            version.unf = None
            return
        digest = hashlib.sha256("\n".join(unfs).encode("utf-8")).digest()[:16]
        version.unf = "UNF:6:" + base64.b64encode(digest).decode("ascii")
