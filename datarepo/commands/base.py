"""Command infrastructure: the caller's request, injected collaborators, and the base command.

Every concrete command inherits from ``DatasetCommand`` and implements only
``execute()``.  The ``run()`` wrapper is **not overridable**: it logs the
command lifecycle, including failures, and re-raises every error unchanged.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import ClassVar, Generic, TypeVar, final

from datarepo.config import RepoConfig
from datarepo.core.collaborators import IndexService, IngestService, PermissionService
from datarepo.core.config_guard import enforce_config_constraints
from datarepo.core.dataset_service import DatasetService
from datarepo.core.lock_manager import LockManager
from datarepo.core.store import PersistenceStore
from datarepo.errors import EntityNotFoundError, PermissionDeniedError, RepositoryError
from datarepo.export.service import ExportService
from datarepo.identifiers.generator import IdentifierGenerator
from datarepo.identifiers.registrar import IdentifierRegistrar
from datarepo.identifiers.registry import IdentifierRegistry
from datarepo.models.dataset import Dataset
from datarepo.models.fields import DEFAULT_SCHEMA, MetadataSchema
from datarepo.models.users import AuthenticatedUser, Principal
from datarepo.notifications.service import NotificationService

logger = logging.getLogger(__name__)

R = TypeVar("R")


@dataclass(frozen=True)
class CommandRequest:
    """Who is asking.  Authentication happened upstream."""

    user: Principal


class CommandContext:
    """Collaborators shared by every command, passed explicitly.

    Construction runs the configuration guard, so a context only exists
    for a configuration that passed it.

    Parameters
    ----------
    config:
        Repository configuration.
    store:
        The persistence store.
    registry:
        Identifier registry.
    index:
        Search-index collaborator.
    ingest:
        Version fingerprint recalculation.
    permissions:
        Edit/publish permission checks.
    schema:
        Metadata schema draft versions are validated against.
    notifications:
        Optional; without it no notifications are sent.
    exports:
        Optional; without it nothing is exported after publication.

    Raises
    ------
    ConfigurationError
        If the configuration violates a constraint.
    """

    def __init__(
        self,
        config: RepoConfig,
        store: PersistenceStore,
        registry: IdentifierRegistry,
        index: IndexService,
        ingest: IngestService,
        permissions: PermissionService,
        schema: MetadataSchema = DEFAULT_SCHEMA,
        notifications: NotificationService | None = None,
        exports: ExportService | None = None,
    ) -> None:
        enforce_config_constraints(config)
        self.config = config
        self.store = store
        self.registry = registry
        self.index = index
        self.ingest = ingest
        self.permissions = permissions
        self.schema = schema
        self.notifications = notifications
        self.exports = exports

        self.locks = LockManager(store)
        self.generator = IdentifierGenerator(config)
        self.registrar = IdentifierRegistrar(registry, self.generator, config)
        self.datasets = DatasetService(store, config)


class DatasetCommand(abc.ABC, Generic[R]):
    """Base for commands acting on one dataset.

    Parameters
    ----------
    dataset:
        The dataset, or its id.  A ``Dataset`` instance may carry unsaved
        edits to its draft version.
    request:
        The caller.
    """

    command_name: ClassVar[str] = "command"

    def __init__(self, dataset: Dataset | int, request: CommandRequest) -> None:
        self._dataset_arg = dataset
        self._request = request
        self._timestamp = datetime.now(timezone.utc)

    @property
    def request(self) -> CommandRequest:
        return self._request

    @property
    def user(self) -> Principal:
        return self._request.user

    @property
    def timestamp(self) -> datetime:
        """When the command was created; every stamp it writes uses this."""
        return self._timestamp

    @abc.abstractmethod
    def execute(self, ctx: CommandContext) -> R:
        ...

    @final
    def run(self, ctx: CommandContext) -> R:
        """Execute the command.  **Do not override.**"""
        logger.info("%s: starting for %s", self.command_name, self._describe_target())
        try:
            result = self.execute(ctx)
        except RepositoryError as exc:
            logger.warning("%s: aborted for %s: %s", self.command_name, self._describe_target(), exc)
            raise
        except Exception:
            logger.exception("%s: failed for %s", self.command_name, self._describe_target())
            raise
        logger.info("%s: finished for %s", self.command_name, self._describe_target())
        return result

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def require_authenticated_user(self, action: str) -> AuthenticatedUser:
        user = self.user
        if not isinstance(user, AuthenticatedUser):
            raise PermissionDeniedError(f"Only authenticated users can {action}")
        return user

    def resolve_dataset(self, ctx: CommandContext) -> Dataset:
        if isinstance(self._dataset_arg, Dataset):
            return self._dataset_arg
        dataset = ctx.store.find(Dataset, self._dataset_arg)
        if dataset is None:
            raise EntityNotFoundError(f"Dataset {self._dataset_arg} not found")
        # Later calls see the same instance and its in-memory edits.
        self._dataset_arg = dataset
        return dataset

    def _describe_target(self) -> str:
        if isinstance(self._dataset_arg, Dataset):
            return f"dataset {self._dataset_arg.id}"
        return f"dataset {self._dataset_arg}"
