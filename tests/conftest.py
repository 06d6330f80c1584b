"""Shared test fixtures for datarepo."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from datarepo.commands.base import CommandContext, CommandRequest
from datarepo.config import RepoConfig
from datarepo.core.collaborators import DigestUnfCalculator, OwnershipPermissions
from datarepo.core.store import PersistenceStore
from datarepo.identifiers.registry import ALREADY_EXISTS_MARKER, InMemoryRegistry
from datarepo.models.dataset import DataFile, Dataset, DatasetVersion
from datarepo.models.fields import DatasetField
from datarepo.models.identifiers import RegistrationResult, RegistrationStatus
from datarepo.models.users import AuthenticatedUser
from datarepo.notifications.mailer import OutboxMailer
from datarepo.notifications.service import NotificationService

# ---------------------------------------------------------------------------
# Stub collaborators
# ---------------------------------------------------------------------------


class RecordingIndex:
    """Index service that records every call; optionally fails."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[tuple[int | None, bool]] = []

    def index_dataset(self, dataset: Dataset, is_minor_update: bool) -> None:
        self.calls.append((dataset.id, is_minor_update))
        if self.fail:
            raise RuntimeError("index unavailable")


class RecordingIngest:
    """Ingest service that records calls and computes the real fingerprint."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self._calculator = DigestUnfCalculator()

    def recalculate_version_unf(self, version: DatasetVersion, files: list[DataFile]) -> None:
        self.calls.append(version.id)
        self._calculator.recalculate_version_unf(version, files)


class ScriptedRegistry:
    """Registry answering from a script.

    Each answer is a ``RegistrationStatus`` or an exception to raise.  The
    last answer repeats once the script is exhausted.
    """

    provider_name = "scripted"

    def __init__(self, *answers: RegistrationStatus | Exception) -> None:
        self._answers = list(answers) or [RegistrationStatus.REGISTERED]
        self.submitted: list[str | None] = []

    def create_identifier(self, target: Any) -> RegistrationResult:
        self.submitted.append(target.identifier)
        answer = self._answers.pop(0) if len(self._answers) > 1 else self._answers[0]
        if isinstance(answer, Exception):
            raise answer
        if answer == RegistrationStatus.COLLISION:
            return RegistrationResult(status=answer, message=ALREADY_EXISTS_MARKER)
        if answer == RegistrationStatus.FAILED:
            return RegistrationResult(status=answer, message="registry said no")
        return RegistrationResult(status=answer, message=target.global_id_string)


VALID_FIELDS: dict[str, list[str]] = {
    "title": ["Replication Data for: Soil Moisture"],
    "author": ["Finch, Robin", "Okafor, Ada"],
    "dsDescription": ["Hourly soil moisture readings."],
    "subject": ["Earth and Environmental Sciences"],
    "datasetContactEmail": ["robin.finch@example.org"],
}


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def config(tmp_path: Path) -> RepoConfig:
    """Provide a development config rooted in a temp directory."""
    return RepoConfig(
        db_path=tmp_path / "repository.db",
        log_dir=tmp_path / "logs",
        export_dir=tmp_path / "exports",
        protocol="doi",
        authority="10.5072",
        shoulder="FK2/",
    )


@pytest.fixture
def store(config: RepoConfig) -> PersistenceStore:
    """Provide a fresh PersistenceStore backed by a temp SQLite database."""
    return PersistenceStore(config.db_path)


@pytest.fixture
def save_user(store: PersistenceStore) -> Callable[..., AuthenticatedUser]:
    """Factory fixture: persist an AuthenticatedUser."""

    def _factory(identifier: str, **overrides: Any) -> AuthenticatedUser:
        defaults: dict[str, Any] = {
            "identifier": identifier,
            "email": f"{identifier}@example.org",
            "display_name": identifier.title(),
        }
        defaults.update(overrides)
        with store.transaction() as tx:
            user = tx.merge(AuthenticatedUser(**defaults))
        return user

    return _factory


@pytest.fixture
def creator(save_user: Callable[..., AuthenticatedUser]) -> AuthenticatedUser:
    return save_user("robin")


@pytest.fixture
def stranger(save_user: Callable[..., AuthenticatedUser]) -> AuthenticatedUser:
    return save_user("mallory")


@pytest.fixture
def superuser(save_user: Callable[..., AuthenticatedUser]) -> AuthenticatedUser:
    return save_user("admin", superuser=True)


@pytest.fixture
def make_dataset(
    store: PersistenceStore, creator: AuthenticatedUser
) -> Callable[..., Dataset]:
    """Factory fixture: persist a dataset with a valid draft and optional files.

    ``files`` is a list of keyword dicts for ``DataFile``.  Returns a
    detached copy loaded back from the store.
    """

    def _factory(
        fields: dict[str, list[str]] | None = None,
        files: list[dict[str, Any]] | None = None,
        **overrides: Any,
    ) -> Dataset:
        defaults: dict[str, Any] = {"creator_id": creator.id, "owner_id": creator.id}
        defaults.update(overrides)
        values = VALID_FIELDS if fields is None else fields
        draft = DatasetVersion(
            fields=[DatasetField(type_name=name, values=list(v)) for name, v in values.items()]
        )
        with store.transaction() as tx:
            dataset = tx.merge(Dataset(versions=[draft], **defaults))
            for file_kwargs in files or []:
                data_file = tx.merge(DataFile(**file_kwargs))
                dataset.add_file(data_file, label=file_kwargs.get("storage_identifier", ""))
        loaded = store.find(Dataset, dataset.id)
        assert loaded is not None
        return loaded

    return _factory


@pytest.fixture
def index() -> RecordingIndex:
    return RecordingIndex()


@pytest.fixture
def ingest() -> RecordingIngest:
    return RecordingIngest()


@pytest.fixture
def mailer(config: RepoConfig) -> OutboxMailer:
    return OutboxMailer(config.system_email)


@pytest.fixture
def notifications(
    store: PersistenceStore, mailer: OutboxMailer, config: RepoConfig
) -> NotificationService:
    return NotificationService(store, mailer, config)


@pytest.fixture
def make_registry() -> type[ScriptedRegistry]:
    """Provide the scripted registry class, for tests that script answers."""
    return ScriptedRegistry


@pytest.fixture
def make_context(
    config: RepoConfig,
    store: PersistenceStore,
    index: RecordingIndex,
    ingest: RecordingIngest,
    notifications: NotificationService,
) -> Callable[..., CommandContext]:
    """Factory fixture: a CommandContext with recording stubs.

    Overrides replace any constructor argument; ``config_updates`` copies
    the config with the given fields changed.
    """

    def _factory(config_updates: dict[str, Any] | None = None, **overrides: Any) -> CommandContext:
        defaults: dict[str, Any] = {
            "config": config.model_copy(update=config_updates or {}),
            "store": store,
            "registry": InMemoryRegistry(),
            "index": index,
            "ingest": ingest,
            "permissions": OwnershipPermissions(),
            "notifications": notifications,
        }
        defaults.update(overrides)
        return CommandContext(**defaults)

    return _factory


@pytest.fixture
def ctx(make_context: Callable[..., CommandContext]) -> CommandContext:
    """Convenience: a ready-made CommandContext with an in-memory registry."""
    return make_context()


@pytest.fixture
def as_user() -> Callable[[Any], CommandRequest]:
    """Factory fixture: wrap a principal in a CommandRequest."""
    return CommandRequest
