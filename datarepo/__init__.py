"""datarepo: dataset versioning, persistent identifiers, locks, and notifications
for a research-data repository.

v0.3.0:
  - Dataset update and publish workflows with a single commit per call
  - Identifier registration with bounded retry on collision
  - Per-(dataset, reason) locks with a locks-by-user index
  - Mute-policy notifications with an email outbox
  - Background metadata export and index synchronization
  - SQLite-backed store, env-driven config, operator CLI
"""

__version__ = "0.3.0"

from datarepo.commands import (
    CommandContext,
    CommandRequest,
    PublishDatasetCommand,
    UpdateDatasetCommand,
)
from datarepo.config import RepoConfig
from datarepo.core.store import PersistenceStore

__all__ = [
    "CommandContext",
    "CommandRequest",
    "PersistenceStore",
    "PublishDatasetCommand",
    "RepoConfig",
    "UpdateDatasetCommand",
    "__version__",
]
