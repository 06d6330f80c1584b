"""Repository configuration — env-driven, passed explicitly to every service.

Centralized config using pydantic-settings for environment variable
support. Reads from a .env file and DATAREPO_* environment variables.

There is no module-level config instance: callers build a ``RepoConfig``
once and hand it to the ``CommandContext`` and the services they create.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

IDENTIFIER_STYLE_RANDOM = "randomString"
IDENTIFIER_STYLE_SEQUENCE = "storedProcGenerated"
IDENTIFIER_STYLES = (IDENTIFIER_STYLE_RANDOM, IDENTIFIER_STYLE_SEQUENCE)

DATAFILE_PID_DEPENDENT = "DEPENDENT"
DATAFILE_PID_INDEPENDENT = "INDEPENDENT"


class RepoConfig(BaseSettings):
    """Repository configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export DATAREPO_AUTHORITY=10.5072
        export DATAREPO_SHOULDER=FK2/
        export DATAREPO_ALWAYS_MUTED=ASSIGNROLE,REVOKEROLE

    Or via .env file::

        DATAREPO_ENVIRONMENT=production
        DATAREPO_REGISTER_WHEN_PUBLISHED=true
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DATAREPO_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False

    # Storage paths
    db_path: Path = Path(".datarepo/repository.db")
    log_dir: Path = Path(".datarepo/logs")
    export_dir: Path = Path(".datarepo/exports")

    # Persistent identifiers
    identifier_generation_style: str = IDENTIFIER_STYLE_RANDOM
    shoulder: str = ""
    protocol: str = "doi"
    authority: str = ""
    datafile_pid_format: str = DATAFILE_PID_DEPENDENT
    register_when_published: bool = False
    file_pids_enabled: bool = False
    # Total registry calls allowed per registration when the registry keeps
    # answering "identifier already exists".
    identifier_retry_limit: int = 10

    # Notification mute policy: notification type names
    always_muted: Annotated[frozenset[str], NoDecode] = frozenset()
    never_muted: Annotated[frozenset[str], NoDecode] = frozenset()
    system_email: str = "noreply@localhost"

    # Background work (exports, index refresh, file PIDs)
    max_background_workers: int = 4

    @field_validator("always_muted", "never_muted", mode="before")
    @classmethod
    def _split_comma_separated(cls, value: Any) -> Any:
        """Accept "A,B" strings as well as JSON lists and Python iterables."""
        if isinstance(value, str):
            stripped = value.strip()
            if stripped.startswith("["):
                return frozenset(str(v).strip() for v in json.loads(stripped))
            return frozenset(v.strip() for v in stripped.split(",") if v.strip())
        return value

    @property
    def is_production(self) -> bool:
        """Whether running in production mode."""
        return self.environment == "production"
