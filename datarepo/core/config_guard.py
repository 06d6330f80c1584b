"""Configuration guard — enforces hard constraints before services start.

The guard runs once when a ``CommandContext`` is built and fails hard
(raises ``ConfigurationError``) if any constraint is violated.  Other code
should not scatter ``if is_production`` checks; the guard ensures the
services start in a known-good state.
"""

from __future__ import annotations

import logging

from datarepo.config import (
    DATAFILE_PID_DEPENDENT,
    DATAFILE_PID_INDEPENDENT,
    IDENTIFIER_STYLES,
    RepoConfig,
)
from datarepo.errors import ConfigurationError
from datarepo.models.notifications import NotificationType

logger = logging.getLogger(__name__)

_NOTIFICATION_NAMES = frozenset(t.value for t in NotificationType)


def enforce_config_constraints(config: RepoConfig) -> None:
    """Validate configuration constraints.

    Constraints enforced
    --------------------
    1. ``identifier_retry_limit`` and ``max_background_workers`` are positive.
    2. ``datafile_pid_format`` is DEPENDENT or INDEPENDENT.
    3. Mute lists only name known notification types.
    4. In production: debug is off and protocol/authority are configured.

    An unknown ``identifier_generation_style`` is not fatal; generation
    falls back to random strings and the guard logs a warning.

    Parameters
    ----------
    config:
        The active ``RepoConfig`` instance.

    Raises
    ------
    ConfigurationError
        If any constraint is violated.  All violations are reported at once.
    """
    violations: list[str] = []

    if config.identifier_retry_limit < 1:
        violations.append(
            f"identifier_retry_limit must be >= 1, got {config.identifier_retry_limit}. "
            "Set DATAREPO_IDENTIFIER_RETRY_LIMIT."
        )
    if config.max_background_workers < 1:
        violations.append(
            f"max_background_workers must be >= 1, got {config.max_background_workers}."
        )
    if config.datafile_pid_format not in (DATAFILE_PID_DEPENDENT, DATAFILE_PID_INDEPENDENT):
        violations.append(
            f"datafile_pid_format must be {DATAFILE_PID_DEPENDENT} or "
            f"{DATAFILE_PID_INDEPENDENT}, got {config.datafile_pid_format!r}."
        )
    for setting in ("always_muted", "never_muted"):
        unknown = sorted(set(getattr(config, setting)) - _NOTIFICATION_NAMES)
        if unknown:
            violations.append(
                f"{setting} names unknown notification types: {', '.join(unknown)}."
            )

    if config.identifier_generation_style not in IDENTIFIER_STYLES:
        logger.warning(
            "Unknown identifier_generation_style %r; random strings will be used.",
            config.identifier_generation_style,
        )

    if config.is_production:
        if config.debug:
            violations.append(
                "debug=True is not allowed in production. Set DATAREPO_DEBUG=false."
            )
        if not config.protocol:
            violations.append("protocol is required in production. Set DATAREPO_PROTOCOL.")
        if not config.authority:
            violations.append("authority is required in production. Set DATAREPO_AUTHORITY.")

    if violations:
        msg = "Configuration guard failed.\n" + "\n".join(f"  - {v}" for v in violations)
        logger.critical(msg)
        raise ConfigurationError(msg)

    logger.debug("Configuration guard passed.")
