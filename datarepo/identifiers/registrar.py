"""Registration with retry-on-collision.

The registrar submits an entity's identifier to the registry.  When the
registry reports that the identifier is already taken, a fresh one is
generated and submitted again, up to ``identifier_retry_limit`` registry
calls in total.  Any other failure, including an exception from the
registry, stops at once and leaves the entity unregistered.

The loop is bounded by attempt count, so a misbehaving registry can only
delay a caller, never block it indefinitely.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from datarepo.config import RepoConfig
from datarepo.core.store import StoreSession
from datarepo.errors import ConfigurationError
from datarepo.identifiers.generator import IdentifierGenerator
from datarepo.identifiers.registry import IdentifierRegistry
from datarepo.models.dataset import DataFile, Dataset, IdentifiableObject
from datarepo.models.identifiers import RegistrationOutcome, RegistrationStatus

logger = logging.getLogger(__name__)


class IdentifierRegistrar:
    """Registers persistent identifiers, regenerating on collision.

    Parameters
    ----------
    registry:
        The identifier registry boundary.
    generator:
        Produces replacement identifiers after a collision.
    config:
        Supplies the retry ceiling and default protocol/authority.
    """

    def __init__(
        self,
        registry: IdentifierRegistry,
        generator: IdentifierGenerator,
        config: RepoConfig,
    ) -> None:
        self._registry = registry
        self._generator = generator
        self._config = config

    @property
    def retry_limit(self) -> int:
        return self._config.identifier_retry_limit

    def register(
        self,
        target: IdentifiableObject,
        session: StoreSession,
        dataset: Dataset | None = None,
    ) -> RegistrationOutcome:
        """Register ``target``, retrying with new identifiers on collision.

        ``dataset`` is the owning dataset when ``target`` is a DataFile.

        On success the registration timestamp and ``identifier_registered``
        are stamped on the target.  The target is mutated in place and is
        not flushed; the caller owns the transaction.  Never raises for
        registry failures: the outcome reports them.

        Raises
        ------
        ConfigurationError
            If the retry limit allows no registry call at all.
        """
        if self.retry_limit < 1:
            raise ConfigurationError(
                f"identifier_retry_limit must be >= 1, got {self.retry_limit}"
            )
        if target.global_id_create_time is not None:
            return RegistrationOutcome(
                status=RegistrationStatus.REGISTERED,
                attempts=0,
                identifier=target.identifier,
                registered_at=target.global_id_create_time,
                message="already registered",
            )

        self.apply_defaults(target)
        if not target.identifier:
            target.identifier = self.generate_identifier(target, session, dataset)

        attempts = 0
        while True:
            if attempts > 0:
                target.identifier = self.generate_identifier(target, session, dataset)
            attempts += 1
            try:
                result = self._registry.create_identifier(target)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "Failed to create identifier %s with %s: %s",
                    target.identifier,
                    self._registry.provider_name,
                    exc,
                    exc_info=True,
                )
                return RegistrationOutcome(
                    status=RegistrationStatus.FAILED,
                    attempts=attempts,
                    identifier=target.identifier,
                    message=str(exc),
                )
            if result.status != RegistrationStatus.COLLISION or attempts >= self.retry_limit:
                break
            logger.debug(
                "Identifier %s already exists (attempt %d/%d)",
                target.identifier,
                attempts,
                self.retry_limit,
            )

        if result.status == RegistrationStatus.REGISTERED:
            now = datetime.now(timezone.utc)
            target.global_id_create_time = now
            target.identifier_registered = True
            logger.info(
                "Registered %s after %d attempt(s)", target.global_id_string, attempts
            )
            return RegistrationOutcome(
                status=result.status,
                attempts=attempts,
                identifier=target.identifier,
                registered_at=now,
                message=result.message,
            )

        if result.status == RegistrationStatus.COLLISION:
            logger.warning(
                "Registry refused registration, requested id(s) already in use; "
                "gave up after %d attempts. Current (last requested) identifier: %s",
                attempts,
                target.identifier,
            )
        else:
            logger.warning(
                "Failed to create identifier (%s) with %s: %s",
                target.identifier,
                self._registry.provider_name,
                result.message,
            )
        return RegistrationOutcome(
            status=result.status,
            attempts=attempts,
            identifier=target.identifier,
            message=result.message,
        )

    def apply_defaults(self, target: IdentifiableObject) -> None:
        if not target.protocol:
            target.protocol = self._config.protocol
        if not target.authority:
            target.authority = self._config.authority

    def generate_identifier(
        self,
        target: IdentifiableObject,
        session: StoreSession,
        dataset: Dataset | None,
    ) -> str:
        if isinstance(target, DataFile):
            if dataset is None:
                raise ValueError("A DataFile identifier needs its owning dataset")
            return self._generator.generate_datafile_identifier(target, dataset, session)
        if isinstance(target, Dataset):
            return self._generator.generate_dataset_identifier(target, session)
        raise TypeError(f"Cannot generate identifiers for {type(target).__name__}")
