"""Identifier generation for datasets and files.

Generated identifiers are locally unique: no other dataset (or file) in the
store, committed or pending in the current session, uses the same
protocol/authority/identifier triple.  Global uniqueness is the registry's
business.
"""

from __future__ import annotations

import logging
import random
import string

from datarepo.config import (
    DATAFILE_PID_DEPENDENT,
    IDENTIFIER_STYLE_RANDOM,
    IDENTIFIER_STYLE_SEQUENCE,
    RepoConfig,
)
from datarepo.core.store import StoreSession
from datarepo.errors import PersistenceError
from datarepo.models.dataset import DataFile, Dataset, IdentifiableObject

logger = logging.getLogger(__name__)

RANDOM_IDENTIFIER_LENGTH = 6
_ALPHABET = string.ascii_uppercase + string.digits
# Guard against a sequence that keeps returning taken values.
_MAX_SEQUENCE_DRAWS = 1000


class IdentifierGenerator:
    """Produces candidate identifiers in the configured style.

    Parameters
    ----------
    config:
        Supplies the generation style, shoulder, and file PID format.
    rng:
        Random source for ``randomString`` identifiers.
    """

    def __init__(self, config: RepoConfig, rng: random.Random | None = None) -> None:
        self._config = config
        self._rng = rng or random.SystemRandom()

    # ------------------------------------------------------------------
    # Datasets
    # ------------------------------------------------------------------

    def generate_dataset_identifier(self, dataset: Dataset, session: StoreSession) -> str:
        style = self._config.identifier_generation_style
        if style == IDENTIFIER_STYLE_SEQUENCE:
            return self._from_sequence(dataset, session)
        if style != IDENTIFIER_STYLE_RANDOM:
            logger.warning("Unknown identifier style %r; using a random string", style)
        return self._random(dataset, session)

    def _random(self, target: IdentifiableObject, session: StoreSession) -> str:
        while True:
            identifier = self._config.shoulder + "".join(
                self._rng.choice(_ALPHABET) for _ in range(RANDOM_IDENTIFIER_LENGTH)
            )
            if self.is_identifier_locally_unique(identifier, target, session):
                return identifier

    def _from_sequence(self, target: IdentifiableObject, session: StoreSession) -> str:
        for _ in range(_MAX_SEQUENCE_DRAWS):
            identifier = self._config.shoulder + session.store.next_identifier_value()
            if self.is_identifier_locally_unique(identifier, target, session):
                return identifier
        raise PersistenceError("Identifier sequence produced no unused value")

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def generate_datafile_identifier(
        self, data_file: DataFile, dataset: Dataset, session: StoreSession
    ) -> str:
        """Identifier for a file.

        DEPENDENT files are numbered under their dataset's identifier,
        continuing from the highest number already in use.  INDEPENDENT
        files get an identifier generated like a dataset's.
        """
        if self._config.datafile_pid_format == DATAFILE_PID_DEPENDENT and dataset.identifier:
            next_number = self.max_existing_datafile_number(dataset, session) + 1
            # A rejected candidate of this file is skipped too.
            prefix = f"{dataset.identifier}/"
            if data_file.identifier and data_file.identifier.startswith(prefix):
                suffix = data_file.identifier[len(prefix):]
                if suffix.isdigit():
                    next_number = max(next_number, int(suffix) + 1)
            while True:
                identifier = f"{dataset.identifier}/{next_number}"
                if self.is_identifier_locally_unique(identifier, data_file, session):
                    return identifier
                next_number += 1
        if self._config.identifier_generation_style == IDENTIFIER_STYLE_SEQUENCE:
            return self._from_sequence(data_file, session)
        return self._random(data_file, session)

    @staticmethod
    def max_existing_datafile_number(dataset: Dataset, session: StoreSession) -> int:
        """Highest numeric suffix among the dataset's file identifiers, or 0."""
        highest = 0
        files = session.query("datafile.by_owner", owner_id=dataset.id) if dataset.id else []
        files += [f for f in session.pending(DataFile) if f.owner_id == dataset.id and f not in files]
        for data_file in files:
            if not data_file.identifier:
                continue
            suffix = data_file.identifier.rsplit("/", 1)[-1]
            if suffix.isdigit():
                highest = max(highest, int(suffix))
        return highest

    # ------------------------------------------------------------------
    # Uniqueness
    # ------------------------------------------------------------------

    @staticmethod
    def is_identifier_locally_unique(
        identifier: str, target: IdentifiableObject, session: StoreSession
    ) -> bool:
        """True if no other entity of the same kind uses the triple."""
        kind = type(target)
        query = "datafile.by_global_id" if kind is DataFile else "dataset.by_global_id"
        params = {
            "protocol": target.protocol,
            "authority": target.authority,
            "identifier": identifier,
        }
        if any(e.id != target.id for e in session.query(query, **params)):
            return False
        return not any(
            e.id != target.id
            and e.identifier == identifier
            and e.authority == target.authority
            and e.protocol == target.protocol
            for e in session.pending(kind)
        )
