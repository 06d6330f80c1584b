"""Identifier registry boundary.

A registry answers each submission with a ``RegistrationResult`` whose
status is REGISTERED, COLLISION, or FAILED.  Registries that still speak
the legacy free-text protocol are wrapped in ``LegacyRegistryAdapter``,
which maps their response with ``parse_registry_response``.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from datarepo.models.dataset import IdentifiableObject
from datarepo.models.identifiers import RegistrationResult, RegistrationStatus

logger = logging.getLogger(__name__)

# Substring a legacy registry returns when the identifier is taken.
ALREADY_EXISTS_MARKER = "identifier already exists"


def parse_registry_response(response: str, identifier: str | None) -> RegistrationResult:
    """Map a legacy registry's free-text response onto a structured result.

    - the response contains the submitted identifier: REGISTERED
    - else it contains ``"identifier already exists"``: COLLISION
    - anything else: FAILED
    """
    if identifier and identifier in response:
        return RegistrationResult(status=RegistrationStatus.REGISTERED, message=response)
    if ALREADY_EXISTS_MARKER in response:
        return RegistrationResult(status=RegistrationStatus.COLLISION, message=response)
    return RegistrationResult(status=RegistrationStatus.FAILED, message=response)


@runtime_checkable
class IdentifierRegistry(Protocol):
    """Protocol every identifier registry must implement.

    Attributes
    ----------
    provider_name : str
        Human-readable provider name used in log messages.
    """

    @property
    def provider_name(self) -> str:
        ...

    def create_identifier(self, target: IdentifiableObject) -> RegistrationResult:
        """Register ``target``'s current identifier.

        May raise for transport failures; callers treat that as FAILED.
        """
        ...


class LegacyRegistryAdapter:
    """Wraps a client whose ``create`` call returns the legacy response text.

    Parameters
    ----------
    create:
        Callable taking the global id string and returning the registry's
        response text.
    provider_name:
        Name reported in logs.
    """

    def __init__(self, create: Callable[[str], str], provider_name: str = "legacy") -> None:
        self._create = create
        self._provider_name = provider_name

    @property
    def provider_name(self) -> str:
        return self._provider_name

    def create_identifier(self, target: IdentifiableObject) -> RegistrationResult:
        response = self._create(target.global_id_string or (target.identifier or ""))
        return parse_registry_response(response, target.identifier)


class InMemoryRegistry:
    """Process-local registry.

    Accepts any identifier it has not seen before and reports a collision
    for one it already holds.  Thread-safe.
    """

    def __init__(self, provider_name: str = "in-memory") -> None:
        self._provider_name = provider_name
        self._registered: set[str] = set()
        self._lock = threading.Lock()

    @property
    def provider_name(self) -> str:
        return self._provider_name

    @property
    def registered(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._registered)

    def reserve(self, global_id: str) -> None:
        """Mark an identifier as taken, as if another party had registered it."""
        with self._lock:
            self._registered.add(global_id)

    def create_identifier(self, target: IdentifiableObject) -> RegistrationResult:
        key = target.global_id_string or (target.identifier or "")
        if not key:
            return RegistrationResult(
                status=RegistrationStatus.FAILED, message="No identifier to register"
            )
        with self._lock:
            if key in self._registered:
                return RegistrationResult(
                    status=RegistrationStatus.COLLISION,
                    message=f"{ALREADY_EXISTS_MARKER}: {key}",
                )
            self._registered.add(key)
        logger.debug("Registered %s", key)
        return RegistrationResult(status=RegistrationStatus.REGISTERED, message=key)
