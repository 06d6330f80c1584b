"""Persistent identifiers — generation, the registry boundary, and registration with retry.

A registry implements the ``IdentifierRegistry`` protocol and answers every
submission with a three-way ``RegistrationResult``.  ``IdentifierRegistrar``
drives the retry-on-collision loop; ``IdentifierGenerator`` produces the
candidates.
"""

from datarepo.identifiers.file_pids import FileIdentifierService
from datarepo.identifiers.generator import IdentifierGenerator
from datarepo.identifiers.registrar import IdentifierRegistrar
from datarepo.identifiers.registry import (
    ALREADY_EXISTS_MARKER,
    IdentifierRegistry,
    InMemoryRegistry,
    LegacyRegistryAdapter,
    parse_registry_response,
)

__all__ = [
    "ALREADY_EXISTS_MARKER",
    "FileIdentifierService",
    "IdentifierGenerator",
    "IdentifierRegistrar",
    "IdentifierRegistry",
    "InMemoryRegistry",
    "LegacyRegistryAdapter",
    "parse_registry_response",
]
