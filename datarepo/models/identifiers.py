"""Persistent identifier models and the structured registry result type."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class RegistrationStatus(str, Enum):
    """Three-way outcome of a registry call."""

    REGISTERED = "registered"
    COLLISION = "collision"  # the registry already holds the identifier
    FAILED = "failed"  # anything else, including transport failures


class RegistrationResult(BaseModel):
    """What the identifier registry answered for one submission."""

    model_config = ConfigDict(frozen=True)

    status: RegistrationStatus
    message: str = ""


class RegistrationOutcome(BaseModel):
    """Result of a full registration-with-retry run for one entity."""

    model_config = ConfigDict(frozen=True)

    status: RegistrationStatus
    attempts: int
    identifier: str | None = None
    registered_at: datetime | None = None
    message: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status == RegistrationStatus.REGISTERED


class GlobalId(BaseModel):
    """``protocol:authority/identifier``, e.g. ``doi:10.5072/FK2/ABC123``."""

    model_config = ConfigDict(frozen=True)

    protocol: str
    authority: str
    identifier: str

    def as_string(self) -> str:
        return f"{self.protocol}:{self.authority}/{self.identifier}"

    @classmethod
    def parse(cls, value: str) -> GlobalId | None:
        """Parse a global id string; returns None for malformed input."""
        protocol, sep, rest = value.partition(":")
        if not sep or not protocol:
            return None
        authority, sep, identifier = rest.partition("/")
        if not sep or not authority or not identifier:
            return None
        return cls(protocol=protocol, authority=authority, identifier=identifier)
