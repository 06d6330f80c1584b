"""Tests for the identifier registry boundary."""

from __future__ import annotations

import threading

import pytest

from datarepo.identifiers.registry import (
    ALREADY_EXISTS_MARKER,
    IdentifierRegistry,
    InMemoryRegistry,
    LegacyRegistryAdapter,
    parse_registry_response,
)
from datarepo.models.dataset import Dataset
from datarepo.models.identifiers import RegistrationStatus


def _dataset(identifier: str = "FK2/ABC123") -> Dataset:
    return Dataset(protocol="doi", authority="10.5072", identifier=identifier)


class TestParseRegistryResponse:
    @pytest.mark.parametrize(
        ("response", "expected"),
        [
            ("success: doi:10.5072/FK2/ABC123 | ark:/b5072/fk2abc123", RegistrationStatus.REGISTERED),
            ("error: bad request - identifier already exists", RegistrationStatus.COLLISION),
            ("error: internal server error", RegistrationStatus.FAILED),
            ("", RegistrationStatus.FAILED),
        ],
    )
    def test_mapping(self, response, expected):
        assert parse_registry_response(response, "FK2/ABC123").status == expected

    def test_identifier_match_wins_over_marker(self):
        response = f"FK2/ABC123 registered; note: {ALREADY_EXISTS_MARKER} for an alias"
        assert parse_registry_response(response, "FK2/ABC123").status == RegistrationStatus.REGISTERED

    def test_missing_identifier_never_registers(self):
        assert parse_registry_response("anything", None).status == RegistrationStatus.FAILED

    def test_message_is_kept(self):
        assert parse_registry_response("nope", "X").message == "nope"


class TestLegacyRegistryAdapter:
    def test_submits_global_id_and_parses(self):
        submitted: list[str] = []

        def create(global_id: str) -> str:
            submitted.append(global_id)
            return f"success: {global_id}"

        adapter = LegacyRegistryAdapter(create, provider_name="ezid")
        result = adapter.create_identifier(_dataset())
        assert submitted == ["doi:10.5072/FK2/ABC123"]
        assert result.status == RegistrationStatus.REGISTERED
        assert adapter.provider_name == "ezid"

    def test_collision(self):
        adapter = LegacyRegistryAdapter(lambda gid: f"error: {ALREADY_EXISTS_MARKER}")
        assert adapter.create_identifier(_dataset()).status == RegistrationStatus.COLLISION

    def test_transport_errors_propagate(self):
        def create(global_id: str) -> str:
            raise ConnectionError("registry down")

        with pytest.raises(ConnectionError):
            LegacyRegistryAdapter(create).create_identifier(_dataset())

    def test_satisfies_protocol(self):
        assert isinstance(LegacyRegistryAdapter(lambda gid: gid), IdentifierRegistry)


class TestInMemoryRegistry:
    def test_register_then_collide(self):
        registry = InMemoryRegistry()
        assert registry.create_identifier(_dataset()).status == RegistrationStatus.REGISTERED
        second = registry.create_identifier(_dataset())
        assert second.status == RegistrationStatus.COLLISION
        assert ALREADY_EXISTS_MARKER in second.message
        assert registry.registered == frozenset({"doi:10.5072/FK2/ABC123"})

    def test_reserved_identifier_collides(self):
        registry = InMemoryRegistry()
        registry.reserve("doi:10.5072/FK2/TAKEN1")
        assert registry.create_identifier(_dataset("FK2/TAKEN1")).status == RegistrationStatus.COLLISION

    def test_empty_identifier_fails(self):
        assert InMemoryRegistry().create_identifier(Dataset()).status == RegistrationStatus.FAILED

    def test_concurrent_registration_of_same_id(self):
        registry = InMemoryRegistry()
        results = []

        def worker() -> None:
            results.append(registry.create_identifier(_dataset()).status)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert results.count(RegistrationStatus.REGISTERED) == 1
        assert results.count(RegistrationStatus.COLLISION) == 7

    def test_satisfies_protocol(self):
        assert isinstance(InMemoryRegistry(), IdentifierRegistry)
