"""Adversarial tests — identifier registries that misbehave.

These tests verify that:
1. A registry that always reports a collision is given up on after the
   configured number of calls, on update and on publication
2. A registry that raises never fails an update
3. Garbage from a legacy registry is treated as a failure, never a success
4. A failed publication leaves the dataset an unlocked draft
"""

from __future__ import annotations

import pytest

from datarepo.commands import CommandRequest, PublishDatasetCommand, UpdateDatasetCommand
from datarepo.core.lock_manager import LockManager
from datarepo.errors import IdentifierRegistrationError
from datarepo.identifiers.registry import LegacyRegistryAdapter
from datarepo.models.dataset import Dataset, VersionState
from datarepo.models.identifiers import RegistrationStatus
from datarepo.models.notifications import NotificationType


class TestEndlessCollisions:
    def test_publication_gives_up_after_ceiling(self, make_context, make_registry, store, notifications, make_dataset, creator):
        registry = make_registry(RegistrationStatus.COLLISION)
        ctx = make_context(registry=registry)
        dataset = make_dataset()

        with pytest.raises(IdentifierRegistrationError):
            PublishDatasetCommand(dataset.id, CommandRequest(creator)).run(ctx)

        assert len(registry.submitted) == 10
        assert len(set(registry.submitted)) == 10
        reloaded = store.find(Dataset, dataset.id)
        assert [v.version_state for v in reloaded.versions] == [VersionState.DRAFT]
        assert reloaded.identifier_registered is False
        assert LockManager(store).get_locks(dataset.id) == []
        types = [n.type for n in notifications.find_by_user(creator.id)]
        assert types == [NotificationType.PUBLISHFAILED_PIDREG]

    def test_ceiling_follows_configuration(self, make_context, make_registry, make_dataset, creator):
        registry = make_registry(RegistrationStatus.COLLISION)
        ctx = make_context(registry=registry, config_updates={"identifier_retry_limit": 3})
        dataset = make_dataset()

        with pytest.raises(IdentifierRegistrationError):
            PublishDatasetCommand(dataset.id, CommandRequest(creator)).run(ctx)
        assert len(registry.submitted) == 3

    def test_update_still_saves(self, make_context, make_registry, store, make_dataset, creator):
        registry = make_registry(RegistrationStatus.COLLISION)
        ctx = make_context(registry=registry)
        dataset = make_dataset()
        dataset.edit_version.get_field("title").values = ["Kept despite collisions"]

        UpdateDatasetCommand(dataset, CommandRequest(creator)).run(ctx)
        reloaded = store.find(Dataset, dataset.id)
        assert len(registry.submitted) == 10
        assert reloaded.display_name == "Kept despite collisions"
        assert reloaded.global_id_create_time is None


class TestRaisingRegistry:
    def test_update_saves_unregistered(self, make_context, make_registry, store, make_dataset, creator):
        registry = make_registry(ConnectionError("registry unreachable"))
        ctx = make_context(registry=registry)
        dataset = make_dataset()

        UpdateDatasetCommand(dataset, CommandRequest(creator)).run(ctx)
        reloaded = store.find(Dataset, dataset.id)
        assert len(registry.submitted) == 1
        assert reloaded.edit_version.last_update_time is not None
        assert reloaded.identifier_registered is False
        assert reloaded.global_id_create_time is None

    def test_publication_fails_cleanly(self, make_context, make_registry, store, make_dataset, creator):
        ctx = make_context(registry=make_registry(TimeoutError("registry timed out")))
        dataset = make_dataset()

        with pytest.raises(IdentifierRegistrationError):
            PublishDatasetCommand(dataset.id, CommandRequest(creator)).run(ctx)
        reloaded = store.find(Dataset, dataset.id)
        assert reloaded.publication_date is None
        assert LockManager(store).get_locks(dataset.id) == []

    def test_recovers_on_a_later_update(self, make_context, make_registry, store, make_dataset, creator):
        registry = make_registry(ConnectionError("flaky"), RegistrationStatus.REGISTERED)
        ctx = make_context(registry=registry)
        dataset = make_dataset()

        UpdateDatasetCommand(dataset.id, CommandRequest(creator)).run(ctx)
        assert store.find(Dataset, dataset.id).global_id_create_time is None
        UpdateDatasetCommand(dataset.id, CommandRequest(creator)).run(ctx)
        assert store.find(Dataset, dataset.id).identifier_registered is True


class TestLegacyGarbage:
    @pytest.mark.parametrize(
        "response",
        ["", "500 Internal Server Error", "<html>maintenance</html>", "success"],
    )
    def test_unrecognised_response_is_failure(self, make_context, store, make_dataset, creator, response):
        calls: list[str] = []

        def create(global_id: str) -> str:
            calls.append(global_id)
            return response

        ctx = make_context(registry=LegacyRegistryAdapter(create))
        dataset = make_dataset()
        with pytest.raises(IdentifierRegistrationError):
            PublishDatasetCommand(dataset.id, CommandRequest(creator)).run(ctx)
        # A failure is not a collision: no retries.
        assert len(calls) == 1
        assert store.find(Dataset, dataset.id).released_version is None

    def test_response_echoing_identifier_is_success(self, make_context, store, make_dataset, creator):
        ctx = make_context(registry=LegacyRegistryAdapter(lambda gid: f"success: {gid}"))
        dataset = make_dataset()
        PublishDatasetCommand(dataset.id, CommandRequest(creator)).run(ctx)
        assert store.find(Dataset, dataset.id).identifier_registered is True
