"""Tests for default collaborators and the background runner."""

from __future__ import annotations

import base64
import hashlib

from datarepo.core.background import BackgroundRunner
from datarepo.core.collaborators import (
    DigestUnfCalculator,
    IndexService,
    IngestService,
    NullIndexService,
    OwnershipPermissions,
    PermissionService,
)
from datarepo.models.dataset import DataFile, Dataset, DatasetVersion, FileMetadata
from datarepo.models.users import AuthenticatedUser, GuestUser


class TestOwnershipPermissions:
    def test_creator_may_edit_and_publish(self):
        perms = OwnershipPermissions()
        user = AuthenticatedUser(id=1, identifier="robin")
        dataset = Dataset(creator_id=1)
        assert perms.can_edit(user, dataset)
        assert perms.can_publish(user, dataset)

    def test_other_user_may_not(self):
        perms = OwnershipPermissions()
        assert not perms.can_edit(AuthenticatedUser(id=2, identifier="x"), Dataset(creator_id=1))

    def test_superuser_may(self):
        perms = OwnershipPermissions()
        admin = AuthenticatedUser(id=3, identifier="admin", superuser=True)
        assert perms.can_publish(admin, Dataset(creator_id=1))

    def test_guest_may_not(self):
        assert not OwnershipPermissions().can_edit(GuestUser(), Dataset(creator_id=None))

    def test_unsaved_user_never_matches_unowned_dataset(self):
        assert not OwnershipPermissions().can_edit(
            AuthenticatedUser(identifier="new"), Dataset(creator_id=None)
        )

    def test_protocol_conformance(self):
        assert isinstance(OwnershipPermissions(), PermissionService)
        assert isinstance(NullIndexService(), IndexService)
        assert isinstance(DigestUnfCalculator(), IngestService)


class TestDigestUnfCalculator:
    def _version(self, *file_ids: int) -> DatasetVersion:
        return DatasetVersion(
            file_metadatas=[FileMetadata(data_file_id=i, label=f"f{i}") for i in file_ids]
        )

    def test_combines_sorted_file_unfs(self):
        files = [DataFile(id=1, unf="UNF:6:bbb"), DataFile(id=2, unf="UNF:6:aaa")]
        version = self._version(1, 2)
        DigestUnfCalculator().recalculate_version_unf(version, files)

        digest = hashlib.sha256(b"UNF:6:aaa\nUNF:6:bbb").digest()[:16]
        assert version.unf == "UNF:6:" + base64.b64encode(digest).decode("ascii")

    def test_order_independent(self):
        a = self._version(1, 2)
        b = self._version(2, 1)
        files = [DataFile(id=1, unf="UNF:6:x"), DataFile(id=2, unf="UNF:6:y")]
        DigestUnfCalculator().recalculate_version_unf(a, files)
        DigestUnfCalculator().recalculate_version_unf(b, list(reversed(files)))
        assert a.unf == b.unf

    def test_files_outside_version_ignored(self):
        version = self._version(1)
        files = [DataFile(id=1, unf="UNF:6:x"), DataFile(id=9, unf="UNF:6:other")]
        DigestUnfCalculator().recalculate_version_unf(version, files)
        only = self._version(1)
        DigestUnfCalculator().recalculate_version_unf(only, files[:1])
        assert version.unf == only.unf

    def test_no_fingerprinted_files_clears_unf(self):
        version = self._version(1)
        version.unf = "UNF:6:stale"
        DigestUnfCalculator().recalculate_version_unf(version, [DataFile(id=1)])
        assert version.unf is None


class TestBackgroundRunner:
    def test_returns_job_result(self):
        with BackgroundRunner(max_workers=2) as runner:
            assert runner.submit(lambda a, b: a + b, 2, 3).result(timeout=5) == 5

    def test_failure_is_logged_and_resolves_to_none(self, caplog):
        def explode() -> None:
            raise RuntimeError("kaboom")

        with BackgroundRunner(max_workers=1) as runner:
            future = runner.submit(explode)
            assert future.result(timeout=5) is None
        assert "Background job" in caplog.text
        assert "kaboom" in caplog.text
