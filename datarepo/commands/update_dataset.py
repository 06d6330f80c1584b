"""UpdateDatasetCommand — saves a dataset's draft version.

Preconditions, checked before anything is mutated:

1. the caller is authenticated;
2. the caller may edit the dataset;
3. no conflicting lock is held (an InReview lock only blocks callers who
   cannot publish).

The save itself validates the draft, reconciles file deletions, recomputes
the version fingerprint if a fingerprinted file went away, registers the
dataset identifier if that is not deferred to publication, and commits
everything in one transaction.  Registration failures never fail the
update: the dataset is saved unregistered and registration can be retried
later.  Index refresh and the "last interacted" marker run after the
commit and are best effort.
"""

from __future__ import annotations

import logging
from typing import ClassVar

from datarepo.commands.base import CommandContext, CommandRequest, DatasetCommand
from datarepo.core.validation import init_dataset_fields, tidy_up_fields, validate_or_die
from datarepo.errors import PermissionDeniedError
from datarepo.models.dataset import DataFile, Dataset, DatasetVersion, FileMetadata
from datarepo.models.users import AuthenticatedUser

logger = logging.getLogger(__name__)


class UpdateDatasetCommand(DatasetCommand[Dataset]):
    """Validate and durably save a dataset's draft version.

    Parameters
    ----------
    dataset:
        The dataset (possibly carrying unsaved draft edits) or its id.
    request:
        The caller.
    files_to_delete:
        File metadata records of the draft to delete, or a single DataFile
        whose draft metadata should be deleted.
    validate_lenient:
        Replace invalid values with "N/A" instead of failing.
    """

    command_name: ClassVar[str] = "update-dataset"

    def __init__(
        self,
        dataset: Dataset | int,
        request: CommandRequest,
        files_to_delete: list[FileMetadata] | DataFile | None = None,
        validate_lenient: bool = False,
    ) -> None:
        super().__init__(dataset, request)
        self._files_to_delete = files_to_delete
        self.validate_lenient = validate_lenient

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(self, ctx: CommandContext) -> Dataset:
        user = self.require_authenticated_user("update datasets")
        dataset = self.resolve_dataset(ctx)

        if not ctx.permissions.can_edit(user, dataset):
            raise PermissionDeniedError(
                f"User {user.identifier} may not edit dataset {dataset.id}"
            )
        ctx.locks.check_edit_lock(dataset.id, can_publish=ctx.permissions.can_publish(user, dataset))

        draft = dataset.get_or_create_edit_version()
        init_dataset_fields(draft, ctx.schema)
        validate_or_die(draft, ctx.schema, lenient=self.validate_lenient)

        return self.save(ctx, dataset, draft, user)

    def save(
        self,
        ctx: CommandContext,
        dataset: Dataset,
        draft: DatasetVersion,
        user: AuthenticatedUser,
    ) -> Dataset:
        ts = self.timestamp
        tidy_up_fields(draft)
        if draft.create_time is None:
            draft.create_time = ts

        to_delete = self._resolve_deletions(draft)

        with ctx.store.transaction() as tx:
            files: dict[int, DataFile] = {}
            for file_id in dataset.file_ids:
                data_file = tx.find(DataFile, file_id)
                if data_file is None:
                    continue
                if data_file.create_date is None:
                    data_file.create_date = ts
                    data_file.creator_id = user.id
                data_file.modification_time = ts
                files[file_id] = data_file

            # The thumbnail link is dropped before any file goes away.
            recalculate_unf = False
            for fmd in to_delete:
                if fmd.data_file_id == dataset.thumbnail_file_id:
                    logger.debug("deleting the dataset thumbnail designation")
                    dataset.thumbnail_file_id = None
                data_file = files.get(fmd.data_file_id)
                if data_file is not None and data_file.unf is not None:
                    recalculate_unf = True

            tx.merge(dataset)

            for fmd in to_delete:
                data_file = files.get(fmd.data_file_id)
                draft.file_metadatas = [m for m in draft.file_metadatas if m.id != fmd.id]
                if data_file is not None and data_file.is_released:
                    continue
                # Never released: the file itself goes too.
                if data_file is not None:
                    tx.remove(data_file)
                    del files[fmd.data_file_id]
                dataset.file_ids = [i for i in dataset.file_ids if i != fmd.data_file_id]
                for category in dataset.categories:
                    if fmd.id in category.file_metadata_ids:
                        category.file_metadata_ids = [
                            i for i in category.file_metadata_ids if i != fmd.id
                        ]

            if recalculate_unf:
                ctx.ingest.recalculate_version_unf(draft, list(files.values()))

            logger.debug(
                "provider=%s protocol=%s global_id_create_time=%s",
                ctx.registry.provider_name,
                dataset.protocol,
                dataset.global_id_create_time,
            )
            if not ctx.config.register_when_published and dataset.global_id_create_time is None:
                try:
                    ctx.registrar.register(dataset, tx)
                except Exception as exc:  # noqa: BLE001
                    logger.warning("Failed to create identifier: %s", exc, exc_info=True)

            draft.last_update_time = ts
            dataset.modification_time = ts

            saved = tx.merge(dataset)
            tx.flush()

        self._update_dataset_user(ctx, draft, user)
        try:
            ctx.index.index_dataset(saved, True)
        except Exception:
            logger.exception("Index refresh failed for dataset %s", saved.id)
        return saved

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_deletions(self, draft: DatasetVersion) -> list[FileMetadata]:
        """Map the requested deletions onto the draft's own metadata records.

        Released versions are never touched: a record that is not part of
        the draft is ignored.
        """
        requested = self._files_to_delete
        if requested is None:
            return []
        if isinstance(requested, DataFile):
            fmd = draft.file_metadata_for(requested.id) if requested.id is not None else None
            return [fmd] if fmd is not None else []

        by_id = {m.id: m for m in draft.file_metadatas}
        resolved: list[FileMetadata] = []
        for fmd in requested:
            match = by_id.get(fmd.id) or draft.file_metadata_for(fmd.data_file_id)
            if match is None:
                logger.debug("File metadata %s is not part of the draft; skipped", fmd.id)
            elif all(m.id != match.id for m in resolved):
                resolved.append(match)
        return resolved

    @staticmethod
    def _update_dataset_user(
        ctx: CommandContext, draft: DatasetVersion, user: AuthenticatedUser
    ) -> None:
        if user.id is None:
            return
        try:
            ctx.datasets.touch_dataset_version_user(draft, user.id)
        except Exception:
            logger.exception("Could not update the last-interaction marker for user %s", user.id)
