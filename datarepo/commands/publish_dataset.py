"""PublishDatasetCommand — promotes a dataset's draft to a released version.

A published dataset must carry a registered identifier, so unlike an
update, a registration failure aborts publication.  The caller is told
with a PUBLISHFAILED_PIDREG notification.

The whole publication runs under a finalizePublication lock, which keeps
concurrent edits and publications out and is released on every exit path.
"""

from __future__ import annotations

import logging
from typing import ClassVar

from datarepo.commands.base import CommandContext, CommandRequest, DatasetCommand
from datarepo.core.validation import init_dataset_fields, tidy_up_fields, validate_or_die
from datarepo.errors import (
    IdentifierRegistrationError,
    InvalidOperationError,
    PermissionDeniedError,
)
from datarepo.models.dataset import DataFile, Dataset, DatasetVersion, VersionState
from datarepo.models.locks import LockReason
from datarepo.models.notifications import NotificationType
from datarepo.models.users import AuthenticatedUser

logger = logging.getLogger(__name__)


class PublishDatasetCommand(DatasetCommand[Dataset]):
    """Release the draft version of a dataset.

    Parameters
    ----------
    dataset:
        The dataset or its id.
    request:
        The caller; must be allowed to publish.
    minor:
        Release as a minor version (``1.0`` -> ``1.1``).  Only valid when
        the dataset has been released before.
    """

    command_name: ClassVar[str] = "publish-dataset"

    def __init__(
        self,
        dataset: Dataset | int,
        request: CommandRequest,
        minor: bool = False,
    ) -> None:
        super().__init__(dataset, request)
        self.minor = minor

    def execute(self, ctx: CommandContext) -> Dataset:
        user = self.require_authenticated_user("publish datasets")
        dataset = self.resolve_dataset(ctx)

        if not ctx.permissions.can_publish(user, dataset):
            raise PermissionDeniedError(
                f"User {user.identifier} may not publish dataset {dataset.id}"
            )
        if dataset.id is None:
            raise InvalidOperationError("A dataset must be saved before it is published")
        ctx.locks.check_publish_lock(dataset.id)

        draft = dataset.edit_version
        if draft is None:
            raise InvalidOperationError(f"Dataset {dataset.id} has no draft to publish")
        previous = dataset.released_version
        if self.minor and previous is None:
            raise InvalidOperationError(
                "A minor release requires a previously released version"
            )

        init_dataset_fields(draft, ctx.schema)
        validate_or_die(draft, ctx.schema)

        with ctx.locks.locked(
            dataset.id, LockReason.FINALIZE_PUBLICATION, user_id=user.id, info="publish"
        ):
            try:
                saved = self._publish(ctx, dataset, draft, previous)
            except IdentifierRegistrationError:
                self._notify(ctx, user, NotificationType.PUBLISHFAILED_PIDREG, dataset.id)
                raise

        self._after_publish(ctx, saved)
        return saved

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _publish(
        self,
        ctx: CommandContext,
        dataset: Dataset,
        draft: DatasetVersion,
        previous: DatasetVersion | None,
    ) -> Dataset:
        ts = self.timestamp
        tidy_up_fields(draft)

        with ctx.store.transaction() as tx:
            tx.merge(dataset)

            if dataset.global_id_create_time is None:
                outcome = ctx.registrar.register(dataset, tx)
                if not outcome.succeeded:
                    raise IdentifierRegistrationError(
                        f"Could not register an identifier for dataset {dataset.id} "
                        f"after {outcome.attempts} attempt(s): {outcome.message}"
                    )

            in_draft = {fmd.data_file_id for fmd in draft.file_metadatas}
            for file_id in dataset.file_ids:
                data_file = tx.find(DataFile, file_id)
                if data_file is None or file_id not in in_draft:
                    continue
                if ctx.config.file_pids_enabled and data_file.global_id_create_time is None:
                    outcome = ctx.registrar.register(data_file, tx, dataset=dataset)
                    if not outcome.succeeded:
                        logger.warning(
                            "File %d published without a registered identifier", file_id
                        )
                if data_file.publication_date is None:
                    data_file.publication_date = ts

            if self.minor and previous is not None:
                draft.version_number = previous.version_number
                draft.minor_version_number = (previous.minor_version_number or 0) + 1
            else:
                draft.version_number = (previous.version_number or 0) + 1 if previous else 1
                draft.minor_version_number = 0
            draft.version_state = VersionState.RELEASED
            draft.release_time = ts
            draft.last_update_time = ts

            if dataset.publication_date is None:
                dataset.publication_date = ts
            dataset.modification_time = ts

            saved = tx.merge(dataset)
            tx.flush()

        logger.info(
            "Published dataset %s as version %s", saved.global_id_string, draft.friendly_number
        )
        return saved

    def _after_publish(self, ctx: CommandContext, dataset: Dataset) -> None:
        """Best-effort follow-ups; failures are logged only."""
        creator = ctx.store.find(AuthenticatedUser, dataset.creator_id)
        if creator is not None:
            self._notify(ctx, creator, NotificationType.PUBLISHEDDS, dataset.id)
        try:
            ctx.index.index_dataset(dataset, False)
        except Exception:
            logger.exception("Index refresh failed for dataset %s", dataset.id)
        if ctx.exports is not None and dataset.id is not None:
            ctx.exports.export_dataset_async(dataset.id)

    def _notify(
        self,
        ctx: CommandContext,
        user: AuthenticatedUser,
        type: NotificationType,
        object_id: int | None,
    ) -> None:
        if ctx.notifications is None:
            return
        requestor = self.user if isinstance(self.user, AuthenticatedUser) else None
        try:
            ctx.notifications.send_notification(
                user, self.timestamp, type, object_id, requestor=requestor
            )
        except Exception:
            logger.exception("Could not send %s notification to user %s", type.value, user.id)
