"""Dataset workflow commands.

Build a ``CommandContext`` once with the collaborators, then ``run()`` a
command against it::

    ctx = CommandContext(config, store, registry, index, ingest, permissions)
    saved = UpdateDatasetCommand(dataset, CommandRequest(user)).run(ctx)
"""

from datarepo.commands.base import CommandContext, CommandRequest, DatasetCommand
from datarepo.commands.publish_dataset import PublishDatasetCommand
from datarepo.commands.update_dataset import UpdateDatasetCommand

__all__ = [
    "CommandContext",
    "CommandRequest",
    "DatasetCommand",
    "PublishDatasetCommand",
    "UpdateDatasetCommand",
]
