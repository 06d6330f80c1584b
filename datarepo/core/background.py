"""Background runner for best-effort side operations.

Jobs run on a bounded ``ThreadPoolExecutor``.  A failing job is logged and
its future resolves to ``None``; exceptions never reach the submitter.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

R = TypeVar("R")


class BackgroundRunner:
    """Bounded worker pool with failure isolation.

    Parameters
    ----------
    max_workers:
        Upper bound on concurrently running jobs.
    name:
        Thread name prefix, used in log records.
    """

    def __init__(self, max_workers: int = 4, name: str = "datarepo-bg") -> None:
        self._name = name
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)

    def submit(self, job: Callable[..., R], *args: Any, **kwargs: Any) -> Future[R | None]:
        """Schedule *job*; the returned future never raises."""
        job_name = getattr(job, "__qualname__", repr(job))

        def _run() -> R | None:
            try:
                return job(*args, **kwargs)
            except Exception:
                logger.exception("Background job %s failed", job_name)
                return None

        logger.debug("Submitting background job %s", job_name)
        return self._executor.submit(_run)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> BackgroundRunner:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown(wait=True)
