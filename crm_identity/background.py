"""Detached execution of best-effort side effects."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

logger = logging.getLogger(__name__)


class BackgroundDispatcher:
    """Runs fire-and-forget work on a private thread pool.

    Submitted work is never cancelled or retried. Failures are logged and
    never surface to the submitting request.
    """

    def __init__(self, max_workers: int = 4) -> None:
        """Create the private pool used for detached work."""
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="crm-bg")

    def submit(self, description: str, fn: Callable[..., Any], *args: Any) -> Future:
        """Run ``fn(*args)`` detached; ``description`` labels it in failure logs."""
        future = self._executor.submit(fn, *args)
        future.add_done_callback(lambda f: self._report(description, f))
        return future

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work, optionally waiting for queued tasks."""
        self._executor.shutdown(wait=wait)

    @staticmethod
    def _report(description: str, future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            logger.error("background task %r failed: %s", description, exc, exc_info=exc)
        elif future.result() is False:
            logger.warning("background task %r reported failure", description)
