"""
applier.py
Optimistic state holder: the new value is visible immediately, the write runs
in the background.

A failed background write is never rolled back (the local cache already has
the change); it only flips ``sync_failed`` so the UI can warn.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable

from storage import REMOTE_FAILED

logger = logging.getLogger(__name__)


class OptimisticApplier:
    def __init__(
        self,
        initial: Any,
        persist: Callable[[Any], str],
        executor: ThreadPoolExecutor | None = None,
        label: str = "state",
    ) -> None:
        self._value = initial
        self._persist = persist
        self._owns_executor = executor is None
        # one worker keeps writes in call order, so the last apply wins
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"persist-{label}")
        self._pending: list[Future] = []
        self.label = label
        self.last_status: str | None = None

    @property
    def value(self) -> Any:
        return self._value

    @property
    def sync_failed(self) -> bool:
        return self.last_status == REMOTE_FAILED

    def replace(self, value: Any) -> None:
        """Set the value without persisting (used after a load)."""
        self._value = value

    def apply(self, new_value: Any) -> Future:
        self._value = new_value
        future = self._executor.submit(self._write, new_value)
        self._pending = [f for f in self._pending if not f.done()]
        self._pending.append(future)
        return future

    def _write(self, value: Any) -> str:
        try:
            status = self._persist(value)
        except Exception:
            # local tier failure: reported, live state stays as applied
            logger.exception("Saving %s failed", self.label)
            status = REMOTE_FAILED
        if status == REMOTE_FAILED:
            logger.warning("%s is only saved on this device until the next successful sync", self.label)
        self.last_status = status
        return status

    def flush(self, timeout: float | None = None) -> None:
        """Block until every write submitted so far has finished."""
        pending = list(self._pending)
        wait(pending, timeout=timeout)
        self._pending = [f for f in self._pending if not f.done()]

    def shutdown(self) -> None:
        self.flush()
        if self._owns_executor:
            self._executor.shutdown(wait=True)
