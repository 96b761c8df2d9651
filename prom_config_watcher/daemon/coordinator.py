"""Debounce coordinator: decides when a reprocessing pass runs."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Callable, Protocol

from prom_config_watcher.core.types import ChangeEvent

logger = logging.getLogger(__name__)


class Pipeline(Protocol):
    def run(self, source_path: str | Path, target_path: str | Path) -> object: ...


class Notifier(Protocol):
    def notify(self) -> object: ...


class DebounceCoordinator:
    """Merge change notifications, the debounce timer, and shutdown into one loop.

    ``last_change`` and ``last_process`` are owned by this object and only
    mutated inside :meth:`run`. A pass runs when the timer fires and
    ``last_process < last_change``; each change re-arms the timer rather than
    queueing another firing, so a burst of changes collapses into one pass.

    The pipeline and notifier run in the default executor. While a pass is in
    flight the loop does not service the timer or the stop event; changes keep
    landing in the queue and are merged on the next iteration.
    """

    def __init__(
        self,
        changes: asyncio.Queue[ChangeEvent],
        pipeline: Pipeline,
        notifier: Notifier | None,
        *,
        source_path: str | Path,
        target_path: str | Path,
        quiet_period: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._changes = changes
        self._pipeline = pipeline
        self._notifier = notifier
        self._source_path = source_path
        self._target_path = target_path
        self._quiet_period = quiet_period
        self._clock = clock

        self.last_change = 0.0
        self.last_process = 0.0
        # Pass outcomes; only written from the loop.
        self.changes_seen = 0
        self.passes = 0
        self.skipped = 0
        self.failures = 0
        self.last_result: object = None
        self.last_reload_status: object = None
        self.last_error: str | None = None
        # Loop time at which the debounce timer fires; None when disarmed.
        self._deadline: float | None = None

    @property
    def timer_armed(self) -> bool:
        return self._deadline is not None

    async def run(self, stop: asyncio.Event) -> None:
        """Run until *stop* is set. The first iteration always performs a pass."""
        loop = asyncio.get_running_loop()
        self.last_change = self._clock()
        self._deadline = loop.time()

        getter: asyncio.Task[ChangeEvent] | None = None
        stopper = asyncio.ensure_future(stop.wait())
        try:
            while True:
                if getter is None:
                    getter = asyncio.ensure_future(self._changes.get())

                timeout = None
                if self._deadline is not None:
                    timeout = max(0.0, self._deadline - loop.time())

                done, _ = await asyncio.wait(
                    {getter, stopper},
                    timeout=timeout,
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if stopper in done:
                    logger.info("coordinator: received shutdown signal, stopping")
                    return

                if getter in done:
                    self._on_change(getter.result(), loop)
                    getter = None
                    continue

                if self._deadline is not None and loop.time() >= self._deadline:
                    self._deadline = None
                    await self._on_timer()
        finally:
            for task in (getter, stopper):
                if task is not None and not task.done():
                    task.cancel()

    def _on_change(self, change: ChangeEvent, loop: asyncio.AbstractEventLoop) -> None:
        self.last_change = change.observed_at
        # Reset, not stack: only the latest deadline survives.
        self._deadline = loop.time() + self._quiet_period
        logger.debug(
            "coordinator: change to %s at %s, processing in %.3fs",
            change.path,
            change.observed_at,
            self._quiet_period,
        )
        self.changes_seen += 1

    async def _on_timer(self) -> None:
        if not self.last_process < self.last_change:
            logger.debug("coordinator: timer fired with nothing new to process")
            self.skipped += 1
            return

        loop = asyncio.get_running_loop()
        logger.info("coordinator: processing %s into %s", self._source_path, self._target_path)
        error: str | None = None
        self.last_reload_status = None
        try:
            self.last_result = await loop.run_in_executor(
                None, self._pipeline.run, self._source_path, self._target_path
            )
            if self._notifier is not None:
                self.last_reload_status = await loop.run_in_executor(None, self._notifier.notify)
        except Exception as exc:
            logger.exception("coordinator: pass over %s failed", self._source_path)
            error = str(exc)

        # A failed pass still counts; it is not retried until a newer change arrives.
        self.last_process = self._clock()
        self.passes += 1
        self.last_error = error
        if error is not None:
            self.failures += 1
