"""Filesystem change source backed by watchdog.

The observer thread only stats the touched path and hands a
:class:`ChangeEvent` to the asyncio loop; it never waits on the coordinator.
"""

from __future__ import annotations

import asyncio
import errno
import logging
import os
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from prom_config_watcher.core.types import ChangeEvent

logger = logging.getLogger(__name__)

# Errors meaning no notification instance could be created at all, as opposed
# to a single watch failing to register.
_INSTANCE_ERRNOS = (errno.EMFILE, errno.ENFILE)


class WatchSetupError(RuntimeError):
    """Raised when the filesystem notification subscription cannot be created."""


class ChangeNormalizer(FileSystemEventHandler):
    """Turn raw watchdog events into timestamped changes on an asyncio queue."""

    def __init__(self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue[ChangeEvent]) -> None:
        super().__init__()
        self._loop = loop
        self._queue = queue

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in ("opened", "closed_no_write"):
            return
        path = os.fsdecode(getattr(event, "dest_path", "") or event.src_path)
        logger.debug("watcher: received %s event for %s", event.event_type, path)

        change = self.normalize(path)
        if change is None:
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, change)
        except RuntimeError:
            logger.debug("watcher: event loop closed, dropping change for %s", path)

    def normalize(self, path: str) -> ChangeEvent | None:
        """Stat *path* and return its change record, or *None* if it is gone."""
        try:
            mtime = os.stat(path).st_mtime
        except OSError as exc:
            logger.error("watcher: could not get modified time for %s: %s", path, exc)
            return None
        logger.debug("watcher: modified time of %s is %s", path, mtime)
        return ChangeEvent(path=path, observed_at=mtime)


class ChangeSource:
    """Owns the watchdog observer for one root path."""

    def __init__(
        self,
        path: str | Path,
        loop: asyncio.AbstractEventLoop,
        queue: asyncio.Queue[ChangeEvent],
        *,
        recursive: bool = True,
    ) -> None:
        self._path = Path(path)
        self._recursive = recursive
        self._handler = ChangeNormalizer(loop, queue)
        self._observer: BaseObserver | None = None
        self.watching = False

    @property
    def path(self) -> Path:
        return self._path

    def start(self) -> None:
        """Create the subscription.

        Raises :class:`WatchSetupError` if the observer or its notification
        instance cannot be created.
        A missing or unwatchable root is logged and tolerated.
        """
        if self._observer is not None:
            return
        logger.debug("watcher: creating watcher for path %s", self._path)
        try:
            observer = Observer()
            observer.start()
        except Exception as exc:
            raise WatchSetupError(f"error creating file watcher: {exc}") from exc
        self._observer = observer

        if not self._path.exists():
            logger.info("watcher: %s does not exist, nothing to watch", self._path)
            return
        try:
            observer.schedule(self._handler, str(self._path), recursive=self._recursive)
        except OSError as exc:
            # watchdog creates the inotify instance lazily, inside schedule().
            if exc.errno in _INSTANCE_ERRNOS:
                self.stop()
                raise WatchSetupError(f"error creating file watcher: {exc}") from exc
            logger.warning("watcher: failed to watch %s because of error: %s", self._path, exc)
            return
        self.watching = True
        logger.info("watcher: watching %s", self._path)

    def stop(self) -> None:
        """Stop the observer thread. Safe to call more than once."""
        observer = self._observer
        if observer is None:
            return
        self._observer = None
        self.watching = False
        observer.stop()
        observer.join(timeout=5)
