"""WatcherDaemon: top-level orchestrator that owns the source, coordinator, and collaborators."""

from __future__ import annotations

import asyncio
import logging
import signal

from prom_config_watcher.core.config import WatcherConfig
from prom_config_watcher.core.types import ChangeEvent
from prom_config_watcher.daemon.coordinator import DebounceCoordinator
from prom_config_watcher.daemon.watcher import ChangeSource
from prom_config_watcher.notify.reload import ReloadNotifier
from prom_config_watcher.pipeline.processor import ConfigProcessor

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class WatcherDaemon:
    """Wire the change source to the coordinator and run until signalled.

    The config is read once here and handed to each component; nothing looks
    flags up globally afterwards.
    """

    def __init__(
        self,
        config: WatcherConfig,
        *,
        pipeline: ConfigProcessor | None = None,
        notifier: ReloadNotifier | None = None,
    ) -> None:
        self.config = config
        self.pipeline = pipeline or ConfigProcessor(
            expand_vars=config.expand_vars,
            copy_files=config.copy_files,
        )
        self.notifier = notifier or ReloadNotifier(config.prometheus_url)
        self.stop_event: asyncio.Event | None = None
        self.source: ChangeSource | None = None
        self.coordinator: DebounceCoordinator | None = None

    async def run(self) -> None:
        """Start watching and coordinate passes until SIGINT/SIGTERM or :meth:`request_stop`."""
        loop = asyncio.get_running_loop()
        self.stop_event = asyncio.Event()
        changes: asyncio.Queue[ChangeEvent] = asyncio.Queue()

        self.source = ChangeSource(self.config.watch_path, loop, changes)
        self.source.start()
        self.coordinator = DebounceCoordinator(
            changes,
            self.pipeline,
            self.notifier,
            source_path=self.config.watch_path,
            target_path=self.config.target_path,
            quiet_period=self.config.process_delay_time,
        )

        installed = self._install_signal_handlers(loop)
        logger.info(
            "daemon: started (watch_path=%s, target_path=%s, delay=%.3fs)",
            self.config.watch_path,
            self.config.target_path,
            self.config.process_delay_time,
        )
        try:
            await self.coordinator.run(self.stop_event)
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)
            self.source.stop()
            logger.info("daemon: stopped")

    def request_stop(self) -> None:
        """Ask the coordinator to exit at its next iteration boundary."""
        if self.stop_event is not None:
            self.stop_event.set()

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> list[signal.Signals]:
        installed: list[signal.Signals] = []
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self._handle_signal, sig)
            except (NotImplementedError, RuntimeError):
                # Not on the main thread, or a platform without signal support.
                logger.debug("daemon: cannot install handler for %s", sig.name)
                continue
            installed.append(sig)
        return installed

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info("daemon: received %s, shutting down", sig.name)
        self.request_stop()


def run_daemon(config: WatcherConfig) -> None:
    """Blocking entry point used by the CLI."""
    asyncio.run(WatcherDaemon(config).run())
