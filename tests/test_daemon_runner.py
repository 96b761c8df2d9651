"""End-to-end tests for WatcherDaemon wiring."""

from __future__ import annotations

import asyncio
import os
import signal
import time
from pathlib import Path

import httpx
import pytest

from prom_config_watcher.core.config import WatcherConfig
from prom_config_watcher.daemon.runner import WatcherDaemon
from prom_config_watcher.notify.reload import ReloadNotifier


async def _wait_for(predicate, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.02)


def _passes(daemon: WatcherDaemon) -> int:
    return daemon.coordinator.passes if daemon.coordinator is not None else 0


@pytest.fixture()
def dirs(tmp_path: Path) -> tuple[Path, Path]:
    source = tmp_path / "config"
    source.mkdir()
    (source / "prometheus.yml").write_text("listen: ${PORT}\n", encoding="utf-8")
    return source, tmp_path / "processed"


def _daemon(source: Path, target: Path, transport: httpx.BaseTransport) -> WatcherDaemon:
    config = WatcherConfig(
        watch_path=str(source),
        target_path=str(target),
        prometheus_url="http://prometheus.test/-/reload",
        process_delay_time="100ms",
    )
    return WatcherDaemon(config, notifier=ReloadNotifier(config.prometheus_url, transport=transport))


def test_startup_pass_then_change_pass(dirs, monkeypatch: pytest.MonkeyPatch) -> None:
    source, target = dirs
    monkeypatch.setenv("PORT", "9090")
    posts: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        posts.append(request)
        return httpx.Response(200)

    daemon = _daemon(source, target, httpx.MockTransport(handler))

    async def _scenario() -> None:
        task = asyncio.create_task(daemon.run())
        try:
            await _wait_for(lambda: _passes(daemon) == 1)
            assert (target / "prometheus.yml").read_text(encoding="utf-8") == "listen: 9090\n"
            # File mtimes come from a coarse kernel clock; keep clear of the last pass.
            await asyncio.sleep(0.1)
            (source / "rules.yml").write_text("port: $PORT\n", encoding="utf-8")
            await _wait_for(lambda: _passes(daemon) >= 2)
            assert (target / "rules.yml").read_text(encoding="utf-8") == "port: 9090\n"
        finally:
            daemon.request_stop()
            await asyncio.wait_for(task, timeout=5)

    asyncio.run(_scenario())
    assert len(posts) >= 2
    assert all(p.method == "POST" for p in posts)


def test_unreachable_reload_endpoint_still_writes(dirs, monkeypatch: pytest.MonkeyPatch) -> None:
    source, target = dirs
    monkeypatch.setenv("PORT", "9090")

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    daemon = _daemon(source, target, httpx.MockTransport(handler))
    async def _scenario() -> None:
        task = asyncio.create_task(daemon.run())
        try:
            await _wait_for(lambda: _passes(daemon) == 1)
        finally:
            daemon.request_stop()
            await asyncio.wait_for(task, timeout=5)
        assert daemon.coordinator is not None
        assert daemon.coordinator.last_process >= daemon.coordinator.last_change
        assert daemon.coordinator.last_reload_status is None
        assert daemon.coordinator.failures == 0

    asyncio.run(_scenario())
    assert (target / "prometheus.yml").read_text(encoding="utf-8") == "listen: 9090\n"


@pytest.mark.parametrize("sig", [signal.SIGINT, signal.SIGTERM], ids=["sigint", "sigterm"])
def test_signal_stops_daemon(dirs, sig: signal.Signals) -> None:
    source, target = dirs
    daemon = _daemon(source, target, httpx.MockTransport(lambda request: httpx.Response(200)))

    async def _scenario() -> None:
        task = asyncio.create_task(daemon.run())
        await _wait_for(lambda: _passes(daemon) == 1)
        os.kill(os.getpid(), sig)
        await asyncio.wait_for(task, timeout=5)

    asyncio.run(_scenario())
    assert daemon.stop_event is not None and daemon.stop_event.is_set()


def test_missing_watch_path_still_runs(tmp_path: Path) -> None:
    source = tmp_path / "not-mounted-yet"
    target = tmp_path / "processed"
    daemon = _daemon(source, target, httpx.MockTransport(lambda request: httpx.Response(200)))
    async def _scenario() -> None:
        task = asyncio.create_task(daemon.run())
        try:
            await _wait_for(lambda: _passes(daemon) == 1)
        finally:
            daemon.request_stop()
            await asyncio.wait_for(task, timeout=5)

    asyncio.run(_scenario())
    assert daemon.source is not None and daemon.source.watching is False
    assert not target.exists()
