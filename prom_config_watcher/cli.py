from __future__ import annotations

import logging
import sys
from pathlib import Path

import typer
from click.core import ParameterSource

from prom_config_watcher import __version__
from prom_config_watcher.core.config import (
    DEFAULT_PROCESS_DELAY,
    DEFAULT_PROMETHEUS_URL,
    DEFAULT_TARGET_PATH,
    DEFAULT_WATCH_PATH,
    ConfigError,
    WatcherConfig,
    load_config,
)
from prom_config_watcher.daemon.runner import run_daemon
from prom_config_watcher.daemon.watcher import WatchSetupError

app = typer.Typer(help="Watch a config directory and reload Prometheus when it changes", add_completion=False)

logger = logging.getLogger("prom_config_watcher")

_CONFIG_OPTIONS = (
    "watch_path",
    "expand_vars",
    "copy_files",
    "target_path",
    "prometheus_url",
    "process_delay_time",
    "debug",
)


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
        force=True,
    )


@app.command()
def main(
    ctx: typer.Context,
    watch_path: str = typer.Option(DEFAULT_WATCH_PATH, "--watch-path", help="Path to be watched"),
    expand_vars: bool = typer.Option(
        True, "--expand-vars/--no-expand-vars", help="Expand $env variables found in files"
    ),
    copy_files: bool = typer.Option(
        True, "--copy-files/--no-copy-files", help="Copy config files to destination"
    ),
    target_path: str = typer.Option(
        DEFAULT_TARGET_PATH, "--target-path", help="Path to copy processed files to"
    ),
    prometheus_url: str = typer.Option(
        DEFAULT_PROMETHEUS_URL,
        "--prometheus-url",
        help="Url to POST to for Prometheus to reload its config",
    ),
    process_delay_time: str = typer.Option(
        DEFAULT_PROCESS_DELAY,
        "--process-delay-time",
        help=(
            "Time to wait after a detected change before processing files, e.g. 5s or 500ms. "
            "Captures several close changes in a single update"
        ),
    ),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable debug log output"),
    config_file: Path | None = typer.Option(
        None, "--config", help="YAML file supplying any of the options above"
    ),
) -> None:
    """Watch WATCH_PATH, expand env placeholders into TARGET_PATH, then reload Prometheus."""
    params = {
        "watch_path": watch_path,
        "expand_vars": expand_vars,
        "copy_files": copy_files,
        "target_path": target_path,
        "prometheus_url": prometheus_url,
        "process_delay_time": process_delay_time,
        "debug": debug,
    }
    # Flags left at their defaults must not mask values from --config.
    overrides = {
        name: params[name]
        for name in _CONFIG_OPTIONS
        if ctx.get_parameter_source(name) not in (ParameterSource.DEFAULT, None)
    }
    try:
        config = load_config(path=config_file, overrides=overrides)
    except ConfigError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=2)

    configure_logging(config.debug)
    _log_banner(config)

    try:
        run_daemon(config)
    except WatchSetupError as exc:
        logger.critical("failed to start watching path %s, exiting: %s", config.watch_path, exc)
        raise typer.Exit(code=1)


def _log_banner(config: WatcherConfig) -> None:
    logger.info("Prometheus Configuration Watcher %s", __version__)
    logger.debug("config: %s", config.model_dump_json())
