"""Reprocessing pipeline: walk the watched tree and materialize each file."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

from prom_config_watcher.core.types import ProcessResult
from prom_config_watcher.pipeline.expand import expand_bytes

logger = logging.getLogger(__name__)

DEFAULT_FILE_MODE = 0o644


class ConfigProcessor:
    """Copy every regular file under a source path into a flat target directory.

    Placeholders are expanded on the way through unless *expand_vars* is off.
    With *copy_files* off the walk still runs but nothing is written. Errors on
    individual files are logged and recorded in the result; they never abort
    the walk.
    """

    def __init__(
        self,
        *,
        expand_vars: bool = True,
        copy_files: bool = True,
        environ: Mapping[str, str] | None = None,
        file_mode: int = DEFAULT_FILE_MODE,
    ) -> None:
        self.expand_vars = expand_vars
        self.copy_files = copy_files
        self._environ = environ
        self._file_mode = file_mode

    def run(self, source_path: str | Path, target_path: str | Path) -> ProcessResult:
        source = Path(source_path)
        target = Path(target_path)
        result = ProcessResult(source_path=str(source), target_path=str(target))
        logger.debug("processor: processing changes for %s", source)

        if not source.exists():
            logger.error("processor: error processing changes in %s: path does not exist", source)
            result.errors[str(source)] = "path does not exist"
            return result

        if self.copy_files:
            try:
                target.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                logger.error("processor: cannot create target %s: %s", target, exc)
                result.errors[str(target)] = str(exc)
                return result

        self._process_path(source, target, result)
        logger.info(
            "processor: pass over %s done (%d written, %d skipped, %d errors)",
            source,
            len(result.written),
            len(result.skipped),
            len(result.errors),
        )
        return result

    def _process_path(self, path: Path, target: Path, result: ProcessResult) -> None:
        if path.is_dir():
            try:
                children = sorted(path.iterdir())
            except OSError as exc:
                logger.error("processor: failed to list files in %s: %s", path, exc)
                result.errors[str(path)] = str(exc)
                return
            for child in children:
                self._process_path(child, target, result)
            return

        if not path.is_file():
            result.skipped.append(str(path))
            return

        self._process_file(path, target, result)

    def _process_file(self, path: Path, target: Path, result: ProcessResult) -> None:
        try:
            content = path.read_bytes()
        except OSError as exc:
            logger.error("processor: error reading %s: %s", path, exc)
            result.errors[str(path)] = str(exc)
            return

        if self.expand_vars:
            content = expand_bytes(content, self._environ)

        target_file = target / path.name
        if not self.copy_files:
            logger.debug("processor: copy disabled, not writing %s", target_file)
            result.skipped.append(str(path))
            return

        logger.debug("processor: writing updated content to %s", target_file)
        try:
            _write_atomic(target_file, content, self._file_mode)
        except OSError as exc:
            logger.error("processor: error writing %s: %s", target_file, exc)
            result.errors[str(path)] = str(exc)
            return
        result.written.append(str(target_file))


def _write_atomic(path: Path, content: bytes, mode: int) -> None:
    # Readers of the target directory never observe a half-written file.
    tmp_path = path.with_name(f".{path.name}.tmp")
    try:
        tmp_path.write_bytes(content)
        os.chmod(tmp_path, mode)
        tmp_path.replace(path)
    except BaseException:
        try:
            tmp_path.unlink()
        except OSError:
            pass
        raise
