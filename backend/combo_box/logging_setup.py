# backend/combo_box/logging_setup.py
from __future__ import annotations

import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

REPO_ROOT = Path(__file__).resolve().parents[2]

LOG_FORMAT = "%(asctime)s %(levelname)s [%(process)d] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class DateSizeRotatingFileHandler(RotatingFileHandler):
    """
    Size-based rotation that opens a new file stamped with the current
    date/time instead of shifting ``.1``, ``.2`` suffixes around.
    """

    def __init__(
        self,
        directory: Path,
        prefix: str = "combo_box",
        max_bytes: int = 1_000_000,
        encoding: str = "utf-8",
    ):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.prefix = prefix
        super().__init__(
            self._new_filename(),
            maxBytes=max_bytes,
            backupCount=0,
            encoding=encoding,
            errors="replace",
        )

    def _new_filename(self) -> str:
        # milliseconds keep two rollovers in the same second apart
        ts = datetime.now().strftime("%Y%m%d-%H%M%S-%f")[:-3]
        return str(self.directory / f"{self.prefix}-{ts}.log")

    def doRollover(self) -> None:
        if self.stream:
            self.stream.close()
            self.stream = None
        self.baseFilename = os.fspath(self._new_filename())
        self.mode = "a"
        self.stream = self._open()


def _coerce_level(level: Optional[str | int]) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    env_level = os.getenv("LOG_LEVEL", "INFO")
    return getattr(logging, env_level.upper(), logging.INFO)


def start_log(
    *,
    app_name: str = "combo_box",
    log_dir: Optional[str | Path] = None,
    level: Optional[str | int] = None,
    to_console: bool = True,
    to_file: bool = True,
    max_bytes: int = 1_000_000,
) -> logging.Logger:
    """
    Configure the root logger for the whole service.

    Every module logs through ``logging.getLogger(__name__)``, so calling this
    once at startup routes generator, executor and route messages to the same
    handlers. The log directory is ``log_dir``, else ``LOG_DIR``, else
    ``<repo>/var/logs``. Calling it twice replaces the handlers instead of
    stacking duplicates.
    """
    root = logging.getLogger()
    root.setLevel(_coerce_level(level))

    for h in list(root.handlers):
        root.removeHandler(h)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    resolved_dir: Optional[Path] = None
    if to_file:
        if log_dir is None:
            log_dir = os.getenv("LOG_DIR", None)
        if log_dir is None:
            log_dir = REPO_ROOT / "var" / "logs"
        resolved_dir = Path(log_dir)
        file_handler = DateSizeRotatingFileHandler(
            directory=resolved_dir,
            prefix=app_name,
            max_bytes=max_bytes,
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    if to_console:
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        console.setLevel(root.level)
        root.addHandler(console)

    root.info(
        "Logging started app=%s dir=%s level=%s",
        app_name,
        str(resolved_dir) if resolved_dir else "-",
        logging.getLevelName(root.level),
    )
    return root
