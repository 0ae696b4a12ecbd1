"""placemini.logging_cfg - logging setup shared by the CLI and the ticker.

Console output always goes to stderr so JSON written to stdout by CLI
commands stays parseable. When a log directory is given, records are
also appended to ``placemini.log`` in it; a long-running ``run`` and
short ``vote`` commands can share that file.
"""

from __future__ import annotations

import logging
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILENAME = "placemini.log"


def resolve_level(level: str | int) -> int:
    """Map a level name such as "debug" to its number; unknown names mean INFO."""
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: str | int = "INFO", log_dir: str | Path | None = None) -> Path | None:
    """Configure the root logger; return the log file path if one is written."""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        if isinstance(handler, logging.FileHandler):
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)
    root.setLevel(resolve_level(level))

    if not log_dir:
        return None
    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    log_path = directory / LOG_FILENAME
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)
    return log_path
