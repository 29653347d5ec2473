"""Logging configuration for the server entry point and the CLI."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional


class _ThirdPartyFilter(logging.Filter):
    """Keep neuralagent logs; let other libraries through only at WARNING+."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith("neuralagent"):
            return True
        return record.levelno >= logging.WARNING


def setup_logging(
    *,
    console_level: int = logging.INFO,
    log_file: Optional[str | Path] = None,
    file_level: int = logging.DEBUG,
) -> None:
    """Configure the root logger. Call once, before the first log call."""
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(_ThirdPartyFilter())
    root.addHandler(ch)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(log_path), encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(fmt)
        root.addHandler(fh)

    logging.captureWarnings(True)
