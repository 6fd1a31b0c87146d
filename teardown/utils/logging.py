"""Logging setup."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from rich.logging import RichHandler

FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def run_log_path(output_dir: Union[str, Path], started_at: Optional[datetime] = None) -> Path:
    """Per-run log file name, e.g. ``destroy-20250101-120000.log``."""
    started_at = started_at or datetime.now()
    return Path(output_dir) / f"destroy-{started_at.strftime('%Y%m%d-%H%M%S')}.log"


def setup_logging(level: str = "INFO", verbose: bool = False, log_file: Optional[Union[str, Path]] = None) -> None:
    """Configure root logging.

    Console output goes through rich; an optional plaintext file receives
    every record at DEBUG level.

    Args:
        level: Console log level name
        verbose: Show module paths and timestamps on the console
        log_file: Path of the per-run plaintext log (optional)
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console_handler = RichHandler(
        level=getattr(logging, level.upper(), logging.INFO),
        show_time=verbose,
        show_path=verbose,
        rich_tracebacks=True,
        markup=False,
    )
    root.addHandler(console_handler)
    root.setLevel(logging.DEBUG if (verbose or log_file) else console_handler.level)

    if log_file:
        add_file_handler(log_file)

    # boto is very chatty at DEBUG
    for noisy in ("boto3", "botocore", "urllib3", "s3transfer"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def add_file_handler(log_file: Union[str, Path]) -> logging.Handler:
    """Attach a plaintext file handler for the per-run log."""
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG)
    return handler
