"""
Logging setup for the API and CLI.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# Loggers owned by this project.
_PACKAGES = ("acme_dns_checker", "propagation", "discovery", "reporting")


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
    stream=None,
) -> None:
    """
    Configure the project loggers.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path for a rotating log file (always DEBUG)
        max_bytes: Maximum log file size before rotation
        backup_count: Number of backup log files to keep
        stream: Console stream (defaults to stderr so JSON output on stdout stays clean)
    """
    lvl = getattr(logging, (level or "INFO").upper(), logging.INFO)

    console = logging.StreamHandler(stream or sys.stderr)
    console.setLevel(lvl)
    console.setFormatter(logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    handlers = [console]

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(
            fmt="%(asctime)s | %(levelname)-8s | %(name)-28s | %(funcName)-20s | %(lineno)-4d | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        handlers.append(fh)

    for name in _PACKAGES:
        logger = logging.getLogger(name)
        logger.handlers.clear()
        logger.setLevel(logging.DEBUG if log_file else lvl)
        for h in handlers:
            logger.addHandler(h)
        logger.propagate = False
