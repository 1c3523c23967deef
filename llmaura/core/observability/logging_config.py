"""
Logging configuration — central setup for the CLI.

main.py calls ``setup_logging`` once per command. Module loggers
(``logging.getLogger(__name__)``) inherit the root handlers, and the run
log forwards each entry to the ``llmaura.run`` logger, so a provisioning
run shows up on stderr and in the optional log file alike.

Console level precedence:
    CLI flag  >  LLMAURA_LOG_LEVEL  >  command default

A log file is added when LLMAURA_LOG_FILE (or ``log_file``) is set; its
level comes from LLMAURA_LOG_FILE_LEVEL and falls back to the console level.
"""

from __future__ import annotations

import logging
import os
import sys

LEVEL_ENV = "LLMAURA_LOG_LEVEL"
FILE_ENV = "LLMAURA_LOG_FILE"
FILE_LEVEL_ENV = "LLMAURA_LOG_FILE_LEVEL"

# ── Formats ─────────────────────────────────────────────────────

_DETAILED = "%(asctime)s %(levelname)-8s %(name)s:%(lineno)d — %(message)s"

# (threshold, format, datefmt), checked top to bottom
_CONSOLE_FORMATS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, _DETAILED, "%H:%M:%S"),
    (logging.INFO, "%(asctime)s %(levelname)-8s %(message)s", "%H:%M:%S"),
)
_CONSOLE_FALLBACK = ("%(levelname)s: %(message)s", None)

_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


def resolve_level(flag_level: str | None, default: str = "WARNING") -> str:
    """Pick the console level: CLI flag, then environment, then ``default``."""
    return flag_level or os.environ.get(LEVEL_ENV) or default


def console_formatter(numeric_level: int) -> logging.Formatter:
    for threshold, fmt, datefmt in _CONSOLE_FORMATS:
        if numeric_level <= threshold:
            return logging.Formatter(fmt, datefmt=datefmt)
    fmt, datefmt = _CONSOLE_FALLBACK
    return logging.Formatter(fmt, datefmt=datefmt)


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Replace the root logger's handlers with a stderr console handler
    and, when configured, a file handler.

    An unknown level name falls back to WARNING. A log file that cannot
    be opened is reported on the console and otherwise ignored.
    """
    console_level = _parse_level(level)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(console_formatter(console_level))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root.setLevel(console_level)

    path = log_file or os.environ.get(FILE_ENV)
    if path:
        file_level_name = log_file_level or os.environ.get(FILE_LEVEL_ENV)
        file_level = _parse_level(file_level_name) if file_level_name else console_level
        try:
            handler = logging.FileHandler(path, encoding="utf-8")
        except OSError as e:
            root.warning("Cannot open log file %s: %s", path, e)
        else:
            handler.setLevel(file_level)
            handler.setFormatter(logging.Formatter(_DETAILED, datefmt=_FILE_DATEFMT))
            root.addHandler(handler)
            root.setLevel(min(console_level, file_level))

    # Logging errors on a closed stream (e.g. a CliRunner buffer) stay silent
    logging.raiseExceptions = False


def _parse_level(name: str | None) -> int:
    numeric = getattr(logging, name.upper(), None) if name else None
    return numeric if isinstance(numeric, int) else logging.WARNING
