"""Logging for dock-pulse: Rich on stderr, plain text in the log file.

Every module logger is a child of the ``dock_pulse`` logger, which owns the
handlers. While the Textual app owns the terminal the Rich handler is muted,
so records only reach the file.
"""

import logging
from pathlib import Path

from rich.logging import RichHandler

from dock_pulse.utils.config import LOG_FILE, LOG_LEVEL

PACKAGE_LOGGER = "dock_pulse"
_MUTED = logging.CRITICAL + 1

_console: RichHandler | None = None
_console_level = logging.INFO


def _configure(level: int) -> logging.Logger:
    global _console, _console_level

    root = logging.getLogger(PACKAGE_LOGGER)
    if root.handlers:
        return root

    root.setLevel(logging.DEBUG)
    root.propagate = False

    _console_level = level
    _console = RichHandler(
        level=level,
        rich_tracebacks=True,
        show_path=False,
        markup=False,
        console=None,  # stderr
    )
    _console.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(_console)

    try:
        log_path = Path(LOG_FILE)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(str(log_path), encoding="utf-8")
    except OSError:
        root.warning("Could not create log file at %s", LOG_FILE)
    else:
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root.addHandler(file_handler)
    return root


def get_logger(name: str, level: int | str = LOG_LEVEL) -> logging.Logger:
    """Return the logger for ``name``, configuring the package handlers once.

    Args:
        name: Logger name (usually __name__, i.e. ``dock_pulse.*``).
        level: Console level, used only by the first call.
    """
    _configure(logging.getLevelName(level) if isinstance(level, str) else level)
    return logging.getLogger(name)


def mute_console(muted: bool = True) -> None:
    """Silence (or restore) the stderr handler; the log file is unaffected."""
    if _console is not None:
        _console.setLevel(_MUTED if muted else _console_level)
