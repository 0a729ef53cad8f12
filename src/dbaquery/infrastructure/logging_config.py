"""
Logging setup for the dbaquery CLI.

Diagnostics go to stderr so stdout carries only query and SMO results.
A log file, when requested, always receives DEBUG records.
"""

import logging
import sys
from pathlib import Path

_RESET = "\033[0m"
_LEVEL_COLORS = {
    logging.DEBUG: "\033[2m",
    logging.INFO: "\033[36m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[91m",
    logging.CRITICAL: "\033[1;41m",
}

# Driver and transport chatter is only interesting when it fails
QUIET_LOGGERS = ("pyodbc", "urllib3", "requests", "winrm", "requests_ntlm")


class ColoredFormatter(logging.Formatter):
    """Colours the level name of console records."""

    def __init__(self, fmt: str, datefmt: str | None = None, use_colors: bool = True):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_colors:
            return super().format(record)
        # Format a copy; the file handler gets the same record
        colored = logging.makeLogRecord(record.__dict__)
        color = _LEVEL_COLORS.get(record.levelno, "")
        colored.levelname = f"{color}{record.levelname:<8}{_RESET}"
        return super().format(colored)


def setup_logging(level: int = logging.INFO, log_file: str | Path | None = None) -> None:
    """
    Configure root logging for a CLI run.

    Args:
        level: Console level
        log_file: Optional UTF-8 log file, written at DEBUG
    """
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(
        ColoredFormatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
            use_colors=sys.stderr.isatty(),
        )
    )
    handlers: list[logging.Handler] = [console]

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s")
        )
        handlers.append(file_handler)

    logging.basicConfig(level=logging.DEBUG, handlers=handlers, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        "Console level %s, log file %s", logging.getLevelName(level), log_file or "none"
    )
