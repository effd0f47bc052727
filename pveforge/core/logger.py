"""Logging for pveforge: rich console output plus a run log on disk.

Every logger returned by get_logger() masks values registered with
hide_secret(), so a root password never reaches the console or the log file.
"""
import logging
from pathlib import Path
from typing import Optional, Set

from rich.console import Console
from rich.logging import RichHandler

console = Console()

LOG_FILE = Path("/var/log/pveforge/pveforge.log")
FALLBACK_LOG_FILE = Path("/tmp/pveforge.log")
MASK = "********"

_secrets: Set[str] = set()
_log_file: Optional[Path] = None


def hide_secret(value: Optional[str]) -> None:
    """Mask ``value`` in every message logged from now on."""
    if value:
        _secrets.add(value)


class SecretFilter(logging.Filter):
    """Replaces registered secrets in the rendered message."""

    def filter(self, record: logging.LogRecord) -> bool:
        if _secrets:
            message = record.getMessage()
            for secret in _secrets:
                message = message.replace(secret, MASK)
            record.msg, record.args = message, None
        return True


def _open_log(path: Path) -> logging.FileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(path)


def setup_file_logging(log_file: Optional[str] = None, verbose: bool = False) -> Path:
    """Append this run's log records to a file.

    Args:
        log_file: Target file; LOG_FILE when omitted
        verbose: Also record DEBUG messages

    Returns:
        The file actually written, FALLBACK_LOG_FILE when the target is not writable
    """
    global _log_file

    if _log_file is not None:
        return _log_file

    target = Path(log_file) if log_file else LOG_FILE
    try:
        handler = _open_log(target)
    except OSError:
        target = FALLBACK_LOG_FILE
        handler = _open_log(target)

    handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    handler.addFilter(SecretFilter())

    package_logger = logging.getLogger("pveforge")
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG)

    _log_file = target
    package_logger.debug(f"Run log: {target}")
    return target


def set_verbose(verbose: bool = True) -> None:
    """Switch every pveforge console logger to DEBUG (or back to INFO)."""
    level = logging.DEBUG if verbose else logging.INFO
    for name, logger in logging.root.manager.loggerDict.items():
        if name.startswith("pveforge.") and isinstance(logger, logging.Logger):
            logger.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Return the module logger with a rich console handler attached."""
    logger = logging.getLogger(name)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(console=console, show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        handler.addFilter(SecretFilter())
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)

    return logger
