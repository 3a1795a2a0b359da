"""
Logging setup built on loguru.

Modules obtain a bound logger once at import time:

    from udptunnel.utils.logger import get_logger

    logger = get_logger(__name__)

and the entry point calls configure_logging() before anything is logged.
"""

import sys

from loguru import logger as _logger

from udptunnel.models.enums import LogLevel

_LEVEL_MAP = {
    LogLevel.FULL: "TRACE",
    LogLevel.DEBUG: "DEBUG",
    LogLevel.INFO: "INFO",
    LogLevel.WARNING: "WARNING",
}

_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)

# Records logged before configure_logging() still need extra["name"]
_logger.configure(extra={"name": "udptunnel"})


def configure_logging(
    level: LogLevel = LogLevel.INFO, log_file: str | None = None
) -> None:
    """
    Replace loguru's default sink with the tunnel's format.

    Args:
        level: Verbosity for all sinks.
        log_file: Optional path of an additional rotating log file.
    """
    loguru_level = _LEVEL_MAP.get(level, "INFO")
    detailed = level == LogLevel.FULL

    _logger.remove()
    _logger.add(
        sys.stderr,
        level=loguru_level,
        format=_FORMAT,
        backtrace=detailed,
        diagnose=detailed,
    )

    if log_file:
        _logger.add(
            log_file,
            level=loguru_level,
            format=_FORMAT,
            rotation="10 MB",
            retention=3,
            backtrace=detailed,
            diagnose=detailed,
        )


def level_for(verbose: bool, log_level: LogLevel | None = None) -> LogLevel:
    """Pick the effective level: an explicit level wins, then --verbose."""
    if log_level is not None:
        return log_level
    return LogLevel.DEBUG if verbose else LogLevel.WARNING


def get_logger(name: str):
    """Return a loguru logger tagged with the module name."""
    return _logger.bind(name=name)
