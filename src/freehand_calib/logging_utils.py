import logging
from typing import Optional

from freehand_calib.constants import TRACE

logging.addLevelName(TRACE, "TRACE")

# --verbose value -> logging level
VERBOSITY_LEVELS = {
    1: logging.ERROR,
    2: logging.WARNING,
    3: logging.INFO,
    4: logging.DEBUG,
    5: TRACE,
}
DEFAULT_VERBOSITY = 3

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def verbosity_to_level(verbose: int) -> int:
    """Map a 1..5 verbosity to a logging level; out-of-range values are clamped."""
    verbose = min(max(int(verbose), 1), max(VERBOSITY_LEVELS))
    return VERBOSITY_LEVELS[verbose]


def setup_logger(verbose: int = DEFAULT_VERBOSITY, name: str = "freehand_calib") -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(verbosity_to_level(verbose))

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    return logger


def trace(logger: logging.Logger, message: str, *args: object) -> None:
    """Log at TRACE level (below DEBUG)."""
    if logger.isEnabledFor(TRACE):
        logger.log(TRACE, message, *args)


def child_logger(logger: Optional[logging.Logger], suffix: str) -> logging.Logger:
    """Return logger.getChild(suffix), or the package logger's child if None."""
    base = logger if logger is not None else logging.getLogger("freehand_calib")
    return base.getChild(suffix)
