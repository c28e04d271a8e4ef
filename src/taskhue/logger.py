"""Logging configuration for Taskhue with custom verbosity levels.

Store failures the engine recovers from, such as a failed table read or a
rejected color write, are logged at WARNING and appear from verbosity 1 up.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, TextIO

# Define custom levels between standard logging levels
CHANGES_LEVEL = 25  # Between INFO (20) and WARNING (30) - for verbosity level 1
CHECKS_LEVEL = 15  # Between DEBUG (10) and INFO (20) - for verbosity level 2

logging.addLevelName(CHANGES_LEVEL, "CHANGES")
logging.addLevelName(CHECKS_LEVEL, "CHECKS")

# Verbosity level constants for external use
VERBOSITY_SILENT = 0  # Only errors
VERBOSITY_CHANGES = 1  # Color writes, invalidations, navigation resets
VERBOSITY_CHECKS = 2  # Per-item resolution decisions
VERBOSITY_DEBUG = 3  # Full debug output


class TaskhueLogger(logging.Logger):
    """Custom logger with semantic verbosity methods.

    Provides methods that correspond to verbosity levels:
    - changes(): verbosity level 1 - state the engine changed: manual and
      recurring color writes, cache invalidations, navigation resets,
      results coming back from the remote side
    - checks(): verbosity level 2 - per-item resolution decisions, i.e. which
      priority rule (manual, recurring, list, completed) styled a task
    - debug(): verbosity level 3 - table refreshes and repaint throttling
    """

    def changes(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log a state change such as a color write or cache invalidation (verbosity level 1)."""
        if self.isEnabledFor(CHANGES_LEVEL):
            self._log(CHANGES_LEVEL, msg, args, **kwargs)

    def checks(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log a per-item resolution decision (verbosity level 2)."""
        if self.isEnabledFor(CHECKS_LEVEL):
            self._log(CHECKS_LEVEL, msg, args, **kwargs)


def get_logger() -> TaskhueLogger:
    """Get the taskhue logger instance (singleton).

    Returns the same logger instance on every call. Use setup_logger()
    to configure it before first use.

    Returns:
        The taskhue logger singleton instance
    """
    logging.setLoggerClass(TaskhueLogger)
    logger = logging.getLogger("taskhue")
    assert isinstance(logger, TaskhueLogger)
    return logger


def setup_logger(verbosity: int, stream: TextIO | None = None) -> None:
    """Configure the taskhue logger with verbosity level.

    Can be called multiple times to reconfigure the logger.

    Args:
        verbosity: 0=silent (errors only), 1=changes and recovered failures,
            2=per-item decisions, 3=debug
        stream: Optional output stream (defaults to sys.stderr, useful for testing)
    """
    logger = get_logger()

    logger.handlers.clear()

    level_map = {
        0: logging.ERROR,
        1: CHANGES_LEVEL,
        2: CHECKS_LEVEL,
        3: logging.DEBUG,
    }
    logger.setLevel(level_map.get(verbosity, logging.ERROR))

    output_stream = stream if stream is not None else sys.stderr

    handler = logging.StreamHandler(output_stream)
    handler.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False


def reset_logger() -> None:
    """Reset the logger to clean state.

    Useful for testing to ensure clean state between tests.
    """
    logger = get_logger()
    logger.handlers.clear()
    logger.setLevel(logging.ERROR)
    logger.propagate = True


def is_silent() -> bool:
    """Check if logger is in silent mode (verbosity == 0)."""
    return get_logger().level >= logging.ERROR


def changes_enabled() -> bool:
    """Check if changes-level logging is enabled (verbosity >= 1)."""
    return get_logger().isEnabledFor(CHANGES_LEVEL)


def checks_enabled() -> bool:
    """Check if checks-level logging is enabled (verbosity >= 2)."""
    return get_logger().isEnabledFor(CHECKS_LEVEL)


def debug_enabled() -> bool:
    """Check if debug-level logging is enabled (verbosity >= 3)."""
    return get_logger().isEnabledFor(logging.DEBUG)
