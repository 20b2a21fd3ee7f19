"""
Logging helpers shared by the auth services, the Flask app and the CLI.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# verbosity 0-4, same scale as the CLI flag
VERBOSITY_LEVELS = {
    0: logging.CRITICAL,
    1: logging.ERROR,
    2: logging.WARNING,
    3: logging.INFO,
    4: logging.DEBUG,
}


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def setup_logging(verbosity: int = 3) -> None:
    """
    Configure the root logger with a single stream handler.

    Args:
        verbosity: 0 (critical only) to 4 (debug). Out-of-range values are clamped.
    """
    level = VERBOSITY_LEVELS[max(0, min(4, verbosity))]

    root = logging.getLogger()
    root.setLevel(level)

    # Re-running setup (e.g. from tests) should not stack handlers
    for handler in list(root.handlers):
        if getattr(handler, "_shopkeeper_handler", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._shopkeeper_handler = True
    root.addHandler(handler)


def setup_cli_logging(verbosity: int = 3) -> None:
    setup_logging(verbosity=verbosity)
    # werkzeug request lines are noise below debug verbosity
    if verbosity < 4:
        logging.getLogger("werkzeug").setLevel(logging.WARNING)
