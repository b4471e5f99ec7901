"""Logging configuration for Rollout.

All modules obtain loggers through get_logger() so that output is namespaced
under the "rollout" logger and controlled by a single setup_logging() call
made from the CLI.
"""

import logging
import sys

ROOT_LOGGER_NAME = "rollout"

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"


def get_logger(name: str) -> logging.Logger:
    """Return a logger namespaced under the rollout root logger.

    Args:
        name: Usually __name__ of the calling module

    Returns:
        Logger instance
    """
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure the rollout root logger.

    Installs a single stderr handler. Calling it again only adjusts the level.

    Args:
        verbose: Enable DEBUG output (rendered remote commands)
        quiet: Only show warnings and errors
    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)

    if not any(getattr(h, "_rollout_handler", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        handler._rollout_handler = True  # type: ignore[attr-defined]
        root.addHandler(handler)

    # paramiko is chatty at INFO
    logging.getLogger("paramiko").setLevel(
        logging.DEBUG if verbose else logging.WARNING
    )
