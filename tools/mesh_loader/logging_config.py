"""Logging setup for the mesh loader command line tool."""
import logging
import sys
from typing import Optional

# Library modules log under their module names; the CLI configures them all.
LOGGER_NAMES = (
    "mesh_loader",
    "mesh_assembler",
    "bulk_loader",
    "load_meshes",
)


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> None:
    """Configure console (and optional file) logging for the tool's modules.

    Args:
        level: Logging level (e.g. logging.DEBUG, logging.INFO)
        log_file: Optional path to also write logs to
    """
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )

    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="w", encoding="utf-8"))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)

    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        # Avoid duplicate output when called more than once
        if logger.hasHandlers():
            logger.handlers.clear()
        for handler in handlers:
            logger.addHandler(handler)
        logger.propagate = False
