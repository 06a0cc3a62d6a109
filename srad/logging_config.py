"""
Logging Configuration
=====================

Console (and optional file) output for the `srad` logger tree. Library
modules only call `logging.getLogger(__name__)`; handlers are attached here,
by the CLI, so importing `srad` never configures logging on its own.
"""
import logging
import sys
from typing import Optional


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> logging.Logger:
    """
    Attach handlers to the 'srad' logger.

    Driver progress is logged at INFO and per-iteration phase timing at
    DEBUG, so `-v` on the command line shows every iteration.

    Args:
        level: Threshold for the logger and its handlers
        log_file: Optional path that receives the same records as stdout

    Returns:
        The configured 'srad' logger
    """
    logger = logging.getLogger("srad")
    logger.setLevel(level)

    # Calling setup twice (tests, repeated CLI runs) keeps a single handler set
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(
        '%(asctime)s %(levelname)-7s %(name)s: %(message)s',
        datefmt='%H:%M:%S'
    )

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode='w', encoding='utf-8'))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.debug("Logging initialized (level %s, file %s)",
                 logging.getLevelName(level), log_file or "none")
    return logger
