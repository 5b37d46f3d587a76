"""
snapkeep - dated, verified, rotated backups of a directory.

The package root only holds logging setup; the backup workflow lives in
snapkeep.backup and the entry point in snapkeep.cli.
"""

import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

__version__ = '1.0.0'

# Extra levels used by the run log. DRYRUN sits above INFO so previews are
# shown whenever normal progress is.
SUCCESS = 25
DRYRUN = 22

logging.addLevelName(SUCCESS, 'SUCCESS')
logging.addLevelName(DRYRUN, 'DRYRUN')

LOGGER_NAME = 'snapkeep'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def configure_logging(log_file: Optional[str] = None, debug: bool = False) -> logging.Logger:
    """
    Configure the snapkeep logger.

    Safe to call more than once: previously installed handlers are closed and
    replaced, so the console-only setup used before the configuration is
    loaded can later be upgraded with a file handler.

    Args:
        log_file: Path of the append-only run log (None for console only)
        debug: Log at DEBUG instead of INFO

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    log_level = logging.DEBUG if debug else logging.INFO

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(
        '[%(asctime)s] %(levelname)s: %(message)s',
        datefmt=DATE_FORMAT
    ))
    logger.addHandler(console_handler)

    # File handler
    if log_file:
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10485760,  # 10MB
            backupCount=10
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(
            '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s',
            datefmt=DATE_FORMAT
        ))
        logger.addHandler(file_handler)

    logger.setLevel(log_level)
    logger.debug(f"Logging configured (level: {logging.getLevelName(log_level)}, file: {log_file})")
    return logger
