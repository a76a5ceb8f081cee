"""
Logger Setup Utility
"""

import logging
import sys
from logging.handlers import RotatingFileHandler

HANDLER_PREFIX = "qmc5883l_pi."


def setup_logger(name, level='INFO', log_file='qmc5883l.log'):
    """
    Setup logger with console and file handlers

    Args:
        name: Logger name ('' configures the root logger, so the driver
              and bus module loggers are included)
        level: Logging level name
        log_file: Rotating log file path, or None for console only

    Returns:
        Logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    # Replace handlers from an earlier call, leave foreign ones alone
    for handler in list(logger.handlers):
        if (handler.get_name() or "").startswith(HANDLER_PREFIX):
            logger.removeHandler(handler)
            handler.close()

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)
    console_format = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(console_format)
    console_handler.set_name(HANDLER_PREFIX + "console")
    logger.addHandler(console_handler)

    # File handler
    if log_file:
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        )
        file_handler.setLevel(logging.DEBUG)
        file_format = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        file_handler.setFormatter(file_format)
        file_handler.set_name(HANDLER_PREFIX + "file")
        logger.addHandler(file_handler)

    return logger
