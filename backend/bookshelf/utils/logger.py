import logging

from bookshelf.core.config import settings


def get_logger(name: str = "bookshelf") -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)

    # Avoid duplicate handlers
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            settings.LOG_FORMAT,
            datefmt="%H:%M:%S"  # Only time: HH:MM:SS
        )
        handler.setFormatter(formatter)
        handler.setLevel(settings.LOG_LEVEL.upper())
        logger.addHandler(handler)

    return logger
