import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger("polaris")


def configure_logging(
    level: str = "INFO",
    format: str = LOG_FORMAT,
    file_path: Optional[str] = None,
) -> logging.Logger:
    """Attach console (and optionally file) handlers to the package logger.

    Safe to call more than once; previously attached handlers are replaced.
    """
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(format)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if file_path:
        file_handler = logging.FileHandler(file_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.setLevel(level.upper())
    return logger
