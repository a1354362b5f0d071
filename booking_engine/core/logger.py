import sys
import logging
from typing import Optional
from loguru import logger

from booking_engine.core.config import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"

# Third-party loggers that only matter when something is wrong
QUIET_LOGGERS = ("uvicorn.access", "googleapiclient", "httpx", "hpack")


class InterceptHandler(logging.Handler):
    """Forwards stdlib logging records (uvicorn, google clients, httpx) into loguru."""

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk back to the frame that actually issued the log call
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: Optional[str] = None, error_log: Optional[str] = None):
    """
    Console sink at LOG_LEVEL plus a rotating error file at ERROR_LOG_PATH.
    An empty ERROR_LOG_PATH disables the file sink.
    """
    level = level or settings.LOG_LEVEL
    error_log = settings.ERROR_LOG_PATH if error_log is None else error_log

    logger.remove()
    logger.add(sys.stdout, level=level, format=CONSOLE_FORMAT)

    if error_log:
        logger.add(
            error_log,
            level="ERROR",
            rotation="10 MB",
            retention="1 month",
            compression="zip",
            format=FILE_FORMAT,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = ["logger", "setup_logging"]
