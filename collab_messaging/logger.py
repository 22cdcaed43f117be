import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List

from collab_messaging.config import Settings


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _handlers(settings: Settings) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if settings.logging.file_path:
        path = Path(settings.logging.file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                path,
                maxBytes=settings.logging.max_size_mb * 1024 * 1024,
                backupCount=settings.logging.backup_count,
            )
        )
    return handlers


def setup_logging(settings: Settings) -> None:
    """Route the service's logs to the console and, when a path is set, a rotating file.

    Driver and socket libraries stay at ``logging.library_level`` so per-frame
    chatter from pymongo or websockets does not drown out message events.
    """
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(settings.logging.level.upper())
    root_logger.handlers.clear()
    for handler in _handlers(settings):
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    for name in settings.logging.quiet_loggers:
        logging.getLogger(name).setLevel(settings.logging.library_level.upper())
