"""
Logging setup shared by the tracker, dispatcher and cleanup services.

Modules log through ``logging.getLogger(__name__)``; this only wires handlers.
"""

import logging
from pathlib import Path

from app.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

NOISY_LOGGERS = ("urllib3", "httpx", "httpcore", "PIL")


def setup_logging(level: str | None = None, log_file: str | None = None) -> logging.Logger:
    """
    Configure the root logger.

    Args:
        level: Level name, defaults to ``settings.log_level``.
        log_file: Optional path for a UTF-8 file handler, defaults to
            ``settings.log_file`` (empty means console only).

    Returns:
        The configured root logger.
    """
    level_name = (level or settings.log_level).upper()
    numeric_level = logging.getLevelName(level_name)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    log_file = log_file if log_file is not None else settings.log_file
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))

    logging.basicConfig(level=numeric_level, format=LOG_FORMAT, handlers=handlers, force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logging.getLogger()
