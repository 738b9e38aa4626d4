# app/core/logging.py
import logging

from app.core.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """
    Configure the root logger for the service.

    The level comes from `LOG_LEVEL` unless passed explicitly. A stream
    handler is only installed when the root logger has none, so handlers set
    up by uvicorn or pytest are left alone.
    """
    level_name = (level or get_settings().LOG_LEVEL or "INFO").upper()
    root_level = getattr(logging, level_name, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root_logger.addHandler(handler)

    # SQL echo is far too chatty at DEBUG
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
