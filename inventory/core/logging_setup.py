import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from inventory.core.config import settings


def _get_log_level() -> int:
    level = (settings.LOG_LEVEL or "INFO").strip().upper()
    return getattr(logging, level, logging.INFO)


def setup_logging() -> None:
    root_logger = logging.getLogger()
    if getattr(root_logger, "_inventory_logging_configured", False):
        return

    log_level = _get_log_level()
    root_logger.setLevel(log_level)

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    if settings.LOG_FILE_ENABLED:
        try:
            log_dir = Path(settings.LOG_DIR)
            log_dir.mkdir(parents=True, exist_ok=True)

            file_handler = TimedRotatingFileHandler(
                filename=str(log_dir / settings.LOG_FILE_NAME),
                when=settings.LOG_FILE_ROTATION_WHEN,
                interval=max(1, settings.LOG_FILE_ROTATION_INTERVAL),
                backupCount=max(1, settings.LOG_FILE_RETENTION_DAYS),
                encoding="utf-8",
                utc=True,
            )
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
        except OSError as exc:
            logging.getLogger(__name__).warning("Failed to initialize file logger: %s", exc)

    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi"):
        logging.getLogger(logger_name).setLevel(log_level)

    # SQL echo stays off unless explicitly debugging.
    logging.getLogger("sqlalchemy.engine").setLevel(max(log_level, logging.WARNING))

    root_logger._inventory_logging_configured = True
