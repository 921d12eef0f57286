import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler
from healthhub.config import Settings, get_settings

CONSOLE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Transport libraries are chatty at INFO (every ping/poll); only their problems matter here.
TRANSPORT_LOGGERS = ("socketio", "engineio")


def _rotating(path: Path, level: int, settings: Settings) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path,
        maxBytes=settings.LOG_MAX_BYTES,
        backupCount=settings.LOG_BACKUP_COUNT,
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def _build_logger(settings: Settings) -> logging.Logger:
    logs_dir = Path(settings.LOG_DIR)
    logs_dir.mkdir(parents=True, exist_ok=True)
    level = logging.DEBUG if settings.APP_DEBUG else logging.INFO

    root = logging.getLogger("healthhub")
    root.setLevel(level)

    # Prevent duplicate logs when the module is reloaded
    if root.handlers:
        root.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(console_handler)

    root.addHandler(_rotating(logs_dir / "app.log", logging.INFO, settings))
    # errors.log is what gets looked at when a send or a change stream fails
    root.addHandler(_rotating(logs_dir / "errors.log", logging.ERROR, settings))

    for name in TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if settings.APP_DEBUG else logging.WARNING)

    return root


logger = _build_logger(get_settings())


def get_logger(name: str = None) -> logging.Logger:
    """Get a logger instance. If name is provided, returns a child logger."""
    if name:
        return logger.getChild(name)
    return logger
