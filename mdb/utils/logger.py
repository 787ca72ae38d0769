import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, MutableMapping, Optional, Tuple, Union

from mdb.config import Settings, get_settings


class StructuredLogFormatter(logging.Formatter):
    """
    Custom formatter for structured JSON logs.

    Creates a JSON-formatted log entry with standardized fields like
    timestamp, log level and message, merged with the bound context
    fields carried in ``record.data``.
    """

    def __init__(self, service_name: str = "mdb", environment: str = "development"):
        super().__init__()
        self.service_name = service_name
        self.environment = environment

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "service": self.service_name,
            "environment": self.environment,
        }

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info)
            }

        if hasattr(record, "data") and isinstance(record.data, dict):
            log_data.update(record.data)

        return json.dumps(log_data, default=str)


def configure_logging(settings: Optional[Settings] = None) -> None:
    """
    Configure logging for applications embedding the database layer.

    Sets up structured JSON logging or formatted console logging,
    based on settings.

    Args:
        settings: Settings to use, defaults to the cached settings
    """
    settings = settings or get_settings()
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    if settings.ENABLE_STRUCTURED_LOGGING:
        handler.setFormatter(StructuredLogFormatter(settings.SERVICE_NAME, settings.ENVIRONMENT))
    else:
        handler.setFormatter(logging.Formatter(
            "[%(asctime)s] [%(levelname)s] [%(name)s] - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))

    logging.basicConfig(
        level=log_level,
        handlers=[handler],
        force=True
    )

    # pymongo is chatty at DEBUG
    logging.getLogger("pymongo").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Name for the logger

    Returns:
        logging.Logger: Logger instance
    """
    return logging.getLogger(name)


class LoggerAdapter(logging.LoggerAdapter):
    """
    Adapter binding context fields (database, address, collection) to logs.

    Bound fields and the ``data`` mapping passed through ``extra`` on each
    call are merged into ``record.data``, which the structured formatter
    flattens into the JSON entry.
    """

    def __init__(self, logger: logging.Logger, fields: Optional[Dict[str, Any]] = None):
        super().__init__(logger, dict(fields or {}))

    def bind(self, **fields: Any) -> "LoggerAdapter":
        """Return a new adapter carrying the current fields plus ``fields``."""
        merged = dict(self.extra)
        merged.update(fields)
        return LoggerAdapter(self.logger, merged)

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        """Process the log message to add context data."""
        extra = dict(kwargs.get("extra") or {})
        data = dict(self.extra)
        data.update(extra.get("data") or {})
        extra["data"] = data
        kwargs["extra"] = extra
        return msg, kwargs


LoggerLike = Union[logging.Logger, logging.LoggerAdapter]


def with_fields(logger: Optional[LoggerLike], **fields: Any) -> Optional[LoggerAdapter]:
    """
    Bind context fields to a logger.

    Args:
        logger: Logger or adapter to extend, may be None
        **fields: Context fields to bind

    Returns:
        A LoggerAdapter, or None when no logger was given
    """
    if logger is None:
        return None
    if isinstance(logger, LoggerAdapter):
        return logger.bind(**fields)
    if isinstance(logger, logging.LoggerAdapter):
        merged = dict(logger.extra or {})
        merged.update(fields)
        return LoggerAdapter(logger.logger, merged)
    return LoggerAdapter(logger, fields)
