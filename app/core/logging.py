"""Logging configuration.

Applies LOG_LEVEL and LOG_FORMAT from settings to the root logger at startup.
"""

import json
import logging
import logging.config
from datetime import UTC, datetime

from app.core.config import LogFormatEnum, Settings, settings as default_settings


class JsonFormatter(logging.Formatter):
    """Render log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(config: Settings | None = None) -> None:
    config = config or default_settings
    formatter = "json" if config.log_format == LogFormatEnum.json else "simple"
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "simple": {"format": "%(asctime)s %(levelname)s [%(name)s] %(message)s"},
                "json": {"()": JsonFormatter},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": formatter,
                },
            },
            "root": {"handlers": ["console"], "level": config.log_level.value},
        }
    )
