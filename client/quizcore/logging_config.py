from __future__ import annotations

import logging
import logging.config
from pathlib import Path
from typing import Any, Dict, Optional

from .config import settings

LOGGER_NAME = "client.quizcore"


def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> Dict[str, Any]:
    """Apply the client logging setup and return the dictConfig used."""

    log_level = (level or settings.LOG_LEVEL).upper()
    log_file = log_file or settings.LOG_FILE
    handlers = ["console"]

    config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "level": log_level,
            },
        },
        "loggers": {
            LOGGER_NAME: {
                "level": log_level,
                "handlers": handlers,
                "propagate": False,
            },
        },
    }

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "default",
            "level": log_level,
            "filename": str(log_file),
            "maxBytes": 5 * 1024 * 1024,
            "backupCount": 3,
            "encoding": "utf-8",
        }
        handlers.append("file")

    logging.config.dictConfig(config)
    return config
