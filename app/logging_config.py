# app/logging_config.py
import logging
import logging.config
from pathlib import Path

from app.config import settings


def build_logging_config(log_dir: str | None = None, level: str | None = None) -> dict:
    log_path = Path(log_dir or settings.LOG_DIR)
    log_path.mkdir(parents=True, exist_ok=True)
    log_file = str(log_path / "app.log")
    level = (level or settings.LOG_LEVEL or "INFO").upper()

    return {
        "version": 1,
        "disable_existing_loggers": False,

        "formatters": {
            "standard": {
                "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            },
            "access": {
                "format": "%(asctime)s | %(levelname)s | uvicorn.access | %(message)s",
            },
        },

        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "level": level,
            },
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "formatter": "standard",
                "filename": log_file,
                "maxBytes": 5 * 1024 * 1024,  # 5 MB
                "backupCount": 5,
                "encoding": "utf-8",
                "level": level,
            },
            "access_file": {
                "class": "logging.handlers.RotatingFileHandler",
                "formatter": "access",
                "filename": log_file,
                "maxBytes": 5 * 1024 * 1024,
                "backupCount": 5,
                "encoding": "utf-8",
                "level": "INFO",
            },
        },

        "loggers": {
            "uvicorn": {
                "handlers": ["console", "file"],
                "level": "INFO",
                "propagate": False,
            },
            "uvicorn.error": {
                "handlers": ["console", "file"],
                "level": "INFO",
                "propagate": False,
            },
            "uvicorn.access": {
                "handlers": ["access_file"],
                "level": "INFO",
                "propagate": False,
            },
            "fastapi": {
                "handlers": ["console", "file"],
                "level": "INFO",
                "propagate": False,
            },
            # webhook handlers, services, integrations
            "app": {
                "handlers": ["console", "file"],
                "level": level,
                "propagate": False,
            },
        },

        "root": {
            "handlers": ["console", "file"],
            "level": level,
        },
    }


def setup_logging(log_dir: str | None = None, level: str | None = None) -> None:
    logging.config.dictConfig(build_logging_config(log_dir, level))
    logging.getLogger("app").info("Logging initialized")


def mask_phone(phone: str | None) -> str:
    """Keep the last four digits so log lines stay correlatable."""
    p = (phone or "").strip()
    if len(p) <= 4:
        return p
    return "*" * (len(p) - 4) + p[-4:]
