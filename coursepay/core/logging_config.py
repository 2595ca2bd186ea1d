# coursepay/core/logging_config.py
import logging
import logging.config
import sys
from typing import Any, Dict

from coursepay.core.config import settings

AUDIT_LOGGER = "coursepay.audit"

_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _file_handler(filename: str, formatter: str) -> Dict[str, Any]:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": "INFO",
        "formatter": formatter,
        "filename": filename,
        "maxBytes": settings.LOG_MAX_BYTES,
        "backupCount": settings.LOG_BACKUP_COUNT,
        "encoding": "utf-8",
        "delay": True,
    }


def build_logging_config() -> Dict[str, Any]:
    """dictConfig for the payments service.

    Application loggers live under ``coursepay``. Money-moving events
    (verified webhooks, refunds, renewals) also go to ``coursepay.audit``,
    which gets its own file when AUDIT_LOG_FILE is set.
    """
    app_level = "DEBUG" if settings.DEBUG else "INFO"

    handlers: Dict[str, Any] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": app_level,
            "formatter": "detailed" if settings.DEBUG else "default",
            "stream": sys.stdout,
        },
        "file": _file_handler(settings.LOG_FILE, "detailed"),
    }
    audit_handlers = ["console", "file"]
    if settings.AUDIT_LOG_FILE:
        handlers["audit_file"] = _file_handler(settings.AUDIT_LOG_FILE, "audit")
        audit_handlers.append("audit_file")

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": _DATEFMT,
            },
            "detailed": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s",
                "datefmt": _DATEFMT,
            },
            "audit": {
                "format": "%(asctime)s | %(message)s",
                "datefmt": _DATEFMT,
            },
        },
        "handlers": handlers,
        "loggers": {
            "": {"handlers": ["console"], "level": "INFO", "propagate": False},
            "coursepay": {"handlers": ["console", "file"], "level": app_level, "propagate": False},
            AUDIT_LOGGER: {"handlers": audit_handlers, "level": "INFO", "propagate": False},
            "uvicorn": {"handlers": ["console"], "level": "INFO", "propagate": False},
            "sqlalchemy": {"handlers": ["console"], "level": "WARNING", "propagate": False},
            # Gateway SDKs log request bodies at DEBUG
            "stripe": {"handlers": ["console"], "level": "WARNING", "propagate": False},
            "razorpay": {"handlers": ["console"], "level": "WARNING", "propagate": False},
            "urllib3": {"handlers": ["console"], "level": "WARNING", "propagate": False},
        },
    }


def setup_logging() -> None:
    # Handler failures (e.g. broken pipe) must not interrupt webhook or batch processing.
    logging.raiseExceptions = False
    logging.config.dictConfig(build_logging_config())

    if settings.ENVIRONMENT == "production":
        logging.getLogger("uvicorn").setLevel(logging.WARNING)

    logging.getLogger("coursepay.logging").info(
        f"Logging configured for {settings.ENVIRONMENT} environment (debug={settings.DEBUG})"
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``coursepay`` namespace"""
    if name.startswith("coursepay."):
        return logging.getLogger(name)
    return logging.getLogger(f"coursepay.{name}")


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(AUDIT_LOGGER)


# Initialize logging when module is imported
setup_logging()
