import logging
import os
from logging.config import dictConfig

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging() -> None:
    """Configure process logging from environment flags."""
    level = os.getenv("SCHOOLSYNC_LOG_LEVEL", "INFO").upper()

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": DEFAULT_LOG_FORMAT,
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "root": {
                "handlers": ["default"],
                "level": level,
            },
        }
    )

    if os.getenv("SCHOOLSYNC_DEBUG_SCHEDULER", "0") == "1":
        logging.getLogger("apscheduler").setLevel(logging.DEBUG)
    else:
        # Interval jobs log every execution at INFO.
        logging.getLogger("apscheduler.executors").setLevel(logging.WARNING)
