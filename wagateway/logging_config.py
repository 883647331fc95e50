"""
Logging setup for the API process.

uvicorn access lines for endpoints that hosting platforms and dashboards
poll every few seconds are dropped; everything else goes to stdout.
"""

import logging
from typing import Any, Dict, Iterable, Optional

# Paths whose successful GETs are not worth an access-log line
QUIET_PATHS = ("/health",)

ACCESS_LOGGER = "uvicorn.access"


class QuietPathFilter(logging.Filter):
    """Drop uvicorn access records for GET requests on quiet paths."""

    def __init__(self, paths: Iterable[str] = QUIET_PATHS):
        super().__init__()
        self.paths = tuple(paths)

    def _request_line(self, record: logging.LogRecord) -> Optional[tuple]:
        # uvicorn logs (client, method, path, http_version, status)
        args = record.args
        if isinstance(args, tuple) and len(args) == 5:
            return str(args[1]), str(args[2]).split("?", 1)[0]
        return None

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name != ACCESS_LOGGER:
            return True

        request = self._request_line(record)
        if request is not None:
            method, path = request
            return not (method == "GET" and path in self.paths)

        message = record.getMessage()
        return not ("GET" in message and any(f"{path} " in message for path in self.paths))


def get_logging_config(level: str = "INFO", quiet_paths: Iterable[str] = QUIET_PATHS) -> Dict[str, Any]:
    """dictConfig for the app and uvicorn, usable as uvicorn's log_config."""
    level = level.upper()

    def stdout_handler(formatter: str, **extra) -> Dict[str, Any]:
        return {
            "class": "logging.StreamHandler",
            "formatter": formatter,
            "stream": "ext://sys.stdout",
            **extra,
        }

    loggers = {
        name: {"handlers": ["default"], "level": "INFO", "propagate": False}
        for name in ("uvicorn", "uvicorn.error")
    }
    loggers[ACCESS_LOGGER] = {"handlers": ["access"], "level": "INFO", "propagate": False}
    loggers["wagateway"] = {"handlers": ["default"], "level": level, "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "quiet_paths": {"()": QuietPathFilter, "paths": list(quiet_paths)},
        },
        "formatters": {
            "default": {"format": "[%(asctime)s] [%(levelname)s] %(name)s - %(message)s"},
            "access": {"format": "%(message)s"},
        },
        "handlers": {
            "default": stdout_handler("default"),
            "access": stdout_handler("access", filters=["quiet_paths"]),
        },
        "loggers": loggers,
        "root": {"level": level, "handlers": ["default"]},
    }
