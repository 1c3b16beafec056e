import logging
from contextvars import ContextVar
from logging.config import dictConfig
from typing import Literal, Optional

LogLevel = Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"]

JSON_FORMATTER_CLASS = "pythonjsonlogger.json.JsonFormatter"

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class RequestIdFilter(logging.Filter):
    """Stamp each record with the id of the request being served, if any."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        return True


def configure_logging(level: LogLevel = "INFO", json_output: bool = True) -> None:
    """Configure structured logging across the app.

    Every record carries ``request_id`` so lines from one API call can be
    grouped. SQLAlchemy engine chatter is held at WARNING regardless of level.
    """
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"request_id": {"()": RequestIdFilter}},
            "formatters": {
                "plain": {
                    "format": "%(asctime)s | %(levelname)s | %(request_id)s | %(name)s | %(message)s",
                },
                "json": {
                    "()": JSON_FORMATTER_CLASS,
                    "fmt": "%(asctime)s %(levelname)s %(name)s %(request_id)s %(message)s",
                    "rename_fields": {"levelname": "level", "asctime": "time"},
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "json" if json_output else "plain",
                    "filters": ["request_id"],
                }
            },
            "loggers": {"sqlalchemy.engine": {"level": "WARNING"}},
            "root": {"handlers": ["console"], "level": level.upper()},
        }
    )

    # uvicorn installs its own handlers; route everything through ours
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).handlers = []
