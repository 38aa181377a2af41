"""
Logging setup for applications embedding Ember.

The library itself only creates loggers (``logging.getLogger(__name__)``);
it never configures handlers. Call setup_logging() once from your entry
point, as ``python -m ember`` does:

    text:  2026-01-05 10:55:36 [INFO] ember.server: Igniting blocking server on 0.0.0.0:8080
    json:  {"time": "2026-01-05 10:55:36", "level": "INFO", "logger": "ember.server", "message": "..."}
"""

import json
import logging
from typing import Union


TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log aggregators."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record, DATE_FORMAT),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(level: Union[str, int] = "INFO", fmt: str = "text") -> None:
    """
    Configure the root logger.

    Args:
        level: Level name ("DEBUG", "INFO", ...) or number.
        fmt: "text" or "json".
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT))

    logging.basicConfig(level=level, handlers=[handler], force=True)
    logging.getLogger("ember").setLevel(level)
