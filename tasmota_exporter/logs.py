from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

from .config import ConfigError

LEVELS: Dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

TEXT_FORMAT = "%(asctime)s %(levelname)s %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log collectors in containers."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
            }
        return json.dumps(entry, default=str)


def parse_level(level: str) -> int:
    lvl = LEVELS.get(level.strip().lower())
    if lvl is None:
        raise ConfigError(f"invalid log level {level!r}: valid levels are debug, info, warn, error")
    return lvl


def setup_logging(level: str, stream: Optional[TextIO] = None) -> None:
    lvl = parse_level(level)
    out = stream if stream is not None else sys.stdout

    handler = logging.StreamHandler(out)
    isatty = getattr(out, "isatty", None)
    if isatty is not None and isatty():
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    else:
        handler.setFormatter(JSONFormatter())

    logging.basicConfig(level=lvl, handlers=[handler], force=True)
