"""
Logging configuration for FieldCrypt.

In DEV mode logs are human-readable; in PROD mode each record is a single
JSON line for log aggregators. FieldCrypt never logs field values.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from .config import FieldCryptConfig


class JSONFormatter(logging.Formatter):
    """Emit log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(level: int | None = None) -> None:
    """
    Configure the root logger according to the operation mode.

    Args:
        level: Explicit log level; defaults to DEBUG in DEV mode, INFO otherwise
    """
    dev_mode = FieldCryptConfig.is_dev_mode()

    root = logging.getLogger()
    root.setLevel(level if level is not None else (logging.DEBUG if dev_mode else logging.INFO))

    # Remove any pre-existing handlers (e.g. uvicorn defaults)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    if dev_mode:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
                datefmt="%H:%M:%S",
            )
        )
    else:
        handler.setFormatter(JSONFormatter())
    root.addHandler(handler)

    if not dev_mode:
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
        logging.getLogger("urllib3").setLevel(logging.WARNING)
