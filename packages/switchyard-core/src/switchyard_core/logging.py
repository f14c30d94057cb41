from __future__ import annotations

import json
import logging
import sys
from typing import TextIO

ROOT_LOGGER = "switchyard"

# Record attributes passed through ``extra=`` that JSON output keeps.
CONTEXT_FIELDS = ("task_id", "adapter", "strategy")

_TEXT_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with routing context when present."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": record.created,
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    *,
    stream: TextIO | None = None,
    force: bool = False,
) -> logging.Logger:
    """Configure and return the root switchyard logger.

    Only the first call installs a handler; later calls return the
    logger untouched unless *force* is set, which replaces it.
    """
    logger = logging.getLogger(ROOT_LOGGER)

    if logger.handlers and not force:
        return logger
    for existing in list(logger.handlers):
        logger.removeHandler(existing)

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(stream or sys.stderr)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT, datefmt="%H:%M:%S"))

    logger.addHandler(handler)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a child logger under the switchyard namespace."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
