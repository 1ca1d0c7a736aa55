"""Logging setup for api-test-synth."""

from __future__ import annotations

import json
import logging
import os
import sys
from typing import Any

ROOT_LOGGER = "api_test_synth"
LOG_LEVEL_ENV = "API_TEST_SYNTH_LOG_LEVEL"
LOG_FORMAT_ENV = "API_TEST_SYNTH_LOG_FORMAT"  # "json" | "text" (default)


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the package root. Configures the root on first use."""
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        logger = logging.getLogger(name)
    else:
        logger = logging.getLogger(f"{ROOT_LOGGER}.{name}")
    _configure_logging()
    return logger


def _configure_logging() -> None:
    root = logging.getLogger(ROOT_LOGGER)
    if root.handlers:
        return
    level_name = (os.environ.get(LOG_LEVEL_ENV) or "WARNING").upper()
    root.setLevel(getattr(logging, level_name, logging.WARNING))
    handler = logging.StreamHandler(sys.stderr)
    if (os.environ.get(LOG_FORMAT_ENV) or "text").lower() == "json":
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        )
    root.addHandler(handler)


class _JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        obj: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt or "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            obj["exception"] = self.formatException(record.exc_info)
        return json.dumps(obj, ensure_ascii=False)
