"""
Module for centralized, configurable logging across SolarSat packages.
"""

import logging
import os
import json
from datetime import datetime, timezone


class JSONFormatter(logging.Formatter):
    """
    Formatter that emits one JSON object per record with keys:
    timestamp (ISO8601, UTC), level, name, message.
    """

    def format(self, record):
        payload = {
            "timestamp": datetime.fromtimestamp(
                record.created, timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


class Logger:
    """
    Central logging setup shared by the CLI, services and pipeline.
    """

    _configured = False

    @staticmethod
    def setup(
        level: int | None = None,
        fmt: str | None = None,
        datefmt: str = "%Y-%m-%d %H:%M:%S",
    ) -> None:
        """
        Configure the root logger once.

        Level falls back to SOLARSAT_LOG_LEVEL, format to SOLARSAT_LOG_FMT
        ("json" for structured output, otherwise a logging format string).
        """
        if Logger._configured:
            return
        if level is None:
            env_level = os.getenv("SOLARSAT_LOG_LEVEL", "INFO").upper()
            effective_level = getattr(logging, env_level, logging.INFO)
        else:
            effective_level = level

        fmt_mode = fmt if fmt is not None else os.getenv("SOLARSAT_LOG_FMT", "")
        default_fmt = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
        root = logging.getLogger()
        root.handlers.clear()

        if fmt_mode.lower() == "json":
            handler = logging.StreamHandler()
            handler.setFormatter(JSONFormatter(datefmt=datefmt))
            root.addHandler(handler)
            root.setLevel(effective_level)
        else:
            logging.basicConfig(
                level=effective_level,
                format=fmt_mode or default_fmt,
                datefmt=datefmt,
            )
        Logger._configured = True

    @staticmethod
    def get_logger(
        name: str = "solarsat", *, level: int | None = None, fmt: str | None = None
    ) -> logging.Logger:
        """Return a named logger, configuring logging on first use."""
        Logger.setup(level=level, fmt=fmt)
        return logging.getLogger(name)
