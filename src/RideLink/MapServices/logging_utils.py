"""Structured logging helpers shared across the map services components."""

from __future__ import annotations

import json
import logging
import os
import re
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

__all__ = ["JSONFormatter", "mask_sensitive_data", "setup_logging"]

LOGGER_NAME = "RideLink.MapServices"

_SENSITIVE_KEYS = {"api_key", "apikey", "key", "authorization", "token", "password", "secret"}
_KEY_IN_URL = re.compile(r"([?&](?:key|api_key)=)[^&\s]+", re.IGNORECASE)


def mask_sensitive_data(value: Any) -> Any:
    """Return ``value`` with credential fields and ``key=`` query parameters masked."""

    if isinstance(value, dict):
        return {
            k: "***" if str(k).lower() in _SENSITIVE_KEYS and v else mask_sensitive_data(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [mask_sensitive_data(item) for item in value]
    if isinstance(value, str):
        return _KEY_IN_URL.sub(r"\1***", value)
    return value


class JSONFormatter(logging.Formatter):
    """Formatter emitting masked JSON log entries for provider calls."""

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "provider": getattr(record, "provider", None),
            "op_id": getattr(record, "op_id", None),
            "tier": getattr(record, "tier", None),
            "latency_ms": getattr(record, "latency_ms", None),
            "outcome": getattr(record, "outcome", None),
        }
        if hasattr(record, "extra_fields") and isinstance(record.extra_fields, dict):
            payload.update(record.extra_fields)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(payload))


def setup_logging(
    *,
    level: str = "INFO",
    max_log_size_mb: int = 50,
    log_dir: Optional[Path] = None,
    propagate: bool = False,
) -> logging.Logger:
    """Configure console logging and, when a directory is known, a rotating JSONL file.

    The directory comes from ``log_dir`` or the ``RIDELINK_LOG_DIR``
    environment variable. Calling this again replaces the handlers it installed.
    """

    if log_dir is None:
        env_value = os.environ.get("RIDELINK_LOG_DIR", "").strip()
        log_dir = Path(env_value) if env_value else None

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_ridelink_managed", False):
            logger.removeHandler(handler)
            if isinstance(handler, logging.StreamHandler):
                stream = getattr(handler, "stream", None)
                if stream in (sys.stdout, sys.stderr):
                    continue
            handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    stream_handler._ridelink_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        file_handler = RotatingFileHandler(
            log_dir / f"mapservices-{today}.jsonl",
            maxBytes=int(max_log_size_mb * 1024 * 1024),
            backupCount=5,
        )
        file_handler.setFormatter(JSONFormatter())
        file_handler._ridelink_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    logger.propagate = propagate
    return logger
