"""
Logging setup for the API process.

Plain text by default, one JSON object per line with LOG_JSON=1. Messages use
the `event key=value` style and never carry user ids, webhook URLs or API keys.
"""
import json
import logging
import os
import sys
from typing import Any, Dict, Optional

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# chatty at INFO; their failures still surface at WARNING
NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "sqlalchemy.engine")

_STANDARD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


def _env_flag(name: str) -> bool:
    return (os.getenv(name) or "").strip().lower() in ("1", "true", "yes")


def _to_jsonable(obj: Any) -> str:
    iso = getattr(obj, "isoformat", None)
    return iso() if callable(iso) else str(obj)


class JsonFormatter(logging.Formatter):
    """One JSON object per record. Fields passed via `extra=` are kept."""

    def format(self, record: logging.LogRecord) -> str:
        out: Dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S") + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        out.update(
            (k, v)
            for k, v in record.__dict__.items()
            if k not in _STANDARD_ATTRS and k not in out and v is not None
        )
        if record.exc_info and record.exc_info[0]:
            out["exception"] = self.formatException(record.exc_info)
        return json.dumps(out, default=_to_jsonable)


def configure_logging(level: Optional[str] = None, json_logs: Optional[bool] = None) -> None:
    """Install a single stdout handler on the root logger. Safe to call twice."""
    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    numeric_level = getattr(logging, level_name, logging.INFO)
    if json_logs is None:
        json_logs = _env_flag("LOG_JSON")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if json_logs else logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
