"""JSON log output for the search subsystem.

Records are rendered with orjson. Each line carries the bound log context
(trace ids, operation, index generation) and any ``extra`` fields. Values of
sensitive keys are masked; user documents carry e-mail addresses, so
``email`` is masked by default.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
import logging
import sys
from typing import IO, Any

import orjson
from pydantic import BaseModel

from entity_search.config import Settings
from entity_search.observability.context import current_context


# Attributes present on every LogRecord; anything else came in via ``extra``.
_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}

DEFAULT_REDACTED_KEYS = frozenset({"email", "password", "token", "secret", "authorization", "api_key"})
REDACTED = "[REDACTED]"
PLAIN_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _to_json(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (set, frozenset)):
        items = list(value)
        try:
            return sorted(items)
        except TypeError:
            return items
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8", errors="replace")
    return str(value)


class JsonFormatter(logging.Formatter):
    """One JSON object per record, correlated with the current trace."""

    def __init__(
        self,
        *,
        redact_keys: Iterable[str] = DEFAULT_REDACTED_KEYS,
        max_message_length: int = 2000,
        max_field_length: int = 500,
    ) -> None:
        super().__init__()
        self.redact_keys = frozenset(key.lower() for key in redact_keys)
        self.max_message_length = max_message_length
        self.max_field_length = max_field_length

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": self._clip(record.getMessage(), self.max_message_length),
        }
        entry.update(self._clean(current_context()))
        entry.update(self._clean({k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS}))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return orjson.dumps(entry, default=_to_json, option=orjson.OPT_NON_STR_KEYS).decode("utf-8")

    def _clean(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        cleaned: dict[str, Any] = {}
        for key, value in fields.items():
            if key.startswith("_"):
                continue
            if key.lower() in self.redact_keys:
                cleaned[key] = REDACTED
            elif isinstance(value, str):
                cleaned[key] = self._clip(value, self.max_field_length)
            else:
                cleaned[key] = value
        return cleaned

    @staticmethod
    def _clip(text: str, limit: int) -> str:
        return text if len(text) <= limit else text[:limit] + "..."


class _ManagedHandler(logging.StreamHandler):
    """Marks the handler installed by ``configure_logging`` so reconfiguring replaces only it."""


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    *,
    logger_levels: Mapping[str, str] | None = None,
    stream: IO[str] | None = None,
) -> logging.Handler:
    """Install one stdout handler on the root logger and apply level overrides.

    Handlers added by the embedding host are left alone; calling this again
    swaps out the handler from the previous call.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for existing in [h for h in root.handlers if isinstance(h, _ManagedHandler)]:
        root.removeHandler(existing)

    handler = _ManagedHandler(stream or sys.stdout)
    handler.setFormatter(JsonFormatter() if json_output else logging.Formatter(PLAIN_FORMAT))
    root.addHandler(handler)

    for name, logger_level in (logger_levels or {}).items():
        logging.getLogger(name).setLevel(logger_level.upper())
    return handler


def configure_logging_from_settings(settings: Settings | None = None) -> logging.Handler:
    settings = settings or Settings()
    return configure_logging(settings.log_level, settings.log_json)
