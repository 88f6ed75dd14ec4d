from __future__ import annotations

import json
import logging
import sys
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any

# Attributes every LogRecord has; anything else was passed through `extra=`.
_RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime", "extra"}


@dataclass(frozen=True)
class LogContext:
    request_id: str | None = None
    vendor: str | None = None
    model: str | None = None


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base: dict[str, Any] = {
            "ts": datetime.now(tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith("_"):
                base[key] = value
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            base.update({k: v for k, v in extra.items() if v is not None})
        if record.exc_info:
            base["exc"] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False, default=str)


def configure_logging(*, level: str) -> None:
    root = logging.getLogger()
    root.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root.handlers.clear()
    root.addHandler(handler)
    # httpx logs every request line at INFO
    logging.getLogger("httpx").setLevel(max(root.level, logging.WARNING))


class _ContextAdapter(logging.LoggerAdapter):
    # The stock adapter replaces per-call `extra`; keep both.
    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        kwargs["extra"] = {**(kwargs.get("extra") or {}), **self.extra}
        return msg, kwargs


def with_context(logger: logging.Logger, ctx: LogContext) -> logging.LoggerAdapter:
    return _ContextAdapter(logger, extra={"extra": asdict(ctx)})
