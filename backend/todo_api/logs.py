"""One-line JSON logs on stderr."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

SERVICE = "todo-api"

# whatever a bare LogRecord carries is not a caller-supplied extra
_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    def __init__(self, service: str = SERVICE):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "service": self.service,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # logger.info("...", extra={"todo_id": ...}) lands on the record
        data.update({k: v for k, v in vars(record).items() if k not in _RESERVED and not k.startswith("_")})
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


def setup_logging(level: str = "INFO", service: str = SERVICE) -> logging.Handler:
    """Route the root logger through one JSON handler at ``level`` (LOG_LEVEL)."""
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter(service))
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]

    # our middleware logs every request; keep uvicorn's own lines for problems
    for name in ("uvicorn.access", "uvicorn.error"):
        lg = logging.getLogger(name)
        lg.handlers = []
        lg.propagate = True
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    return handler
