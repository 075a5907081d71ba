"""JSON log output, one object per line."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

# Attributes every LogRecord has; anything else arrived through extra=
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

# Set by WorkerContextFilter
_CONTEXT_ATTRS = ("worker_id", "task_id")


class JSONFormatter(logging.Formatter):
    """Render a record as a flat JSON object.

    Worker and task ids from the logging context are promoted to top-level
    keys so log pipelines can group a task's lines. Values passed with
    extra= (for example the tool command in subprocess_utils) are nested
    under "extra".
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for attr in _CONTEXT_ATTRS:
            value = getattr(record, attr, None)
            if value:
                entry[attr] = value

        extra = {
            key: value
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS
            and key not in _CONTEXT_ATTRS
            and key != "worker_tag"
        }
        if extra:
            entry["extra"] = extra

        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)
