"""The notification task record and its status values."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

TABLE_NAME = "notification_tasks"


class TaskStatus(str, Enum):
    """Lifecycle states of a notification task."""

    PENDING = "PENDING"
    DELIVERING = "DELIVERING"
    SUCCESS = "SUCCESS"
    RETRYING = "RETRYING"
    FAILED = "FAILED"

    def __str__(self) -> str:
        return self.value


_TIME_FIELDS = frozenset({"next_retry_time", "created_at", "updated_at"})


def _parse_time(value: Any) -> datetime | None:
    if not value:
        return None
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(str(value))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


@dataclass
class NotificationTask:
    """One outgoing HTTP notification and its delivery state."""

    id: int = 0
    target_url: str = ""
    http_method: str = "POST"
    headers: str = ""
    body: str = ""
    status: TaskStatus = TaskStatus.PENDING
    retry_count: int = 0
    max_retries: int = 3
    next_retry_time: datetime | None = None
    last_http_status: int | None = None
    last_error: str = ""
    source_system: str = ""
    trace_id: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-ready mapping of the task."""
        result = asdict(self)
        result["status"] = self.status.value
        for name in _TIME_FIELDS:
            if result[name] is not None:
                result[name] = result[name].isoformat()
        return result

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "NotificationTask":
        """Build a task from a database row or any mapping of column values."""
        data = dict(row)
        kwargs: dict[str, Any] = {}
        for name in (f.name for f in fields(cls)):
            if name not in data:
                continue
            value = data[name]
            if name in _TIME_FIELDS:
                kwargs[name] = _parse_time(value)
            elif name == "last_http_status" or value is not None:
                kwargs[name] = TaskStatus(value) if name == "status" else value
        return cls(**kwargs)