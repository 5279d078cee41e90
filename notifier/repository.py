"""SQLite storage for notification tasks."""

from __future__ import annotations

import sqlite3
import threading
from dataclasses import fields
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from notifier.model import TABLE_NAME, NotificationTask, TaskStatus


class TaskNotFoundError(LookupError):
    """Raised when no task matches the requested id and state."""

    def __init__(self, task_id: int) -> None:
        super().__init__(f"task {task_id} not found")
        self.task_id = task_id


class TaskStore(Protocol):
    """Operations the service needs from task storage."""

    def create(self, task): ...
    def fetch_pending(self, limit): ...
    def lock_for_delivery(self, task_id): ...
    def update_status(self, task_id, status, http_status, last_error): ...
    def mark_retrying(self, task_id, retry_count, next_retry_time, http_status, last_error): ...
    def mark_failed(self, task_id, http_status, last_error): ...
    def reset_to_retry(self, task_id): ...
    def recover_stuck_tasks(self, timeout): ...
    def list_by_status(self, status, page, page_size): ...
    def get_by_id(self, task_id): ...


_SCHEMA = f"""
CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    target_url VARCHAR(2048) NOT NULL,
    http_method VARCHAR(10) NOT NULL DEFAULT 'POST',
    headers TEXT,
    body TEXT,
    status VARCHAR(20) NOT NULL DEFAULT 'PENDING',
    retry_count INTEGER NOT NULL DEFAULT 0,
    max_retries INTEGER NOT NULL DEFAULT 3,
    next_retry_time DATETIME,
    last_http_status INTEGER,
    last_error TEXT,
    source_system VARCHAR(100),
    trace_id VARCHAR(64),
    created_at DATETIME,
    updated_at DATETIME
);
CREATE INDEX IF NOT EXISTS idx_status_retry ON {TABLE_NAME} (status, next_retry_time);
"""

_ACTIVE = (TaskStatus.PENDING.value, TaskStatus.RETRYING.value)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _db_time(moment: datetime) -> str:
    """Format a time so that stored values sort in time order."""
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _status_value(status: TaskStatus | str) -> str:
    return status.value if isinstance(status, TaskStatus) else str(status)


class SqliteTaskRepository:
    """Task storage on one SQLite database, safe to share between threads."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()

    def __enter__(self) -> "SqliteTaskRepository":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def migrate(self) -> None:
        """Create the tasks table and its index if they do not exist."""
        with self._lock:
            self._conn.executescript(_SCHEMA)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _execute(self, sql: str, params: tuple[Any, ...]) -> sqlite3.Cursor:
        with self._lock, self._conn:
            return self._conn.execute(sql, params)

    def _update(self, where: str, where_params: tuple[Any, ...], values: dict[str, Any]) -> int:
        values = {**values, "updated_at": _db_time(_now())}
        assignments = ",".join(f"{column} = ?" for column in values)
        sql = f"UPDATE {TABLE_NAME} SET {assignments} WHERE {where}"
        return self._execute(sql, (*values.values(), *where_params)).rowcount

    def _select(self, sql: str, params: tuple[Any, ...]) -> list[NotificationTask]:
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [NotificationTask.from_row(row) for row in rows]

    def create(self, task: NotificationTask) -> NotificationTask:
        """Store a new task as PENDING and due now; the task receives its id."""
        now = _now()
        task.status = TaskStatus.PENDING
        task.next_retry_time = task.created_at = task.updated_at = now
        row = {f.name: getattr(task, f.name) for f in fields(task)}
        row.update(
            id=task.id or None,
            status=task.status.value,
            next_retry_time=_db_time(now),
            created_at=_db_time(now),
            updated_at=_db_time(now),
        )
        sql = (
            f"INSERT INTO {TABLE_NAME} ({','.join(row)}) "
            f"VALUES ({','.join('?' for _ in row)})"
        )
        task.id = self._execute(sql, tuple(row.values())).lastrowid
        return task

    def fetch_pending(self, limit: int) -> list[NotificationTask]:
        """Return up to ``limit`` PENDING/RETRYING tasks that are due, earliest first."""
        sql = (
            f"SELECT * FROM {TABLE_NAME} WHERE status IN (?,?) AND next_retry_time <= ? "
            "ORDER BY next_retry_time ASC LIMIT ?"
        )
        return self._select(sql, (*_ACTIVE, _db_time(_now()), limit))

    def lock_for_delivery(self, task_id: int) -> int:
        """Move a PENDING/RETRYING task to DELIVERING; return the rows changed."""
        return self._update(
            "id = ? AND status IN (?,?)",
            (task_id, *_ACTIVE),
            {"status": TaskStatus.DELIVERING.value},
        )

    def update_status(
        self, task_id: int, status: TaskStatus | str, http_status: int, last_error: str
    ) -> None:
        """Record the outcome of a delivery."""
        self._update(
            "id = ?",
            (task_id,),
            {
                "last_error": last_error,
                "last_http_status": http_status,
                "status": _status_value(status),
            },
        )

    def mark_retrying(
        self,
        task_id: int,
        retry_count: int,
        next_retry_time: datetime,
        http_status: int,
        last_error: str,
    ) -> None:
        """Schedule a task for another attempt."""
        self._update(
            "id = ?",
            (task_id,),
            {
                "last_error": last_error,
                "last_http_status": http_status,
                "next_retry_time": _db_time(next_retry_time),
                "retry_count": retry_count,
                "status": TaskStatus.RETRYING.value,
            },
        )

    def mark_failed(self, task_id: int, http_status: int, last_error: str) -> None:
        """Mark a task as finally failed."""
        self.update_status(task_id, TaskStatus.FAILED, http_status, last_error)

    def reset_to_retry(self, task_id: int) -> None:
        """Put a FAILED task back to PENDING with its retries cleared."""
        changed = self._update(
            "id = ? AND status = ?",
            (task_id, TaskStatus.FAILED.value),
            {
                "last_error": "",
                "next_retry_time": _db_time(_now()),
                "retry_count": 0,
                "status": TaskStatus.PENDING.value,
            },
        )
        if changed == 0:
            raise TaskNotFoundError(task_id)

    def recover_stuck_tasks(self, timeout: timedelta) -> int:
        """Return DELIVERING tasks untouched for longer than ``timeout`` to RETRYING."""
        now = _now()
        return self._update(
            "status = ? AND updated_at < ?",
            (TaskStatus.DELIVERING.value, _db_time(now - timeout)),
            {"next_retry_time": _db_time(now), "status": TaskStatus.RETRYING.value},
        )

    def list_by_status(
        self, status: TaskStatus | str, page: int, page_size: int
    ) -> tuple[list[NotificationTask], int]:
        """Return one page of tasks, newest first, and the total matching count."""
        where, params = ("", ()) if not status else (" WHERE status = ?", (_status_value(status),))
        with self._lock:
            (total,) = self._conn.execute(
                f"SELECT count(*) FROM {TABLE_NAME}{where}", params
            ).fetchone()
        tasks = self._select(
            f"SELECT * FROM {TABLE_NAME}{where} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
            (*params, page_size, max(0, (page - 1) * page_size)),
        )
        return tasks, total

    def get_by_id(self, task_id: int) -> NotificationTask:
        """Return the task with this id."""
        tasks = self._select(f"SELECT * FROM {TABLE_NAME} WHERE id = ? LIMIT 1", (task_id,))
        if not tasks:
            raise TaskNotFoundError(task_id)
        return tasks[0]