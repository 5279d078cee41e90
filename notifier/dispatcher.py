"""Delivery of single notification tasks over HTTP."""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timedelta, timezone

import requests
from requests.adapters import HTTPAdapter
from requests.structures import CaseInsensitiveDict

from notifier.config import Config
from notifier.model import NotificationTask, TaskStatus
from notifier.repository import TaskStore

logger = logging.getLogger(__name__)


def backoff_delay(retry_count: int, base_interval: timedelta) -> timedelta:
    """Return the wait before attempt ``retry_count``: 2**retry_count * base_interval."""
    return base_interval * (2**retry_count)


def _custom_headers(raw: str) -> dict[str, str]:
    """Decode the stored header JSON; anything other than a string map is ignored."""
    if not raw:
        return {}
    try:
        decoded = json.loads(raw)
    except ValueError:
        return {}
    if not isinstance(decoded, dict):
        return {}
    if not all(isinstance(value, str) for value in decoded.values()):
        return {}
    return decoded


class Dispatcher:
    """Sends a task's HTTP request and records the outcome in the store."""

    def __init__(self, repo: TaskStore, config: Config) -> None:
        self.repo = repo
        self.config = config
        seconds = config.http_timeout.total_seconds()
        self._timeout = seconds if seconds > 0 else None
        self._session = requests.Session()
        adapter = HTTPAdapter(pool_connections=100, pool_maxsize=10)
        self._session.mount("http://", adapter)
        self._session.mount("https://", adapter)
        self._closed = threading.Event()

    def __enter__(self) -> "Dispatcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Release pooled connections; failures of requests in flight are not retried."""
        self._closed.set()
        self._session.close()

    def deliver(self, task: NotificationTask) -> TaskStatus | None:
        """Deliver one task and return the status it was moved to, or None if skipped."""
        try:
            affected = self.repo.lock_for_delivery(task.id)
        except Exception:
            logger.exception("[Dispatcher] lock_for_delivery error, task_id=%d", task.id)
            return None
        if affected == 0:
            logger.info(
                "[Dispatcher] task_id=%d already locked by another instance, skip", task.id
            )
            return None

        logger.info("[Dispatcher] delivering task_id=%d to %s", task.id, task.target_url)

        try:
            status_code = self._send(task)
        except requests.RequestException as exc:
            if self._closed.is_set():
                logger.info(
                    "[Dispatcher] task_id=%d canceled due to shutdown, skip retry", task.id
                )
                return None
            logger.warning("[Dispatcher] task_id=%d network error: %s", task.id, exc)
            return self._handle_retry(task, 0, str(exc))

        logger.info("[Dispatcher] task_id=%d got HTTP %d", task.id, status_code)

        if 200 <= status_code < 300:
            return self._record(task, TaskStatus.SUCCESS, status_code, "")
        if 400 <= status_code < 500:
            message = f"non-retryable error: HTTP {status_code}"
            return self._record(task, TaskStatus.FAILED, status_code, message)
        return self._handle_retry(task, status_code, f"server error: HTTP {status_code}")

    def _send(self, task: NotificationTask) -> int:
        headers: CaseInsensitiveDict[str] = CaseInsensitiveDict()
        headers["Content-Type"] = "application/json"
        headers.update(_custom_headers(task.headers))
        if task.trace_id:
            headers["X-Trace-ID"] = task.trace_id
        with self._session.request(
            task.http_method or "GET",
            task.target_url,
            data=task.body.encode(),
            headers=headers,
            timeout=self._timeout,
        ) as response:
            return response.status_code

    def _record(
        self, task: NotificationTask, status: TaskStatus, http_status: int, message: str
    ) -> TaskStatus:
        try:
            self.repo.update_status(task.id, status, http_status, message)
        except Exception:
            logger.exception("[Dispatcher] update_status(%s) error, task_id=%d", status, task.id)
        return status

    def _handle_retry(
        self, task: NotificationTask, http_status: int, message: str
    ) -> TaskStatus:
        next_retry_count = task.retry_count + 1

        if next_retry_count >= task.max_retries:
            logger.info(
                "[Dispatcher] task_id=%d reached max retries(%d), marking FAILED",
                task.id,
                task.max_retries,
            )
            try:
                self.repo.mark_failed(task.id, http_status, message)
            except Exception:
                logger.exception("[Dispatcher] mark_failed error, task_id=%d", task.id)
            return TaskStatus.FAILED

        delay = backoff_delay(next_retry_count, self.config.base_retry_interval)
        next_retry_time = datetime.now(timezone.utc) + delay
        logger.info(
            "[Dispatcher] task_id=%d retry %d/%d, next retry at %s (backoff=%s)",
            task.id,
            next_retry_count,
            task.max_retries,
            next_retry_time.isoformat(timespec="seconds"),
            delay,
        )
        try:
            self.repo.mark_retrying(
                task.id, next_retry_count, next_retry_time, http_status, message
            )
        except Exception:
            logger.exception("[Dispatcher] mark_retrying error, task_id=%d", task.id)
        return TaskStatus.RETRYING