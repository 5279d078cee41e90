"""Periodic scanning of due tasks and their concurrent delivery."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor

from notifier.config import Config
from notifier.dispatcher import Dispatcher
from notifier.repository import TaskStore

logger = logging.getLogger(__name__)

FETCH_LIMIT = 100


class Scheduler:
    """Recovers stuck tasks and hands due tasks to the dispatcher on every tick."""

    def __init__(self, repo: TaskStore, dispatcher: Dispatcher, config: Config) -> None:
        self.repo = repo
        self.dispatcher = dispatcher
        self.config = config

    def run(self, stop_event: threading.Event) -> None:
        """Tick every scan interval until ``stop_event`` is set."""
        interval = self.config.scan_interval.total_seconds()
        logger.info(
            "[Scheduler] started, scan interval=%s, max_concurrency=%d",
            self.config.scan_interval,
            self.config.max_concurrency,
        )
        while not stop_event.wait(interval):
            self.recover_stuck_tasks()
            self.dispatch_pending()
        logger.info("[Scheduler] stopped")

    def recover_stuck_tasks(self) -> int:
        """Reset tasks stuck in DELIVERING; return how many were reset."""
        try:
            return self.repo.recover_stuck_tasks(self.config.stuck_timeout)
        except Exception:
            logger.exception("[Scheduler] recover_stuck_tasks error")
            return 0

    def dispatch_pending(self) -> int:
        """Deliver the due tasks concurrently; return how many were handed out."""
        try:
            tasks = self.repo.fetch_pending(FETCH_LIMIT)
        except Exception:
            logger.exception("[Scheduler] fetch_pending error")
            return 0
        if not tasks:
            return 0

        logger.info("[Scheduler] fetched %d pending tasks", len(tasks))
        workers = max(1, self.config.max_concurrency)
        with ThreadPoolExecutor(max_workers=workers) as pool:
            list(pool.map(self.dispatcher.deliver, tasks))
        return len(tasks)