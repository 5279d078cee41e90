"""Service assembly and the command that runs it."""

from __future__ import annotations

import argparse
import logging
import signal
import sqlite3
import threading
from dataclasses import dataclass
from typing import Any, Sequence

from flask import Flask
from werkzeug.serving import make_server

from notifier.api import create_app
from notifier.config import Config, default_config
from notifier.dispatcher import Dispatcher
from notifier.repository import SqliteTaskRepository
from notifier.scheduler import Scheduler

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT = 10.0


@dataclass
class Service:
    """The wired-together parts of a running notification service."""

    config: Config
    repo: SqliteTaskRepository
    dispatcher: Dispatcher
    scheduler: Scheduler
    app: Flask

    def __enter__(self) -> "Service":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Release the HTTP client and the database connection."""
        self.dispatcher.close()
        self.repo.close()


def build_service(config: Config | None = None) -> Service:
    """Open and migrate the database and wire up all components."""
    config = config or default_config()
    repo = SqliteTaskRepository(config.db_path)
    try:
        repo.migrate()
    except sqlite3.Error:
        repo.close()
        raise
    logger.info("database connected: %s", config.db_path)
    dispatcher = Dispatcher(repo, config)
    scheduler = Scheduler(repo, dispatcher, config)
    return Service(
        config=config,
        repo=repo,
        dispatcher=dispatcher,
        scheduler=scheduler,
        app=create_app(repo),
    )


def _split_address(address: str) -> tuple[str, int]:
    """Split ``host:port`` (host may be empty or bracketed) into its parts."""
    host, sep, port_text = address.rpartition(":")
    if not sep or not port_text.isdigit():
        raise ValueError(f"invalid listen address: {address!r}")
    port = int(port_text)
    if port > 65535:
        raise ValueError(f"invalid listen address: {address!r}")
    host = host.strip("[]") or "0.0.0.0"
    return host, port


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the notification delivery service.")
    parser.add_argument("--db-path", help="SQLite database file")
    parser.add_argument("--address", help="HTTP listen address, such as :8080")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the HTTP server and the scheduler until SIGINT or SIGTERM."""
    args = _parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    config = default_config()
    if args.db_path:
        config.db_path = args.db_path
    if args.address:
        config.port = args.address

    try:
        host, port = _split_address(config.port)
    except ValueError as exc:
        logger.error("%s", exc)
        return 1

    try:
        service = build_service(config)
    except sqlite3.Error as exc:
        logger.error("failed to open database: %s", exc)
        return 1

    with service:
        try:
            server = make_server(host, port, service.app, threaded=True)
        except OSError as exc:
            logger.error("HTTP server error: %s", exc)
            return 1

        stop = threading.Event()
        scheduler_thread = threading.Thread(
            target=service.scheduler.run, args=(stop,), name="scheduler", daemon=True
        )
        scheduler_thread.start()
        logger.info("scheduler started in background")

        server_thread = threading.Thread(
            target=server.serve_forever, name="http-server", daemon=True
        )
        server_thread.start()
        logger.info("HTTP server listening on %s", config.port)

        quit_requested = threading.Event()
        previous = {
            sig: signal.signal(sig, lambda *_: quit_requested.set())
            for sig in (signal.SIGINT, signal.SIGTERM)
        }
        try:
            while server_thread.is_alive() and not quit_requested.wait(0.5):
                continue
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)

        logger.info("shutting down server...")
        stop.set()
        service.dispatcher.close()
        server.shutdown()
        server_thread.join(SHUTDOWN_TIMEOUT)
        scheduler_thread.join(SHUTDOWN_TIMEOUT)
        if scheduler_thread.is_alive():
            logger.warning("scheduler forced to shutdown")
        server.server_close()

    logger.info("server exited")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())