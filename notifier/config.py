"""Service settings and their defaults."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta


@dataclass
class Config:
    """Settings for storage, scheduling, retries and the HTTP side of the service."""

    db_path: str = "data.db"
    scan_interval: timedelta = timedelta(seconds=5)
    max_concurrency: int = 10
    stuck_timeout: timedelta = timedelta(seconds=60)
    base_retry_interval: timedelta = timedelta(seconds=10)
    http_timeout: timedelta = timedelta(seconds=10)
    port: str = ":8080"


def default_config() -> Config:
    """Return a fresh configuration holding the default settings."""
    return Config()