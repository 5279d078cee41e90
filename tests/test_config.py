from datetime import timedelta

from notifier.config import Config, default_config


def test_default_storage_and_port():
    cfg = default_config()
    assert cfg.db_path == "data.db"
    assert cfg.port == ":8080"


def test_default_scheduler_settings():
    cfg = default_config()
    assert cfg.scan_interval == timedelta(seconds=5)
    assert cfg.max_concurrency == 10
    assert cfg.stuck_timeout == timedelta(seconds=60)


def test_default_retry_and_http_settings():
    cfg = default_config()
    assert cfg.base_retry_interval == timedelta(seconds=10)
    assert cfg.http_timeout == timedelta(seconds=10)


def test_default_config_matches_plain_constructor():
    assert default_config() == Config()


def test_default_config_returns_independent_instances():
    first = default_config()
    second = default_config()
    first.max_concurrency = 2
    assert second.max_concurrency == Config().max_concurrency


def test_overrides_keep_other_defaults():
    cfg = Config(http_timeout=timedelta(seconds=2), base_retry_interval=timedelta(seconds=10))
    assert cfg.http_timeout == timedelta(seconds=2)
    assert cfg.scan_interval == default_config().scan_interval