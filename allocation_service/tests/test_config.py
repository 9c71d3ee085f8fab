"""Tests for environment-driven configuration."""


def test_defaults(fresh_config, monkeypatch):
    for key in ("KAFKA_BOOTSTRAP_SERVERS", "SYNC_WEBHOOK_URL", "WAITLIST_MAX_SIZE", "LOW_STOCK_THRESHOLD"):
        monkeypatch.delenv(key, raising=False)

    config = fresh_config()

    assert config.waitlist_max_size == 5
    assert config.low_stock_threshold == 5
    assert config.sync_timeout == 10.0
    assert not config.kafka_enabled


def test_reads_environment(fresh_config, monkeypatch):
    monkeypatch.setenv("KAFKA_BOOTSTRAP_SERVERS", "kafka:9092")
    monkeypatch.setenv("SYNC_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("WAITLIST_MAX_SIZE", "-3")

    config = fresh_config()

    assert config.kafka_enabled
    assert config.sync_timeout == 2.5
    assert config.log_level == "DEBUG"
    assert config.waitlist_max_size == 0


def test_bad_numbers_fall_back_to_defaults(fresh_config, monkeypatch):
    monkeypatch.setenv("LOW_STOCK_THRESHOLD", "many")

    assert fresh_config().low_stock_threshold == 5
