"""Environment-driven configuration for the allocation service.

Every setting is read once from the process environment into a frozen
``ServiceConfig``; call ``get_config.cache_clear()`` after changing the
environment (tests do this through a fixture).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


def _get_int_env(key: str, default: int) -> int:
    val = os.environ.get(key, "").strip()
    if not val:
        return default
    try:
        return int(val)
    except (ValueError, TypeError):
        return default


def _get_float_env(key: str, default: float) -> float:
    val = os.environ.get(key, "").strip()
    if not val:
        return default
    try:
        return float(val)
    except (ValueError, TypeError):
        return default


def _get_str_env(key: str, default: str | None = None) -> str | None:
    val = os.environ.get(key, "").strip()
    return val or default


@dataclass(frozen=True)
class ServiceConfig:
    """Settings shared by the server, the sync client and the projector."""

    service_name: str = "allocation-service"
    log_level: str = "INFO"
    log_file: str | None = None
    store_path: str | None = None
    webhook_url: str | None = None
    sync_timeout: float = 10.0
    waitlist_max_size: int = 5
    low_stock_threshold: int = 5
    kafka_bootstrap_servers: str | None = None
    public_base_url: str = "http://localhost:8000"

    @property
    def kafka_enabled(self) -> bool:
        return bool(self.kafka_bootstrap_servers)


@lru_cache(maxsize=1)
def get_config() -> ServiceConfig:
    """Build the service configuration from environment variables."""
    return ServiceConfig(
        service_name=_get_str_env("SERVICE_NAME", "allocation-service"),
        log_level=_get_str_env("LOG_LEVEL", "INFO").upper(),
        log_file=_get_str_env("LOG_FILE"),
        store_path=_get_str_env("HUB_STORE_PATH"),
        webhook_url=_get_str_env("SYNC_WEBHOOK_URL"),
        sync_timeout=_get_float_env("SYNC_TIMEOUT_SECONDS", 10.0),
        waitlist_max_size=max(0, _get_int_env("WAITLIST_MAX_SIZE", 5)),
        low_stock_threshold=max(0, _get_int_env("LOW_STOCK_THRESHOLD", 5)),
        kafka_bootstrap_servers=_get_str_env("KAFKA_BOOTSTRAP_SERVERS"),
        public_base_url=_get_str_env("PUBLIC_BASE_URL", "http://localhost:8000"),
    )
