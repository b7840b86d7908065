from __future__ import annotations

import os


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def get_redis_url() -> str:
    return os.environ.get("REDIS_URL", "redis://localhost:6379/0")


def get_log_level() -> str:
    return os.environ.get("LABFORGE_LOG_LEVEL", "INFO").upper()


def strict_catalog() -> bool:
    """When set, a missing/malformed catalog is fatal instead of falling back to the built-in one."""

    return _env_flag("LABFORGE_STRICT_CATALOG")


def lock_ttl_ms() -> int:
    return _env_int("LABFORGE_LOCK_TTL_MS", 5_000)


def lock_wait_ms() -> int:
    return _env_int("LABFORGE_LOCK_WAIT_MS", 2_000)


def resolver_interval_ms() -> int:
    return _env_int("LABFORGE_RESOLVER_INTERVAL_MS", 1_000)


def dev_admin_ids() -> frozenset[str]:
    """Player ids allowed to use Time Warp (comma separated)."""

    raw = os.environ.get("LABFORGE_DEV_ADMINS", "")
    return frozenset(s.strip() for s in raw.split(",") if s.strip())
