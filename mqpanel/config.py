from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv

load_dotenv()

log = logging.getLogger(__name__)


def _csv_list(key: str) -> list[str]:
    raw = os.getenv(key, "")
    return [x.strip() for x in raw.split(",") if x.strip()]


def _env(primary: str, *fallbacks: str, default: str = "") -> str:
    """Read env var with fallback aliases."""
    val = os.getenv(primary)
    if val is not None:
        return val
    for fb in fallbacks:
        val = os.getenv(fb)
        if val is not None:
            return val
    return default


def _float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        log.warning("Env var %s=%r is not a number; using %s", key, raw, default)
        return default


class Settings:
    # --- Local API ---
    API_KEY: str = os.getenv("MQPANEL_API_KEY", "")
    HOST: str = os.getenv("MQPANEL_HOST", "127.0.0.1")
    PORT: int = int(os.getenv("MQPANEL_PORT", "8200"))
    LOGIN_PATH: str = os.getenv("MQPANEL_LOGIN_PATH", "/login")

    # --- Admin API (the remote management backend) ---
    ADMIN_API_URL: str = _env("MQPANEL_ADMIN_API_URL", "ADMIN_API_URL", default="http://localhost:8080/api")
    ADMIN_USERNAME: str = _env("MQPANEL_ADMIN_USERNAME", "ADMIN_USERNAME", default="admin")
    ADMIN_PASSWORD: str = _env("MQPANEL_ADMIN_PASSWORD", "ADMIN_PASSWORD")
    ADMIN_VERIFY_TLS: bool = os.getenv("MQPANEL_ADMIN_VERIFY_TLS", "true").lower() in ("true", "1", "yes")
    REQUEST_TIMEOUT: float = _float("MQPANEL_REQUEST_TIMEOUT", 10.0)

    # --- Credential monitor ---
    TOKEN_WARNING_MINUTES: int = int(os.getenv("MQPANEL_TOKEN_WARNING_MINUTES", "5"))
    TOKEN_REFRESH_MINUTES: int = int(os.getenv("MQPANEL_TOKEN_REFRESH_MINUTES", "2"))
    TOKEN_CHECK_INTERVAL: float = _float("MQPANEL_TOKEN_CHECK_INTERVAL", 60.0)

    # --- Availability probe ---
    PROBE_TTL: float = _float("MQPANEL_PROBE_TTL", 30.0)
    PROBE_TIMEOUT: float = _float("MQPANEL_PROBE_TIMEOUT", 10.0)
    PROBE_INTERVAL: float = _float("MQPANEL_PROBE_INTERVAL", 60.0)
    # Clusters to keep probing in the background (comma-separated ids)
    MONITORED_CLUSTERS: list[str] = _csv_list("MQPANEL_MONITORED_CLUSTERS")

    # --- Response cache TTLs (seconds) ---
    CACHE_TTL_CONNECTIONS: float = _float("MQPANEL_CACHE_TTL_CONNECTIONS", 30.0)
    CACHE_TTL_CHANNELS: float = _float("MQPANEL_CACHE_TTL_CHANNELS", 30.0)
    CACHE_TTL_EXCHANGES: float = _float("MQPANEL_CACHE_TTL_EXCHANGES", 300.0)
    CACHE_TTL_QUEUES: float = _float("MQPANEL_CACHE_TTL_QUEUES", 60.0)
    CACHE_TTL_BINDINGS: float = _float("MQPANEL_CACHE_TTL_BINDINGS", 600.0)
    CACHE_MAX_SIZE: int = int(os.getenv("MQPANEL_CACHE_MAX_SIZE", "50"))

    # --- Validation ---
    _REQUIRED = {
        "MQPANEL_ADMIN_PASSWORD": "Login to the admin API will fail without a password",
    }
    _RECOMMENDED = {
        "MQPANEL_API_KEY": "Local API is unauthenticated",
    }

    @classmethod
    def validate(cls) -> None:
        """Log warnings for missing required/recommended env vars."""
        for var, hint in cls._REQUIRED.items():
            if not os.getenv(var) and not os.getenv(var.removeprefix("MQPANEL_")):
                log.warning("Missing env var %s: %s", var, hint)
        for var, hint in cls._RECOMMENDED.items():
            if not os.getenv(var):
                log.warning("Env var %s is unset: %s", var, hint)
        if not cls.ADMIN_API_URL.startswith(("http://", "https://")):
            log.error("MQPANEL_ADMIN_API_URL must be an http(s) URL, got %r", cls.ADMIN_API_URL)
            sys.exit(1)
        if cls.TOKEN_REFRESH_MINUTES > cls.TOKEN_WARNING_MINUTES:
            log.warning(
                "Refresh threshold (%d min) is above the warning threshold (%d min); "
                "expiry warnings will never fire",
                cls.TOKEN_REFRESH_MINUTES,
                cls.TOKEN_WARNING_MINUTES,
            )

    @classmethod
    def cache_policy(cls) -> dict[str, tuple[float, int]]:
        """Return {resource_type: (ttl_seconds, max_size)}."""
        size = cls.CACHE_MAX_SIZE
        return {
            "connections": (cls.CACHE_TTL_CONNECTIONS, size),
            "channels": (cls.CACHE_TTL_CHANNELS, size),
            "exchanges": (cls.CACHE_TTL_EXCHANGES, size),
            "queues": (cls.CACHE_TTL_QUEUES, size),
            # one entry per exchange/queue, so allow more
            "bindings": (cls.CACHE_TTL_BINDINGS, size * 2),
        }


settings = Settings()
