"""Startup-time helpers for safe config logging."""

import os

from payledger.common.logging import logger


SECRET_MARKERS = ("KEY", "SECRET", "PASSWORD", "TOKEN")


def _safe_env(name: str) -> str:
    """Return env value with simple redaction for secret-like variable names."""

    value = os.getenv(name)
    if value is None:
        return "<unset>"
    if any(secret in name for secret in SECRET_MARKERS):
        return "<redacted>"
    if name.endswith("_URL") and "@" in value:
        # DSNs carry credentials before the host part.
        scheme, _, rest = value.partition("://")
        return f"{scheme}://<redacted>@{rest.rpartition('@')[2]}"
    return value


def log_startup_config(service_name: str, keys: list[str]) -> None:
    """Log selected startup config keys for quick troubleshooting."""

    config = {"service": service_name}
    for key in keys:
        config[key] = _safe_env(key)
    logger.info("startup_config=%s", config)
