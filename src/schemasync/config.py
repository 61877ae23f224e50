"""schemasync configuration via environment variables.

Settings are read once at process start and passed explicitly to the
pipeline. Nothing reads the environment after that.

Recognized options mirror the managed policy of the browser
collector this service pairs with: flush period, context refresh
frequency, tab activity refresh, debug, and the three endpoint URLs.
Endpoints left empty switch the matching step off.
"""

import logging
import os

logger = logging.getLogger("schemasync.config")

ENV_PREFIX = "SCHEMASYNC_"


def _env(name: str, default: str = "") -> str:
    return os.environ.get(ENV_PREFIX + name, default)


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name)
    if not raw:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_positive(name: str, default: float) -> float:
    raw = _env(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(
            "%s%s=%r is not a number, using %s", ENV_PREFIX, name, raw, default
        )
        return default
    if value <= 0:
        logger.warning(
            "%s%s=%r must be positive, using %s", ENV_PREFIX, name, raw, default
        )
        return default
    return value


class Settings:
    """All configuration sourced from environment, with fixed fallbacks."""

    def __init__(self):
        # Core
        self.version = "0.1.0"
        self.debug = _env_bool("DEBUG", False)
        self.log_level = "debug" if self.debug else _env("LOG_LEVEL", "info")
        self.api_port = int(_env_positive("API_PORT", 8080))

        # Schedule (minutes)
        self.period = _env_positive("PERIOD", 5)
        self.frequency = _env_positive("FREQUENCY", 2)
        self.tabactivity = _env_bool("TABACTIVITY", True)

        # Endpoints
        self.ipurl = _env("IPURL")
        self.schemaurl = _env("SCHEMAURL")
        self.posturl = _env("POSTURL")

        # Cache store
        self.store = _env("STORE", "memory").lower()
        self.store_path = _env("STORE_PATH", "schemasync.db")

        if not self.posturl:
            logger.info("No event sink configured; events will accumulate in memory")
        if not self.schemaurl:
            logger.info("No schema sink configured; schema publishing disabled")

    def summary(self) -> dict[str, object]:
        """Non-secret view for startup logging and the health endpoint."""
        return {
            "period": self.period,
            "frequency": self.frequency,
            "tabactivity": self.tabactivity,
            "debug": self.debug,
            "ipurl": bool(self.ipurl),
            "schemaurl": bool(self.schemaurl),
            "posturl": bool(self.posturl),
            "store": self.store,
        }
