"""
Configuration for Affilist Analytics.
"""
import logging
import os
from dataclasses import dataclass, fields

logger = logging.getLogger(__name__)

# Query parameter limits shared by the engine and the HTTP layer
MIN_DAYS = 1
MAX_DAYS = 365
MIN_LIMIT = 1
MAX_LIMIT = 100


class ConfigError(ValueError):
    """Raised when a configuration value is out of range."""
    pass


@dataclass
class AnalyticsConfig:
    """Configuration for a single analytics instance."""

    # D1 connection
    d1_database_id: str
    cf_account_id: str
    cf_api_token: str

    # Query defaults
    default_days: int = 30
    default_limit: int = 10  # Top links in the summary view
    export_limit: int = 100  # Top links in exports

    # Timeouts
    query_timeout_seconds: float = 10.0  # Per store read, enforced by the engine
    http_timeout_seconds: float = 30.0  # Per D1 HTTP request

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not MIN_DAYS <= self.default_days <= MAX_DAYS:
            raise ConfigError(
                f"default_days must be between {MIN_DAYS} and {MAX_DAYS}. "
                f"Got {self.default_days}."
            )
        for name in ("default_limit", "export_limit"):
            value = getattr(self, name)
            if not MIN_LIMIT <= value <= MAX_LIMIT:
                raise ConfigError(
                    f"{name} must be between {MIN_LIMIT} and {MAX_LIMIT}. Got {value}."
                )
        for name in ("query_timeout_seconds", "http_timeout_seconds"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")

        if not self.cf_api_token:
            logger.warning(
                f"Database {self.d1_database_id}: no Cloudflare API token configured, "
                f"store reads will fail"
            )

    @classmethod
    def from_env(cls, prefix: str = "AFFILIST_") -> "AnalyticsConfig":
        """Build a config from environment variables.

        Each field maps to an upper-cased variable, e.g. ``AFFILIST_D1_DATABASE_ID``
        or ``AFFILIST_DEFAULT_DAYS``. Unset optional fields keep their defaults.

        Raises:
            ConfigError: If a required variable is missing or a value can't be parsed
        """
        values = {}
        for field in fields(cls):
            raw = os.environ.get(f"{prefix}{field.name.upper()}")
            if raw is None:
                continue
            try:
                if field.type in (int, "int"):
                    values[field.name] = int(raw)
                elif field.type in (float, "float"):
                    values[field.name] = float(raw)
                else:
                    values[field.name] = raw
            except ValueError:
                raise ConfigError(
                    f"Invalid value for {prefix}{field.name.upper()}: {raw!r}"
                ) from None

        missing = [
            f"{prefix}{name.upper()}"
            for name in ("d1_database_id", "cf_account_id", "cf_api_token")
            if name not in values
        ]
        if missing:
            raise ConfigError(f"Missing required environment variable(s): {', '.join(missing)}")

        return cls(**values)
