"""
Configuration management for apitester.

Loads defaults from environment variables, after reading the first
.env file found in the usual locations.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from apitester.exceptions import ConfigurationError


ENV_LOCATIONS = [
    Path.home() / ".apitester" / ".env",
    Path.home() / ".config" / "apitester" / ".env",
    Path.cwd() / ".env",
]

DEFAULT_EXPECTED_VALUES = "expected-values.json"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def load_env_file(locations: list[Path] | None = None) -> Path | None:
    """Load the first existing .env file. Returns its path, if any."""
    for env_path in locations if locations is not None else ENV_LOCATIONS:
        if env_path.exists():
            load_dotenv(env_path)
            return env_path
    return None


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None


@dataclass
class AppConfig:
    """Runtime defaults for requests and assertions."""

    timeout: float = 30.0
    retries: int = 1
    retry_delay_ms: int = 1000
    expected_values_path: str = DEFAULT_EXPECTED_VALUES
    user_agent: str = "apitester/0.1"
    log_level: str = "WARNING"

    def __post_init__(self):
        if self.retries < 1:
            raise ConfigurationError("retries must be at least 1")
        if self.retry_delay_ms < 0:
            raise ConfigurationError("retry delay must not be negative")
        if self.timeout <= 0:
            raise ConfigurationError("timeout must be positive")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigurationError(f"unknown log level {self.log_level!r}")

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Load configuration from environment variables."""
        return cls(
            timeout=_env_number("APITESTER_TIMEOUT", 30.0, float),
            retries=_env_number("APITESTER_RETRIES", 1, int),
            retry_delay_ms=_env_number("APITESTER_RETRY_DELAY_MS", 1000, int),
            expected_values_path=os.getenv("APITESTER_EXPECTED_VALUES", DEFAULT_EXPECTED_VALUES),
            user_agent=os.getenv("APITESTER_USER_AGENT", "apitester/0.1"),
            log_level=os.getenv("APITESTER_LOG_LEVEL", "WARNING").upper(),
        )


# Global config instance
_config: AppConfig | None = None


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        load_env_file()
        _config = AppConfig.from_env()
    return _config


def set_config(config: AppConfig | None) -> None:
    """Set (or reset, with None) the global configuration instance."""
    global _config
    _config = config
