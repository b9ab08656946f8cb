"""Configuration system for cdpwire."""

import logging
import os
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_WAIT_FOR_TARGET_TIMEOUT = 30.0
DEFAULT_MAX_PAYLOAD_SIZE = 256 * 1024 * 1024  # 256MB


class EnvConfig(BaseSettings):
    """Environment variable configuration using pydantic-settings."""

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=True,
        extra='allow'
    )

    # Logging
    CDPWIRE_LOGGING_LEVEL: str = Field(default='info')
    CDP_LOGGING_LEVEL: str = Field(default='WARNING')
    CDPWIRE_DEBUG_LOG_FILE: str | None = Field(default=None)

    # Protocol client behaviour
    CDPWIRE_WAIT_FOR_TARGET_TIMEOUT: float = Field(default=DEFAULT_WAIT_FOR_TARGET_TIMEOUT)
    CDPWIRE_MAX_PAYLOAD_SIZE: int = Field(default=DEFAULT_MAX_PAYLOAD_SIZE)
    CDPWIRE_SLOW_MO: float = Field(default=0.0)


def _get_float(env_var: str, default: float) -> float:
    """Parse a non-negative float from the environment, falling back to default."""
    env_value = os.getenv(env_var)
    if env_value:
        try:
            parsed = float(env_value)
            if parsed >= 0:
                return parsed
        except (ValueError, TypeError):
            logger.debug(f'Ignoring invalid value for {env_var}: {env_value!r}')
    return default


class Config:
    """Configuration class backed by the environment.

    Re-reads environment variables on every access for flexibility.
    """

    _instance: 'Config | None' = None

    def __new__(cls) -> 'Config':
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def LOGGING_LEVEL(self) -> str:
        return os.getenv('CDPWIRE_LOGGING_LEVEL', 'info').lower()

    @property
    def CDP_LOGGING_LEVEL(self) -> str:
        return os.getenv('CDP_LOGGING_LEVEL', 'WARNING').upper()

    @property
    def DEBUG_LOG_FILE(self) -> str | None:
        return os.getenv('CDPWIRE_DEBUG_LOG_FILE') or None

    @property
    def WAIT_FOR_TARGET_TIMEOUT(self) -> float:
        return _get_float('CDPWIRE_WAIT_FOR_TARGET_TIMEOUT', DEFAULT_WAIT_FOR_TARGET_TIMEOUT)

    @property
    def MAX_PAYLOAD_SIZE(self) -> int:
        return int(_get_float('CDPWIRE_MAX_PAYLOAD_SIZE', DEFAULT_MAX_PAYLOAD_SIZE))

    @property
    def SLOW_MO(self) -> float:
        return _get_float('CDPWIRE_SLOW_MO', 0.0)

    def load_config(self) -> dict[str, Any]:
        """Load configuration from the environment and .env file."""
        env_config = EnvConfig()
        return {
            'logging_level': env_config.CDPWIRE_LOGGING_LEVEL.lower(),
            'cdp_logging_level': env_config.CDP_LOGGING_LEVEL.upper(),
            'debug_log_file': env_config.CDPWIRE_DEBUG_LOG_FILE,
            'wait_for_target_timeout': env_config.CDPWIRE_WAIT_FOR_TARGET_TIMEOUT,
            'max_payload_size': env_config.CDPWIRE_MAX_PAYLOAD_SIZE,
            'slow_mo': env_config.CDPWIRE_SLOW_MO,
        }


# Create singleton instance
CONFIG = Config()


def load_cdpwire_config() -> dict[str, Any]:
    """Load cdpwire configuration."""
    return CONFIG.load_config()
