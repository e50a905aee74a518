"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the OpenSea
sale indexer, loading and validating environment variables at startup.

Exchange addresses and selectors are not configuration; see `constants`.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        default="sqlite+aiosqlite:///opensea_sales.db",
        alias="DATABASE_URL",
        description="PostgreSQL or SQLite connection string",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite://", "sqlite+aiosqlite://")):
            raise ValueError("DATABASE_URL must be a PostgreSQL or SQLite connection string")
        return v


class RedisSettings(BaseSettings):
    """Redis connection settings (optional RPC response cache)."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str | None = Field(
        default=None,
        alias="REDIS_URL",
        description="Redis connection string; caching is disabled when unset",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate Redis URL format."""
        if v is not None and not v.startswith(("redis://", "rediss://")):
            raise ValueError("REDIS_URL must start with redis:// or rediss://")
        return v


class EthereumSettings(BaseSettings):
    """Ethereum mainnet RPC settings."""

    model_config = SettingsConfigDict(env_prefix="ETHEREUM_", extra="ignore")

    rpc_url: str | None = Field(
        default=None,
        alias="ETHEREUM_RPC_URL",
        description="Primary Ethereum RPC endpoint",
    )
    fallback_rpc_url: str | None = Field(
        default=None,
        alias="ETHEREUM_FALLBACK_RPC_URL",
        description="Fallback Ethereum RPC endpoint",
    )
    max_requests_per_second: float = Field(
        default=25.0,
        alias="ETHEREUM_MAX_REQUESTS_PER_SECOND",
        gt=0,
        description="Client-side RPC rate limit",
    )

    @field_validator("rpc_url", "fallback_rpc_url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate RPC URL format."""
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("RPC URL must be an HTTP(S) endpoint")
        return v


class IndexerSettings(BaseSettings):
    """Sale decoding and persistence behaviour."""

    model_config = SettingsConfigDict(env_prefix="INDEXER_", extra="ignore")

    validate_bundle_shape: bool = Field(
        default=True,
        alias="INDEXER_VALIDATE_BUNDLE_SHAPE",
        description="Reject bundles whose atomicize() arrays declare different lengths",
    )
    price_oracle_enabled: bool = Field(
        default=False,
        alias="INDEXER_PRICE_ORACLE_ENABLED",
        description="Cross-check computed prices with the exchange's calculateFinalPrice",
    )
    strict: bool = Field(
        default=False,
        alias="INDEXER_STRICT",
        description="Stop at the first settlement that fails to index",
    )


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from opensea_sale_indexer.config import get_settings

        settings = get_settings()
        print(settings.database.url)
        print(settings.log_level)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    redis: RedisSettings = Field(
        default_factory=lambda: RedisSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    ethereum: EthereumSettings = Field(
        default_factory=lambda: EthereumSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    indexer: IndexerSettings = Field(
        default_factory=lambda: IndexerSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Return the effective configuration with credentials masked."""
        return {
            "database_url": self._redact_url(self.database.url),
            "redis_url": self._redact_url(self.redis.url) if self.redis.url else "(not set)",
            "ethereum": {
                "rpc_url": self._redact_url(self.ethereum.rpc_url) if self.ethereum.rpc_url else "(not set)",
                "fallback_rpc_url": (
                    self._redact_url(self.ethereum.fallback_rpc_url)
                    if self.ethereum.fallback_rpc_url
                    else "(not set)"
                ),
                "max_requests_per_second": str(self.ethereum.max_requests_per_second),
            },
            "indexer": {
                "validate_bundle_shape": str(self.indexer.validate_bundle_shape),
                "price_oracle_enabled": str(self.indexer.price_oracle_enabled),
                "strict": str(self.indexer.strict),
            },
            "log_level": self.log_level,
        }

    def validate_requirements(
        self, *, command: Literal["init-db", "replay", "index-tx", "decode-calldata"]
    ) -> None:
        """Validate command-specific requirements.

        If a capability is required for a command and not configured, the
        application must refuse to run.
        """
        needs_rpc = command == "index-tx" or (
            command in ("replay", "index-tx") and self.indexer.price_oracle_enabled
        )
        if needs_rpc and not self.ethereum.rpc_url:
            raise ValueError(f"ETHEREUM_RPC_URL is required for {command}")

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Uses LRU cache to ensure settings are loaded only once and
    reused across the application.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If environment variables have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
