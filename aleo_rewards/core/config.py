"""
Configuration management using Pydantic Settings.
Values come from ALEO_* environment variables, an optional .env file,
or a YAML file in the legacy config.yml layout.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import Field, ValidationError as PydanticValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


# Keys of the legacy config.yml mapped onto Settings fields
YAML_KEY_MAP = {
    "aleoapi": "api_urls",
    "mysqldsn": "database_url",
    "batch_request": "batch_window_size",
    "batch_concurrent": "batch_concurrency",
    "address": "tracked_addresses",
    "store_block": "store_block",
    "synced_height_file": "height_file",
    "listen_ip": "listen_ip",
}


class Settings(BaseSettings):
    """Application settings with environment-based configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ALEO_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Aleo Rewards Indexer"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"

    # Block source
    api_urls: List[str] = Field(default_factory=lambda: ["https://vm.aleo.org/api/testnet3"])
    request_timeout: float = 30.0  # seconds

    # Retry policy
    retry_initial_interval: float = 0.05  # seconds
    retry_max_interval: float = 15.0  # seconds
    retry_max_elapsed: float = 60.0  # seconds

    # Batch catch-up
    batch_window_size: int = 10
    batch_concurrency: int = 2
    batch_safety_margin: int = 10
    batch_max_rotations: Optional[int] = None  # None: one pass over api_urls

    # Live tail
    confirmation_depth: int = 10
    block_interval: float = 15.0  # seconds

    # Rewards
    tracked_addresses: List[str] = Field(default_factory=list)
    store_block: bool = False
    starting_supply: int = 1_000_000_000_000_000  # microcredits
    anchor_time: int = 25  # seconds

    # Persistence
    database_url: str = "sqlite+aiosqlite:///./aleo_rewards.db"
    database_pool_size: int = 10
    database_max_overflow: int = 20
    height_file: str = "block_height.sync"
    dispatcher_queue_size: int = 4096

    # API
    listen_ip: str = "127.0.0.1:9898"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console
    log_file: Optional[str] = None

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = ["development", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("api_urls")
    @classmethod
    def validate_api_urls(cls, v: List[str]) -> List[str]:
        urls = [url.strip().rstrip("/") for url in v if url.strip()]
        if not urls:
            raise ValueError("At least one block source URL is required")
        return urls

    @field_validator(
        "batch_window_size", "batch_concurrency", "dispatcher_queue_size", "anchor_time"
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Value must be at least 1")
        return v

    @field_validator("batch_max_rotations")
    @classmethod
    def validate_rotations(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("batch_max_rotations must be at least 1")
        return v

    @field_validator("batch_safety_margin", "confirmation_depth")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Value must not be negative")
        return v

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def api_host(self) -> str:
        return self.listen_ip.rsplit(":", 1)[0] or "127.0.0.1"

    @property
    def api_port(self) -> int:
        _, _, port = self.listen_ip.rpartition(":")
        return int(port) if port.isdigit() else 9898


def load_settings(path: Optional[str] = None, **overrides: Any) -> Settings:
    """
    Build settings from the environment, optionally layered with a YAML file.

    Args:
        path: Optional path to a YAML config file
        **overrides: Explicit field values, applied last

    Returns:
        Validated Settings instance

    Raises:
        ConfigurationError: If the file is unreadable or values are invalid
    """
    values: Dict[str, Any] = {}

    if path:
        config_path = Path(path)
        try:
            raw = yaml.safe_load(config_path.read_text()) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(
                f"Failed to read config file: {path}",
                {"path": path, "error": str(e)}
            )
        if not isinstance(raw, dict):
            raise ConfigurationError(
                f"Config file must contain a mapping: {path}",
                {"path": path}
            )
        for key, value in raw.items():
            values[YAML_KEY_MAP.get(key, key)] = value

    values.update(overrides)

    try:
        return Settings(**values)
    except PydanticValidationError as e:
        raise ConfigurationError("Invalid configuration", {"errors": e.errors()})


# Global settings instance
settings = Settings()
