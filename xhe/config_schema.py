"""Pydantic schema for configuration validation.

All config values are validated at startup. Typos and invalid values
fail fast with clear error messages.

Usage:
    from xhe.config_schema import load_validated_config, AppConfig
    config = load_validated_config("config/config.yaml")
    # config is now a validated AppConfig instance
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# BASE MODEL WITH STRICT VALIDATION
# =============================================================================

class StrictModel(BaseModel):
    """Base model that rejects unknown fields (catches typos)."""

    model_config = ConfigDict(extra="forbid")


# =============================================================================
# KERNEL MODEL
# =============================================================================

class KernelConfig(StrictModel):
    """Kernel identity, pulse and addressing parameters."""

    version: str = Field(
        default="1.0.0",
        description="Kernel version stamped into metadata and every pulse"
    )
    genesis_balance: int = Field(
        default=100,
        ge=0,
        description="Slips granted once to every newly created identity"
    )
    sequence_width: int = Field(
        default=8,
        ge=1,
        le=20,
        description="Zero-padded width of pulse sequence numbers"
    )
    identity_hash_width: int = Field(
        default=32,
        ge=16,
        le=64,
        description="Hex characters of the content hash kept in did:xhe addresses"
    )
    preview_length: int = Field(
        default=50,
        gt=0,
        description="Characters of content kept in address index previews"
    )
    did_bytes: int = Field(default=16, gt=0, description="Random bytes in a new did")
    public_key_bytes: int = Field(default=32, gt=0, description="Random bytes in a new public key")
    tx_id_bytes: int = Field(default=8, gt=0, description="Random bytes in a transaction id")
    post_id_bytes: int = Field(default=8, gt=0, description="Random bytes in a post id")
    channel_id_bytes: int = Field(default=6, gt=0, description="Random bytes in a channel id")

    @field_validator("version")
    @classmethod
    def version_not_blank(cls, v: str) -> str:
        """Kernel version is hashed into pulses and must not be blank."""
        if not v.strip():
            raise ValueError("kernel.version must not be blank")
        return v


# =============================================================================
# STORAGE MODEL
# =============================================================================

class StorageConfig(StrictModel):
    """Durable key-value store configuration."""

    backend: Literal["sqlite", "memory"] = Field(
        default="sqlite",
        description="Store backend used by the entry point"
    )
    path: str = Field(
        default="xhe_kernel.db",
        description="SQLite database file for kernel state"
    )
    key_prefix: str = Field(
        default="xhe_kernel_",
        description="Prefix applied to every store key"
    )
    retry_max: int = Field(
        default=5,
        ge=1,
        description="Max attempts when SQLite reports 'database is locked'"
    )
    retry_base: float = Field(
        default=0.1,
        gt=0,
        description="Base backoff delay in seconds"
    )
    retry_max_delay: float = Field(
        default=5.0,
        gt=0,
        description="Backoff delay cap in seconds"
    )


# =============================================================================
# FEEDS MODEL
# =============================================================================

class FeedsConfig(StrictModel):
    """Feed and history listing limits."""

    default_limit: int = Field(
        default=50,
        gt=0,
        description="Default number of posts in the global feed"
    )
    history_limit: int = Field(
        default=50,
        gt=0,
        description="Default number of transactions in slip history"
    )


# =============================================================================
# JOURNAL / LOGGING MODELS
# =============================================================================

class JournalConfig(StrictModel):
    """Reset journal - lifecycle records kept outside the wiped stores."""

    enabled: bool = Field(default=True, description="Write the reset journal")
    path: str = Field(
        default="xhe_journal.jsonl",
        description="JSONL file for kernel lifecycle records"
    )


class LoggingConfig(StrictModel):
    """Python logging configuration for the entry point."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Root log level"
    )
    format: str = Field(
        default="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        description="logging.basicConfig format string"
    )


# =============================================================================
# ROOT CONFIG MODEL
# =============================================================================

class AppConfig(StrictModel):
    """Root configuration model for the entire application.

    All fields have sensible defaults, so an empty config file is valid.
    """

    kernel: KernelConfig = Field(default_factory=KernelConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    feeds: FeedsConfig = Field(default_factory=FeedsConfig)
    journal: JournalConfig = Field(default_factory=JournalConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# LOADING FUNCTIONS
# =============================================================================

def load_validated_config(config_path: str | Path = "config/config.yaml") -> AppConfig:
    """Load and validate configuration from YAML file.

    Args:
        config_path: Path to config YAML file.

    Returns:
        Validated AppConfig instance.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        pydantic.ValidationError: If config is invalid (with detailed error message).
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw_config = yaml.safe_load(f) or {}

    return AppConfig.model_validate(raw_config)


def validate_config_dict(config_dict: dict[str, Any]) -> AppConfig:
    """Validate a configuration dictionary.

    Args:
        config_dict: Configuration as a dictionary.

    Returns:
        Validated AppConfig instance.

    Raises:
        pydantic.ValidationError: If config is invalid.
    """
    return AppConfig.model_validate(config_dict)


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "AppConfig",
    "KernelConfig",
    "StorageConfig",
    "FeedsConfig",
    "JournalConfig",
    "LoggingConfig",
    "StrictModel",
    "load_validated_config",
    "validate_config_dict",
]
