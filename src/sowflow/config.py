"""Configuration management for Sowflow.

This module defines the configuration schema using Pydantic settings,
supporting TOML files, environment variables, and programmatic overrides.

Configuration loading priority (highest to lowest):
1. Programmatic overrides (passed to SowflowConfig constructor)
2. Environment variables (SOWFLOW_* prefix)
3. TOML configuration file
4. Default values defined in this module

Example TOML configuration:
    [state]
    root = ".sow"
    state_file = "project/state.yaml"

    [logging]
    level = "DEBUG"
    format = "console"

Example environment variable override:
    SOWFLOW_STATE__ROOT="/work/repo/.sow"
    SOWFLOW_LOGGING__LEVEL=WARNING
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import tomli
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoggingConfig(BaseSettings):
    """Logging configuration.

    Attributes:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Log format (json or console)
        file: Optional log file path (None for stderr only)
        rotation_size_mb: Log file rotation size in megabytes
        retention_count: Number of rotated log files to keep
    """

    model_config = SettingsConfigDict(
        env_prefix="SOWFLOW_LOGGING__",
        extra="forbid",
    )

    level: str = Field(default="WARNING")
    format: str = Field(default="console")
    file: Path | None = Field(default=None)
    rotation_size_mb: int = Field(default=10, ge=1, le=1000)
    retention_count: int = Field(default=5, ge=1, le=100)

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level is recognized."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format is recognized."""
        valid_formats = {"json", "console"}
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Invalid log format: {v}. Must be one of {valid_formats}")
        return v_lower


class StateConfig(BaseSettings):
    """Project state storage configuration.

    Attributes:
        root: Directory holding the state tree (usually the repo's .sow dir)
        state_file: Path of the project record, relative to root
        name_max_length: Maximum length of generated project names
    """

    model_config = SettingsConfigDict(
        env_prefix="SOWFLOW_STATE__",
        extra="forbid",
    )

    root: Path = Field(default=Path(".sow"))
    state_file: Path = Field(default=Path("project/state.yaml"))
    name_max_length: int = Field(default=50, ge=10, le=200)

    @field_validator("state_file")
    @classmethod
    def validate_state_file(cls, v: Path) -> Path:
        """Validate the state file path is relative to the state root."""
        if v.is_absolute():
            raise ValueError(f"state_file must be relative to root, got {v}")
        return v


class SowflowConfig(BaseSettings):
    """Root configuration for Sowflow.

    Aggregates all subsystem configurations. Configuration can be loaded from:
    1. TOML files (using load_config function)
    2. Environment variables (SOWFLOW_* prefix)
    3. Direct instantiation with keyword arguments

    Environment variable format for nested config:
        SOWFLOW_<SECTION>__<KEY>=value
    """

    model_config = SettingsConfigDict(
        env_prefix="SOWFLOW_",
        env_nested_delimiter="__",
        extra="forbid",
    )

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    state: StateConfig = Field(default_factory=StateConfig)

    @property
    def state_path(self) -> Path:
        """Full path of the persisted project record."""
        return self.state.root / self.state.state_file


def load_config(config_path: Path | None = None) -> SowflowConfig:
    """Load configuration from TOML file with environment variable overrides.

    Configuration search order (first found is used):
    1. config_path if explicitly provided
    2. ./sowflow.toml (current directory)
    3. ~/.config/sowflow/config.toml (user config directory)

    Args:
        config_path: Explicit path to TOML config file. If None, searches
                    default locations.

    Returns:
        SowflowConfig: Fully resolved configuration instance.

    Raises:
        FileNotFoundError: If config_path is explicitly provided but doesn't exist.
        ValueError: If TOML file contains invalid configuration.
    """
    toml_data: dict[str, Any] = {}

    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        selected_path: Path | None = config_path
    else:
        search_paths = [
            Path.cwd() / "sowflow.toml",
            Path.home() / ".config" / "sowflow" / "config.toml",
        ]
        selected_path = None
        for path in search_paths:
            if path.exists():
                selected_path = path
                break

    if selected_path is not None:
        with open(selected_path, "rb") as f:
            try:
                toml_data = tomli.load(f)
            except tomli.TOMLDecodeError as e:
                raise ValueError(f"Invalid TOML in {selected_path}: {e}") from e

    # Pydantic overlays environment variables on top of the TOML data
    try:
        return SowflowConfig(**toml_data)
    except Exception as e:
        if selected_path:
            raise ValueError(f"Invalid configuration in {selected_path}: {e}") from e
        raise ValueError(f"Invalid configuration: {e}") from e
