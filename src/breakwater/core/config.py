"""Breakwater Configuration System.

Layered YAML configuration with Pydantic validation.

Config Layer Priority (highest to lowest):
1. Runtime overrides (in-memory)
2. Config file (~/.breakwater/config.yaml or an explicit path)
3. Environment variables (BREAKWATER_ prefix, ``__`` for nesting)
4. Preset (``preset: aggressive``), for sections not set explicitly
5. Defaults (defined in Pydantic models)

Usage:
    from breakwater.core.config import get_settings
    from breakwater.resilience import ResilienceOrchestrator

    settings = get_settings()
    orchestrator = ResilienceOrchestrator.from_settings(settings)

Example config.yaml:
    preset: conservative
    retry:
      max_attempts: 4
    rate_limit:
      requests_per_minute: 120
      tokens_per_minute: null
    logging:
      level: DEBUG
      format: console
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import (
    BaseModel,
    Field,
    PositiveInt,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from breakwater.core.exceptions import ConfigurationError
from breakwater.resilience.circuit_breaker import CircuitBreakerConfig
from breakwater.resilience.orchestrator import ResilienceConfig
from breakwater.resilience.rate_limiter import RateLimitConfig
from breakwater.resilience.retry import RetryConfig

DEFAULT_CONFIG_DIR = Path.home() / ".breakwater"
PRESETS = ("default", "disabled", "aggressive", "conservative")


# =============================================================================
# Sub-configuration Models (nested sections)
# =============================================================================


class RetrySettings(BaseModel):
    """Retry configuration."""

    max_attempts: PositiveInt = 3
    initial_delay_ms: PositiveInt = 1000
    max_delay_ms: PositiveInt = 60000
    multiplier: float = Field(default=2.0, gt=1.0)
    jitter: float = Field(default=0.25, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def check_delay_bounds(self) -> "RetrySettings":
        """Validate max_delay_ms is not below initial_delay_ms."""
        if self.max_delay_ms < self.initial_delay_ms:
            raise ValueError("max_delay_ms must be >= initial_delay_ms")
        return self

    def to_config(self) -> RetryConfig:
        return RetryConfig(**self.model_dump())


class CircuitBreakerSettings(BaseModel):
    """Circuit breaker configuration."""

    failure_threshold: PositiveInt = 5
    success_threshold: PositiveInt = 3
    open_duration_ms: PositiveInt = 30000
    half_open_max_requests: PositiveInt = 1

    def to_config(self) -> CircuitBreakerConfig:
        return CircuitBreakerConfig(**self.model_dump())


class RateLimitSettings(BaseModel):
    """Rate limit configuration."""

    requests_per_minute: PositiveInt = 60
    tokens_per_minute: Optional[PositiveInt] = 1_000_000  # None disables the cost bucket

    def to_config(self) -> RateLimitConfig:
        return RateLimitConfig(**self.model_dump())


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format is a known renderer."""
        valid_formats = {"json", "console"}
        if v.lower() not in valid_formats:
            raise ValueError(f"Invalid log format: {v}. Must be one of {valid_formats}")
        return v.lower()


# =============================================================================
# Main Settings
# =============================================================================


class ResilienceSettings(BaseSettings):
    """Main settings class with layered configuration support.

    Loads configuration from:
    1. Config file (~/.breakwater/config.yaml), passed as init values
    2. Environment variables (BREAKWATER_ prefix)
    3. Defaults defined in Pydantic models
    """

    model_config = SettingsConfigDict(
        env_prefix="BREAKWATER_",
        env_nested_delimiter="__",
        extra="ignore",
        populate_by_name=True,
    )

    preset: Optional[str] = None
    enable_retry: bool = True
    enable_circuit_breaker: bool = True
    enable_rate_limiting: bool = True

    retry: RetrySettings = Field(default_factory=RetrySettings)
    circuit_breaker: CircuitBreakerSettings = Field(default_factory=CircuitBreakerSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    logging_config: LoggingConfig = Field(default_factory=LoggingConfig, alias="logging")

    @property
    def logging(self) -> LoggingConfig:
        """Alias for logging_config to match YAML key and common usage."""
        return self.logging_config

    @field_validator("preset")
    @classmethod
    def validate_preset(cls, v: Optional[str]) -> Optional[str]:
        """Validate preset name."""
        if v is None:
            return v
        if v.lower() not in PRESETS:
            raise ValueError(f"Invalid preset: {v}. Must be one of {PRESETS}")
        return v.lower()

    def to_resilience_config(self) -> ResilienceConfig:
        """Build the runtime ResilienceConfig.

        Sections set explicitly (file, env or overrides) win over the
        preset; disabled components become None.
        """
        base = ResilienceConfig.preset(self.preset) if self.preset else ResilienceConfig()
        explicit = self.model_fields_set

        retry = self.retry.to_config() if "retry" in explicit or not self.preset else base.retry
        breaker = (
            self.circuit_breaker.to_config()
            if "circuit_breaker" in explicit or not self.preset
            else base.circuit_breaker
        )
        rate_limit = (
            self.rate_limit.to_config()
            if "rate_limit" in explicit or not self.preset
            else base.rate_limit
        )

        return ResilienceConfig(
            retry=retry if self.enable_retry else None,
            circuit_breaker=breaker if self.enable_circuit_breaker else None,
            rate_limit=rate_limit if self.enable_rate_limiting else None,
        )


# =============================================================================
# Configuration Loading Functions
# =============================================================================


def load_yaml_file(path: Path) -> Dict[str, Any]:
    """Load and parse a YAML file.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed YAML content as dictionary.

    Raises:
        ConfigurationError: If file cannot be read or parsed.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigurationError(
            config_path=str(path),
            message=f"Configuration file not found: {path}",
        )
    except yaml.YAMLError as e:
        raise ConfigurationError(
            config_path=str(path),
            message=f"Invalid YAML in {path}: {e}",
        )

    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigurationError(
            config_path=str(path),
            expected_type="mapping",
            message=f"Top level of {path} must be a mapping",
        )
    return content


def load_config_file(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load configuration from a YAML file.

    Args:
        path: Optional path to config file. Defaults to ~/.breakwater/config.yaml.

    Returns:
        Configuration dictionary, empty if the file does not exist.

    Raises:
        ConfigurationError: If file cannot be loaded.
    """
    if path is None:
        path = DEFAULT_CONFIG_DIR / "config.yaml"

    path = Path(path).expanduser()

    if not path.exists():
        return {}

    return load_yaml_file(path)


def merge_configs(*configs: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge multiple configuration dictionaries.

    Later configs override earlier ones.

    Args:
        *configs: Configuration dictionaries to merge.

    Returns:
        Merged configuration dictionary.
    """
    result: Dict[str, Any] = {}

    for config in configs:
        for key, value in config.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = merge_configs(result[key], value)
            else:
                result[key] = value

    return result


def create_settings(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> ResilienceSettings:
    """Create a ResilienceSettings instance with layered configuration.

    Args:
        config_path: Optional path to the YAML config file.
        overrides: Optional runtime overrides dictionary.

    Returns:
        Configured ResilienceSettings instance.

    Raises:
        ConfigurationError: If configuration is invalid.
    """
    if config_path:
        config_base = Path(config_path).expanduser().parent
    else:
        config_base = DEFAULT_CONFIG_DIR

    # Load .env file for environment overrides
    env_path = config_base / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    merged = load_config_file(config_path)
    if overrides:
        merged = merge_configs(merged, overrides)

    try:
        return ResilienceSettings(**merged)
    except ValidationError as e:
        raise ConfigurationError(
            config_path=str(config_path or DEFAULT_CONFIG_DIR / "config.yaml"),
            message=f"Configuration validation failed: {e}",
        ) from e


# =============================================================================
# Singleton Settings Access
# =============================================================================


class _SettingsHolder:
    """Thread-safe singleton holder for the ResilienceSettings instance."""

    _instance: Optional[ResilienceSettings] = None
    _lock: threading.Lock = threading.Lock()

    @classmethod
    def get(cls, force_reload: bool = False, **kwargs: Any) -> ResilienceSettings:
        """Get or create the settings singleton.

        Args:
            force_reload: If True, recreate settings even if already loaded.
            **kwargs: Arguments passed to create_settings().

        Returns:
            ResilienceSettings instance.
        """
        if cls._instance is None or force_reload:
            with cls._lock:
                if cls._instance is None or force_reload:
                    cls._instance = create_settings(**kwargs)
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset the singleton (for testing)."""
        with cls._lock:
            cls._instance = None


def get_settings(force_reload: bool = False, **kwargs: Any) -> ResilienceSettings:
    """Get the process-wide settings.

    Args:
        force_reload: If True, reload configuration.
        **kwargs: Arguments passed to create_settings() on (re)load.

    Returns:
        ResilienceSettings instance.
    """
    return _SettingsHolder.get(force_reload=force_reload, **kwargs)


def reset_settings() -> None:
    """Clear cached settings so the next get_settings() reloads."""
    _SettingsHolder.reset()
