"""
Configuration management using Pydantic models loaded from YAML.
"""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.exceptions import ConfigError


class BookingDefaults(BaseModel):
    """Slot grid and lead time settings."""
    slot_granularity_minutes: int = 30
    min_lead_minutes: int = 30

    @field_validator("slot_granularity_minutes")
    @classmethod
    def validate_granularity(cls, value: int) -> int:
        """Granularity must divide an hour evenly."""
        if value <= 0 or 60 % value != 0:
            raise ValueError(f"slot_granularity_minutes must divide 60, got {value}")
        return value

    @field_validator("min_lead_minutes")
    @classmethod
    def validate_lead(cls, value: int) -> int:
        if value < 0:
            raise ValueError("min_lead_minutes cannot be negative")
        return value


class RetryConfig(BaseModel):
    """Backoff for transient API failures."""
    max_retries: int = 3
    base_delay_seconds: float = 0.5

    @field_validator("max_retries")
    @classmethod
    def validate_retries(cls, value: int) -> int:
        if value < 0:
            raise ValueError("max_retries cannot be negative")
        return value


class AppConfig(BaseModel):
    """Application configuration."""
    api_url: str = "https://api.example.com/api/v1"
    salon_slug: str
    api_key: str = ""
    token: str = ""
    timezone: str = "Europe/Sarajevo"
    request_timeout_seconds: float = 30
    booking: BookingDefaults = Field(default_factory=BookingDefaults)
    retry: RetryConfig = Field(default_factory=RetryConfig)

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"api_url must be an http(s) URL, got {value!r}")
        return value.rstrip("/")

    @model_validator(mode="after")
    def validate_credentials(self) -> "AppConfig":
        """A widget key and a bearer token are mutually exclusive."""
        if self.api_key and self.token:
            raise ValueError("Configure either api_key (widget) or token, not both")
        return self

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigError: If the file is not valid YAML or not a mapping
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ConfigError("Config file must contain a mapping at the root level.")

        return cls(**data)


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    config_path = Path.cwd() / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
