"""
Configuration management using Pydantic models loaded from YAML.
"""

import logging
from pathlib import Path

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator


class StoreConfig(BaseModel):
    """Hosted backend project settings."""
    url: str = ""
    api_key: str = ""

    @field_validator("url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        """Ensure the project URL is an http(s) URL when given."""
        if value and not value.startswith(("https://", "http://")):
            raise ValueError(f"store.url must start with http:// or https://, got {value!r}")
        return value.rstrip("/")


class PaymentsConfig(BaseModel):
    """Deposit payment settings."""
    secret_key: str = ""
    currency: str = "usd"
    deposit_amount: int = 5000  # minor units (cents)
    proceed_without_payment_on_gateway_failure: bool = True

    @field_validator("deposit_amount")
    @classmethod
    def validate_deposit(cls, value: int) -> int:
        """Ensure the deposit is a positive amount."""
        if value <= 0:
            raise ValueError("deposit_amount must be greater than zero")
        return value

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, value: str) -> str:
        """Currencies are three-letter ISO codes, lower case."""
        if len(value) != 3 or not value.isalpha():
            raise ValueError(f"currency must be a three-letter ISO code, got {value!r}")
        return value.lower()


class SchedulingConfig(BaseModel):
    """Slot generation settings."""
    slot_duration_minutes: int = 60
    detect_overlaps: bool = False

    @field_validator("slot_duration_minutes")
    @classmethod
    def validate_duration(cls, value: int) -> int:
        """Ensure slots are between one minute and one day long."""
        if not 1 <= value <= 1440:
            raise ValueError(f"slot_duration_minutes must be between 1 and 1440, got {value}")
        return value


class AppConfig(BaseModel):
    """Application configuration."""
    store: StoreConfig = Field(default_factory=StoreConfig)
    payments: PaymentsConfig = Field(default_factory=PaymentsConfig)
    scheduling: SchedulingConfig = Field(default_factory=SchedulingConfig)
    timezone: str = "Europe/Berlin"
    log_level: str = "INFO"

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the timezone is a known IANA identifier."""
        try:
            pendulum.timezone(value)
        except Exception as exc:
            raise ValueError(f"Unknown timezone: {value!r}") from exc
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Accept standard logging level names in any case."""
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value!r}")
        return level

    def configure_logging(self) -> None:
        """Apply ``log_level`` to the root logger."""
        logging.basicConfig(
            level=getattr(logging, self.log_level),
            format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

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
            ValueError: If config is invalid
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
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
