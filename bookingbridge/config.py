"""
Configuration management using Pydantic models loaded from YAML.

Secrets may be left out of the YAML file and supplied through environment
variables (a ``.env`` file is honoured).
"""

import os
from datetime import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.models import WEEKDAY_NAMES, ResourceUnit, WorkingHours

ENV_OVERRIDES = {
    ("simplybook", "company_login"): "SIMPLYBOOK_COMPANY_LOGIN",
    ("simplybook", "api_key"): "SIMPLYBOOK_API_KEY",
    ("simplybook", "admin_username"): "SIMPLYBOOK_ADMIN_USERNAME",
    ("simplybook", "admin_password"): "SIMPLYBOOK_ADMIN_PASSWORD",
    ("facebook", "pixel_id"): "FACEBOOK_PIXEL_ID",
    ("facebook", "access_token"): "FACEBOOK_ACCESS_TOKEN",
}


class SimplyBookConfig(BaseModel):
    """SimplyBook.me credentials and endpoint."""
    company_login: str
    api_key: str = ""
    admin_username: str = ""
    admin_password: str = ""
    base_url: str = "https://user-api.simplybook.it"
    request_timeout_seconds: Optional[float] = None
    token_ttl_seconds: int = 3300  # tokens live ~55 minutes upstream; 0 disables caching

    @field_validator("token_ttl_seconds")
    @classmethod
    def validate_ttl(cls, value: int) -> int:
        if value < 0:
            raise ValueError("token_ttl_seconds must not be negative")
        return value


class WorkingHoursConfig(BaseModel):
    """Daily booking window and working days."""
    days: List[str] = Field(
        default_factory=lambda: ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"]
    )
    start: time = time(16, 0)
    end: time = time(18, 0)
    require_end_within: bool = True

    @field_validator("start", "end", mode="before")
    @classmethod
    def parse_hours(cls, value: Any) -> Any:
        """Accept decimal hours (``16`` or ``16.5``) as well as ``"HH:MM"``."""
        if isinstance(value, bool):
            raise ValueError("working hours must be a time or a number of hours")
        if isinstance(value, (int, float)):
            if not 0 <= value < 24:
                raise ValueError(f"Hour must be between 0 and 24, got {value}")
            total_minutes = round(value * 60)
            return time(hour=total_minutes // 60, minute=total_minutes % 60)
        return value

    @field_validator("days")
    @classmethod
    def validate_days(cls, value: List[str]) -> List[str]:
        """Normalise weekday names and reject unknown ones."""
        normalised: List[str] = []
        for day in value:
            name = day.strip().capitalize()
            if name not in WEEKDAY_NAMES:
                raise ValueError(f"Unknown weekday: {day!r}")
            if name not in normalised:
                normalised.append(name)
        return normalised

    @model_validator(mode="after")
    def validate_window(self) -> "WorkingHoursConfig":
        """Ensure the configured window opens before it closes."""
        if self.end <= self.start:
            raise ValueError("working_hours.end must be later than working_hours.start")
        return self

    def to_domain(self) -> WorkingHours:
        return WorkingHours(
            days=list(self.days),
            start_time=self.start,
            end_time=self.end,
            require_end_within=self.require_end_within,
        )


class UnitConfig(BaseModel):
    """A bookable performer."""
    unit_id: int
    name: str

    def to_domain(self) -> ResourceUnit:
        return ResourceUnit(unit_id=self.unit_id, name=self.name)


class BookingConfig(BaseModel):
    """Retry policy and booking call parameters."""
    max_attempts: int = 3
    retry_delay_seconds: float = 1.0
    client_time_offset: int = 0
    unavailable_markers: List[str] = Field(default_factory=lambda: ["not available"])

    @field_validator("max_attempts")
    @classmethod
    def validate_attempts(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_attempts must be at least 1")
        return value

    @field_validator("retry_delay_seconds")
    @classmethod
    def validate_delay(cls, value: float) -> float:
        if value < 0:
            raise ValueError("retry_delay_seconds must not be negative")
        return value


class FacebookConfig(BaseModel):
    """Facebook Conversions API settings."""
    pixel_id: Optional[str] = None
    access_token: Optional[str] = None
    api_version: str = "v18.0"
    test_event_code: str = "TEST12345"
    default_source_url: str = "https://miricledev.github.io/inner-performance-lp-1/"
    timeout_seconds: float = 10.0
    history_size: int = 100

    @field_validator("history_size")
    @classmethod
    def validate_history_size(cls, value: int) -> int:
        if value < 1:
            raise ValueError("history_size must be at least 1")
        return value


class AppConfig(BaseModel):
    """Application configuration."""
    simplybook: SimplyBookConfig
    working_hours: WorkingHoursConfig = Field(default_factory=WorkingHoursConfig)
    service_duration: int = 55
    units: List[UnitConfig] = Field(
        default_factory=lambda: [
            UnitConfig(unit_id=4, name="Mason"),
            UnitConfig(unit_id=10, name="Josh"),
        ]
    )
    booking: BookingConfig = Field(default_factory=BookingConfig)
    facebook: FacebookConfig = Field(default_factory=FacebookConfig)
    environment: str = "production"

    @field_validator("service_duration")
    @classmethod
    def validate_duration(cls, value: int) -> int:
        """Ensure service duration is positive."""
        if value <= 0:
            raise ValueError("service_duration must be greater than zero")
        return value

    @field_validator("units")
    @classmethod
    def validate_units(cls, value: List[UnitConfig]) -> List[UnitConfig]:
        """Ensure at least one unit and unique unit ids."""
        if not value:
            raise ValueError("At least one unit must be configured")
        seen: set[int] = set()
        for unit in value:
            if unit.unit_id in seen:
                raise ValueError(f"Duplicate unit id detected: {unit.unit_id}")
            seen.add(unit.unit_id)
        return value

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    def resource_units(self) -> List[ResourceUnit]:
        return [unit.to_domain() for unit in self.units]

    def public_view(self) -> Dict[str, Any]:
        """Configuration subset that is safe to hand to the browser."""
        return {
            "companyLogin": self.simplybook.company_login,
            "serviceDuration": self.service_duration,
            "workingHours": {
                "days": list(self.working_hours.days),
                "start": self.working_hours.start.strftime("%H:%M"),
                "end": self.working_hours.end.strftime("%H:%M"),
            },
            "units": [{"unit_id": u.unit_id, "name": u.name} for u in self.units],
        }

    @classmethod
    def load_from_yaml(cls, config_path: Path, dotenv_path: Optional[str] = None) -> "AppConfig":
        """
        Load configuration from YAML file, then apply environment overrides.

        Args:
            config_path: Path to the YAML config file
            dotenv_path: Optional ``.env`` file to load before reading the environment

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

        load_dotenv(dotenv_path=dotenv_path, override=False)
        return cls(**apply_env_overrides(data, os.environ))


def apply_env_overrides(data: Dict[str, Any], environ: Any) -> Dict[str, Any]:
    """Overlay secrets from the environment onto raw config data."""
    merged = {key: (dict(value) if isinstance(value, dict) else value) for key, value in data.items()}
    for (section, key), env_name in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value:
            merged.setdefault(section, {})
            merged[section][key] = value
    environment = environ.get("ENVIRONMENT")
    if environment:
        merged["environment"] = environment
    return merged


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
