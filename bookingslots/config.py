"""
Configuration management using Pydantic models loaded from YAML.
"""

import datetime
from pathlib import Path
from typing import Any, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.availability import ensure_timezone
from .domain.exceptions import InvalidConfiguration
from .domain.models import (
    AvailabilityRule,
    CalendarConnection,
    DateOverride,
    UserSchedule,
)
from .domain.slot_generator import SlotOptions


def _parse_clock_time(value: Any) -> Any:
    """
    YAML 1.1 reads an unquoted ``17:00`` as the base-60 integer 1020.
    Refuse that instead of silently turning it into 00:17.
    """
    if isinstance(value, int):
        raise ValueError("Times must be quoted strings such as '17:00'")
    return value


def _check_timezone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    try:
        return ensure_timezone(value)
    except InvalidConfiguration as exc:
        raise ValueError(str(exc)) from exc


class SlotDefaultsConfig(BaseModel):
    """Default settings for slot search."""
    duration_minutes: int = 30
    granularity_minutes: int = 30
    min_notice_minutes: int = 60
    max_slots: int = 10
    horizon_days: int = 14
    buffer_before_minutes: int = 0
    buffer_after_minutes: int = 0
    max_bookings_per_day: Optional[int] = None

    @field_validator("duration_minutes", "granularity_minutes", "max_slots", "horizon_days")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("max_bookings_per_day")
    @classmethod
    def validate_daily_limit(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value <= 0:
            raise ValueError("max_bookings_per_day must be greater than zero; leave it out for no limit")
        return value

    @field_validator("min_notice_minutes", "buffer_before_minutes", "buffer_after_minutes")
    @classmethod
    def validate_not_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    def to_options(self) -> SlotOptions:
        return SlotOptions(**self.model_dump())


class WindowConfig(BaseModel):
    """A local wall-clock window such as 09:00-12:00."""
    start: datetime.time
    end: datetime.time

    @field_validator("start", "end", mode="before")
    @classmethod
    def parse_times(cls, value: Any) -> Any:
        return _parse_clock_time(value)

    @model_validator(mode="after")
    def validate_order(self) -> "WindowConfig":
        """Windows may not be empty or cross midnight."""
        if self.end <= self.start:
            raise ValueError(f"Window {self.start}-{self.end} must end after it starts on the same day")
        return self


class RuleConfig(WindowConfig):
    """Weekly working hours for one or more weekdays (0=Monday)."""
    days: List[int]
    timezone: Optional[str] = None

    @field_validator("days")
    @classmethod
    def validate_days(cls, value: List[int]) -> List[int]:
        """Ensure weekdays are in valid range and deduplicated."""
        invalid_days = [day for day in value if day not in range(7)]
        if invalid_days:
            raise ValueError(f"days must be between 0 and 6, got {invalid_days}")
        if not value:
            raise ValueError("At least one weekday is required")
        return sorted(set(value))

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: Optional[str]) -> Optional[str]:
        return _check_timezone(value)

    def to_rules(self) -> List[AvailabilityRule]:
        return [
            AvailabilityRule(weekday=day, start_time=self.start, end_time=self.end, timezone=self.timezone)
            for day in self.days
        ]


class OverrideConfig(BaseModel):
    """Date-specific availability that replaces the weekly rules."""
    date: datetime.date
    windows: List[WindowConfig] = Field(default_factory=list)
    unavailable: bool = False

    @model_validator(mode="after")
    def validate_content(self) -> "OverrideConfig":
        if self.unavailable and self.windows:
            raise ValueError(f"Override for {self.date} cannot be unavailable and list windows")
        if not self.unavailable and not self.windows:
            raise ValueError(f"Override for {self.date} needs windows or unavailable: true")
        return self

    def to_override(self) -> DateOverride:
        return DateOverride(
            date=self.date,
            windows=tuple((window.start, window.end) for window in self.windows),
            unavailable=self.unavailable,
        )


class CalendarConfig(BaseModel):
    """An external calendar connected by a user."""
    provider: str
    calendar_id: str


class UserConfig(BaseModel):
    """A booking page owner and their availability."""
    id: str
    email: str = ""
    timezone: Optional[str] = None
    rules: List[RuleConfig] = Field(default_factory=list)
    overrides: List[OverrideConfig] = Field(default_factory=list)
    blackout_dates: List[datetime.date] = Field(default_factory=list)
    calendars: List[CalendarConfig] = Field(default_factory=list)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: Optional[str]) -> Optional[str]:
        return _check_timezone(value)

    @model_validator(mode="after")
    def validate_unique_dates(self) -> "UserConfig":
        """A date may be overridden once, either by an override or a blackout."""
        dates = [override.date for override in self.overrides] + list(self.blackout_dates)
        duplicates = sorted({day for day in dates if dates.count(day) > 1})
        if duplicates:
            raise ValueError(f"Dates configured more than once for {self.id}: {duplicates}")
        return self

    def to_schedule(self, default_timezone: str) -> UserSchedule:
        schedule = UserSchedule(
            user_id=self.id,
            timezone=self.timezone or default_timezone,
            rules=[rule for config in self.rules for rule in config.to_rules()],
            calendars=[
                CalendarConnection(provider=calendar.provider, calendar_id=calendar.calendar_id)
                for calendar in self.calendars
            ],
            email=self.email,
        )
        for override in self.overrides:
            schedule.add_override(override.to_override())
        for day in self.blackout_dates:
            schedule.block_date(day)
        return schedule


class MicrosoftConfig(BaseModel):
    """Application registration used to read Outlook calendars."""
    client_id: str
    tenant_id: str
    client_secret: str

    def get_authority_url(self) -> str:
        """Get the formatted authority URL."""
        return f"https://login.microsoftonline.com/{self.tenant_id}"


class GoogleConfig(BaseModel):
    """Access token for the Google Calendar freeBusy API."""
    access_token: str


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "America/New_York"
    defaults: SlotDefaultsConfig = Field(default_factory=SlotDefaultsConfig)
    provider_timeout_seconds: float = 5.0
    enforce_availability: bool = True
    database_url: Optional[str] = None
    mock_calendar_file: Optional[Path] = None
    microsoft: Optional[MicrosoftConfig] = None
    google: Optional[GoogleConfig] = None
    users: List[UserConfig] = Field(default_factory=list)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        return _check_timezone(value)

    @field_validator("provider_timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("provider_timeout_seconds must be greater than zero")
        return value

    @field_validator("users")
    @classmethod
    def validate_users(cls, value: List[UserConfig]) -> List[UserConfig]:
        """Ensure user ids are unique."""
        seen: set[str] = set()
        for user in value:
            if user.id in seen:
                raise ValueError(f"Duplicate user id detected: {user.id}")
            seen.add(user.id)
        return value

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

        config = cls(**data)
        if config.mock_calendar_file is not None and not config.mock_calendar_file.is_absolute():
            config.mock_calendar_file = config_path.parent / config.mock_calendar_file
        return config

    def find_user(self, user_id: str) -> Optional[UserConfig]:
        """Find a configured user by id."""
        for user in self.users:
            if user.id == user_id:
                return user
        return None

    def schedules(self) -> List[UserSchedule]:
        """Domain schedules for every configured user."""
        return [user.to_schedule(self.timezone) for user in self.users]


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
