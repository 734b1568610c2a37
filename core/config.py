from __future__ import annotations

from datetime import date, datetime, time, timedelta
from functools import lru_cache
from pathlib import Path

import yaml
from dateutil.rrule import DAILY, rrule
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.time_utils import get_timezone


class WorkHours(BaseModel):
    start: time = time(9, 0)
    end: time = time(17, 0)

    @model_validator(mode="after")
    def _check_order(self) -> "WorkHours":
        if self.start >= self.end:
            raise ValueError("Work hours must start before they end")
        return self

    @property
    def minutes(self) -> int:
        return (self.end.hour * 60 + self.end.minute) - (self.start.hour * 60 + self.start.minute)

    @property
    def hours(self) -> float:
        return self.minutes / 60


class IdealHoursRange(BaseModel):
    min_hours: float = Field(default=6.0, ge=0)
    max_hours: float = Field(default=8.0, ge=0)

    @model_validator(mode="after")
    def _check_order(self) -> "IdealHoursRange":
        if self.min_hours > self.max_hours:
            raise ValueError("Ideal scheduled hours minimum exceeds maximum")
        return self


class LunchWindow(BaseModel):
    start: time = time(12, 0)
    end: time = time(14, 0)
    min_minutes: int = Field(default=30, gt=0)

    @model_validator(mode="after")
    def _check_order(self) -> "LunchWindow":
        if self.start >= self.end:
            raise ValueError("Lunch window must start before it ends")
        return self


class AnalysisPreferences(BaseModel):
    """User preferences handed explicitly to every analysis run."""

    buffer_minutes: int = Field(default=15, ge=0)
    travel_time_enabled: bool = True
    minimum_travel_minutes: int = Field(default=5, ge=0)
    work_hours: WorkHours = Field(default_factory=WorkHours)
    ideal_hours: IdealHoursRange = Field(default_factory=IdealHoursRange)
    lunch: LunchWindow = Field(default_factory=LunchWindow)
    shorten_min_minutes: int = Field(default=30, ge=0)
    timezone: str = "UTC"

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        get_timezone(value)
        return value

    @model_validator(mode="after")
    def _check_ideal_fits_day(self) -> "AnalysisPreferences":
        if self.ideal_hours.max_hours > 24:
            raise ValueError("Ideal scheduled hours cannot exceed a day")
        return self


class AnalysisWindow(BaseModel):
    start: date
    days: int = Field(default=1, ge=1)

    @property
    def end(self) -> date:
        """Exclusive end date."""
        return self.start + timedelta(days=self.days)

    def dates(self) -> list[date]:
        first = datetime.combine(self.start, time())
        return [dt.date() for dt in rrule(DAILY, dtstart=first, count=self.days)]


class TravelConfig(BaseModel):
    average_speed_kmh: float = Field(default=30.0, gt=0)
    detour_factor: float = Field(default=1.3, ge=1.0)
    fallback_minutes: int | None = Field(default=30, ge=0)
    request_timeout_seconds: float = Field(default=10.0, gt=0)


class AppConfig(BaseModel):
    preferences: AnalysisPreferences = Field(default_factory=AnalysisPreferences)
    travel: TravelConfig = Field(default_factory=TravelConfig)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    timezone: str = Field(default="UTC", alias="TIMEZONE")
    maps_api_key: str | None = Field(default=None, alias="MAPS_API_KEY")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    config_path: str = Field(default="config.yaml", alias="APP_CONFIG_PATH")

    _app_config: AppConfig | None = None
    _app_config_mtime: float | None = None

    def load_app_config(self, *, force_reload: bool = False) -> AppConfig:
        config_file = Path(self.config_path)
        if not config_file.exists():
            self._app_config = AppConfig.model_validate(self._apply_defaults({}))
            self._app_config_mtime = None
            return self._app_config

        current_mtime = config_file.stat().st_mtime
        if not force_reload and self._app_config and self._app_config_mtime == current_mtime:
            return self._app_config

        with config_file.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}

        self._app_config = AppConfig.model_validate(self._apply_defaults(data))
        self._app_config_mtime = current_mtime
        return self._app_config

    def _apply_defaults(self, data: dict) -> dict:
        # The deployment timezone is the default for preferences that omit one.
        preferences = data.get("preferences") or {}
        preferences.setdefault("timezone", self.timezone)
        return {**data, "preferences": preferences}

    def reload_app_config(self) -> AppConfig:
        """Force a reload of the application config from disk."""
        return self.load_app_config(force_reload=True)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
