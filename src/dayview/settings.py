from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal
from urllib.parse import urlparse
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .domain.models import AggregationConfig, WeatherConfig

PROJECT_ROOT = Path(__file__).resolve().parents[2]


class RefreshSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    jitter_seconds: int = Field(default=15, ge=0, le=300)


class CalendarSourceSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["ics", "ics_url", "home_assistant"] = "ics"
    entity: str | None = None
    path: Path | None = None
    url: str | None = None
    token: str | None = None

    @field_validator("entity", "token")
    @classmethod
    def validate_optional_text(cls, value: str | None) -> str | None:
        if value is None:
            return None
        text = value.strip()
        return text or None

    @field_validator("path")
    @classmethod
    def validate_path(cls, value: Path | None) -> Path | None:
        if value is None:
            return None
        text = str(value).strip()
        if not text:
            raise ValueError("sources[].path must not be empty")
        return Path(text)

    @field_validator("url")
    @classmethod
    def validate_url(cls, value: str | None) -> str | None:
        if value is None:
            return None
        text = value.strip()
        if not text:
            raise ValueError("sources[].url must not be empty")

        parsed = urlparse(text)
        if parsed.scheme == "webcal":
            text = parsed._replace(scheme="https").geturl()
            parsed = urlparse(text)

        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("sources[].url must be an absolute http(s) URL")
        return text

    @model_validator(mode="after")
    def validate_source_fields(self) -> CalendarSourceSettings:
        if self.type == "ics":
            if self.entity is None:
                raise ValueError("sources[].entity is required when type is 'ics'")
            if self.path is None:
                raise ValueError("sources[].path is required when type is 'ics'")
            if self.url is not None:
                raise ValueError("sources[].url is not allowed when type is 'ics'")
            return self

        if self.type == "ics_url":
            if self.entity is None:
                raise ValueError("sources[].entity is required when type is 'ics_url'")
            if self.url is None:
                raise ValueError("sources[].url is required when type is 'ics_url'")
            if self.path is not None:
                raise ValueError("sources[].path is not allowed when type is 'ics_url'")
            return self

        if self.type == "home_assistant":
            if self.url is None:
                raise ValueError("sources[].url is required when type is 'home_assistant'")
            if self.path is not None:
                raise ValueError("sources[].path is not allowed when type is 'home_assistant'")
            return self

        raise ValueError(f"Unsupported calendar source type: {self.type}")


class DayviewYamlSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    instance_id: str = "default"
    calendar: AggregationConfig = Field(default_factory=AggregationConfig)
    sources: list[CalendarSourceSettings] = Field(default_factory=list)
    refresh: RefreshSettings = Field(default_factory=RefreshSettings)
    weather: WeatherConfig = Field(default_factory=WeatherConfig)

    @field_validator("instance_id")
    @classmethod
    def validate_instance_id(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("instance_id must not be empty")
        return text


class EnvSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    dayview_env: Literal["dev", "test", "prod"] = "dev"
    dayview_timezone: str = "Europe/Berlin"
    dayview_config_path: Path = Path("config/dayview.yaml")
    dayview_db_path: Path = Path("data/dayview.db")
    dayview_home_assistant_token: str | None = None

    @field_validator("dayview_timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value


class AppSettings(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    env: EnvSettings
    yaml: DayviewYamlSettings
    project_root: Path
    config_path: Path
    db_path: Path
    timezone: ZoneInfo


def _resolve_project_path(path: Path) -> Path:
    if path.is_absolute():
        return path
    return (PROJECT_ROOT / path).resolve()


def _load_yaml_settings(path: Path) -> DayviewYamlSettings:
    if not path.exists():
        raise FileNotFoundError(f"Dayview config file not found: {path}")

    raw_config = yaml.safe_load(path.read_text(encoding="utf-8"))
    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ValueError("Dayview config must be a YAML mapping/object at the top level")
    return DayviewYamlSettings.model_validate(raw_config)


def build_settings(env: EnvSettings) -> AppSettings:
    config_path = _resolve_project_path(env.dayview_config_path)
    db_path = _resolve_project_path(env.dayview_db_path)
    yaml_settings = _load_yaml_settings(config_path)
    return AppSettings(
        env=env,
        yaml=yaml_settings,
        project_root=PROJECT_ROOT,
        config_path=config_path,
        db_path=db_path,
        timezone=ZoneInfo(env.dayview_timezone),
    )


@lru_cache(maxsize=1)
def load_settings() -> AppSettings:
    return build_settings(EnvSettings())
