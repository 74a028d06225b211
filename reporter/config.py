from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError


_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class AppConfig(BaseModel):
    env: str = "dev"
    # zone of the broker server clock; deal times are already server wall-clock
    server_timezone: str = "UTC"
    log_level: str = "INFO"
    logging_enabled: bool = True

    @field_validator("server_timezone")
    @classmethod
    def _validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown timezone '{v}'")
        return v

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}")
        return level


class TelegramConfig(BaseModel):
    enabled: bool = True
    token: str = ""
    chat_id: str = ""
    parse_mode: str = "Markdown"
    api_base: str = "https://api.telegram.org"
    timeout_seconds: float = 10.0


class ReportConfig(BaseModel):
    account_label: str = "MT5 Account"
    detailed_interval_minutes: int = 60
    summary_interval_minutes: int = 15
    retry_seconds: int = 60
    advance_on_failure: bool = False
    notify_on_start: bool = True
    notify_on_stop: bool = True
    day_window: int = 10
    week_window: int = 8
    month_window: int = 6


class LedgerConfig(BaseModel):
    refresh_seconds: int = 300
    lookback_days: int = 0  # 0 = whole account history


class SourceConfig(BaseModel):
    type: str = "sqlite"  # sqlite | mt5
    sqlite_path: str = "./db/terminal.db"
    terminal_path: Optional[str] = None
    login: Optional[int] = None
    password: Optional[str] = None
    server: Optional[str] = None


class ExportConfig(BaseModel):
    interval_seconds: float = 5.0
    overlap_days: int = 1  # re-read this much history before the newest mirrored deal


class SchedulerConfig(BaseModel):
    tick_seconds: float = 1.0


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        extra="ignore",
    )

    app: AppConfig = Field(default_factory=AppConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)

    @field_validator("report")
    @classmethod
    def _validate_report(cls, v: ReportConfig) -> ReportConfig:
        if v.detailed_interval_minutes < 0 or v.summary_interval_minutes < 0:
            raise ValueError("report intervals must be >= 0")
        if v.retry_seconds < 0:
            raise ValueError("report.retry_seconds must be >= 0")
        if min(v.day_window, v.week_window, v.month_window) <= 0:
            raise ValueError("report windows must be > 0")
        return v

    @field_validator("ledger")
    @classmethod
    def _validate_ledger(cls, v: LedgerConfig) -> LedgerConfig:
        if v.refresh_seconds < 0:
            raise ValueError("ledger.refresh_seconds must be >= 0")
        if v.lookback_days < 0:
            raise ValueError("ledger.lookback_days must be >= 0")
        return v

    @field_validator("source")
    @classmethod
    def _validate_source(cls, v: SourceConfig) -> SourceConfig:
        if v.type not in ("sqlite", "mt5"):
            raise ValueError("source.type must be 'sqlite' or 'mt5'")
        return v

    @field_validator("scheduler")
    @classmethod
    def _validate_scheduler(cls, v: SchedulerConfig) -> SchedulerConfig:
        if v.tick_seconds <= 0:
            raise ValueError("scheduler.tick_seconds must be > 0")
        return v

    @field_validator("export")
    @classmethod
    def _validate_export(cls, v: ExportConfig) -> ExportConfig:
        if v.interval_seconds <= 0:
            raise ValueError("export.interval_seconds must be > 0")
        if v.overlap_days < 0:
            raise ValueError("export.overlap_days must be >= 0")
        return v


def load_settings(config_path: Optional[str] = None) -> Settings:
    path = Path(config_path or "./configs/config.yaml")
    data: Dict[str, Any] = {}
    if path.exists():
        try:
            loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise ConfigError(f"cannot parse {path}: {exc}") from exc
        if isinstance(loaded, dict):
            data = loaded

    def deep_update(dst: Dict[str, Any], src: Dict[str, Any]) -> Dict[str, Any]:
        for k, v in src.items():
            if isinstance(v, dict) and isinstance(dst.get(k), dict):
                deep_update(dst[k], v)
            else:
                dst[k] = v
        return dst

    def env_overrides() -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        valid_roots = set(Settings.model_fields.keys())
        for key, value in os.environ.items():
            if "__" not in key:
                continue
            parts = [p.strip().lower() for p in key.split("__") if p.strip()]
            if not parts or parts[0] not in valid_roots:
                continue
            cur = out
            for part in parts[:-1]:
                nxt = cur.get(part)
                if not isinstance(nxt, dict):
                    nxt = {}
                    cur[part] = nxt
                cur = nxt
            cur[parts[-1]] = value
        return out

    merged = deep_update(data, env_overrides())
    try:
        return Settings(**merged)
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration ({path}): {exc}") from exc
