from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator


class SearchDefaults(BaseModel):
    default_origin_city: str = Field(default="Erfurt", min_length=1)
    default_destination_city: str = Field(default="Leipzig", min_length=1)
    default_return_delay_hours: int = Field(default=4, gt=0)


class Settings(BaseModel):
    db_url: str = "sqlite:///./data/trips.db"
    search: SearchDefaults = Field(default_factory=SearchDefaults)
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.upper()


def _load_yaml(path: Optional[Path]) -> dict:
    if not path:
        return {}
    if not Path(path).exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with Path(path).open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError("Config root must be a mapping")
    return raw


def _env_override(config: dict) -> dict:
    # Environment variables take precedence; prefix BTF_
    # Supported:
    # BTF_DB_URL, BTF_LOG_LEVEL, BTF_DEFAULT_ORIGIN_CITY,
    # BTF_DEFAULT_DESTINATION_CITY, BTF_DEFAULT_RETURN_DELAY_HOURS
    out = dict(config)
    db_url = os.environ.get("BTF_DB_URL")
    if db_url:
        out["db_url"] = db_url
    log = os.environ.get("BTF_LOG_LEVEL")
    if log:
        out["log_level"] = log

    search = dict(out.get("search") or {})
    origin = os.environ.get("BTF_DEFAULT_ORIGIN_CITY")
    if origin:
        search["default_origin_city"] = origin
    destination = os.environ.get("BTF_DEFAULT_DESTINATION_CITY")
    if destination:
        search["default_destination_city"] = destination
    delay = os.environ.get("BTF_DEFAULT_RETURN_DELAY_HOURS")
    if delay and delay.isdigit():
        search["default_return_delay_hours"] = int(delay)
    if search:
        out["search"] = search
    return out


def load_settings(config_path: Optional[Path] = None) -> Settings:
    base = _load_yaml(config_path)
    merged = _env_override(base)
    return Settings(**merged)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
