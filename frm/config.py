"""
frm — Centralized configuration.

Two layers:

* process settings (config directory, log level, network timeout) come from
  the environment, with a .env file in the working directory or the project
  root loaded first;
* the account list lives in ``config.json`` inside the config directory.

Nothing here is a module-level singleton: callers load what they need and
pass it on explicitly.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Literal
from urllib.parse import urlparse

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError, field_validator, model_validator

from frm.core.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.json"

# .env from project root (one level up from frm/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"


class Settings(BaseModel):
    """Process settings loaded from environment variables."""

    # Directory holding config.json and log.jsonl
    CONFIG_DIR: Path = Path.home() / ".frm"

    # Root log level for the CLI (DEBUG, INFO, WARNING, ...)
    LOG_LEVEL: str = "WARNING"

    # Per-request timeout for CardDAV and JMAP calls
    TIMEOUT_SECONDS: float = 30.0

    @field_validator("CONFIG_DIR", mode="before")
    @classmethod
    def expand_dir(cls, v: str | Path) -> Path:
        return Path(v).expanduser()

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        level = str(v).strip().upper() or "WARNING"
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log level {v!r}")
        return level

    @field_validator("TIMEOUT_SECONDS", mode="before")
    @classmethod
    def parse_timeout(cls, v: str | float) -> float:
        return float(v)

    @property
    def config_path(self) -> Path:
        return self.CONFIG_DIR / CONFIG_FILE_NAME


def load_settings() -> Settings:
    """Load settings from the environment (after .env)."""
    load_dotenv()
    load_dotenv(_ENV_PATH)

    values: dict[str, str] = {}
    for key in ("CONFIG_DIR", "LOG_LEVEL", "TIMEOUT_SECONDS"):
        raw = os.getenv(f"FRM_{key}", "")
        if raw:
            values[key] = raw
    try:
        return Settings(**values)
    except ValidationError as exc:
        raise ConfigError(f"invalid FRM_* environment settings: {exc}") from exc


# ---------------------------------------------------------------------------
# config.json — account list
# ---------------------------------------------------------------------------


class ServiceConfig(BaseModel):
    """One configured remote service.

    JSON examples:
    {"type": "carddav", "endpoint": "https://dav.example.com/",
     "username": "me", "password": "secret"}
    {"type": "jmap", "session_endpoint": "https://api.example.com/jmap/session",
     "token": "...", "max_results": 3}
    """

    type: Literal["carddav", "jmap"]
    name: str = ""

    # CardDAV
    endpoint: str = ""
    username: str = ""
    password: str = ""

    # JMAP
    session_endpoint: str = ""
    token: str = ""
    max_results: int = 3

    @field_validator("type", mode="before")
    @classmethod
    def lower_type(cls, v: str) -> str:
        return str(v).strip().lower()

    @model_validator(mode="after")
    def check_required(self) -> ServiceConfig:
        if self.type == "carddav":
            missing = [k for k in ("endpoint", "username", "password") if not getattr(self, k)]
        else:
            missing = [k for k in ("session_endpoint", "token") if not getattr(self, k)]
        if missing:
            raise ValueError(f"{self.type} service is missing {', '.join(missing)}")
        if self.max_results <= 0:
            self.max_results = 3
        return self

    @property
    def display_name(self) -> str:
        """Label used for this account in messages."""
        if self.name:
            return self.name
        url = self.endpoint if self.type == "carddav" else self.session_endpoint
        host = urlparse(url).hostname or url
        if self.type == "carddav":
            return f"{self.username}@{host}"
        return host


class AppConfig(BaseModel):
    """Contents of config.json."""

    services: list[ServiceConfig] = []

    @model_validator(mode="before")
    @classmethod
    def accept_legacy(cls, data: object) -> object:
        # Older files hold a single CardDAV account at the top level.
        if isinstance(data, dict) and "services" not in data and "endpoint" in data:
            return {
                "services": [{
                    "type": "carddav",
                    "endpoint": data.get("endpoint", ""),
                    "username": data.get("username", ""),
                    "password": data.get("password", ""),
                }]
            }
        return data

    def carddav_services(self) -> list[ServiceConfig]:
        return [s for s in self.services if s.type == "carddav"]

    def jmap_services(self) -> list[ServiceConfig]:
        return [s for s in self.services if s.type == "jmap"]


def load_config(config_dir: str | Path) -> AppConfig:
    """Read and validate ``config.json`` from ``config_dir``."""
    path = Path(config_dir) / CONFIG_FILE_NAME
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(
            f"cannot read config file {path}: {exc}\n"
            "Create it with your CardDAV credentials."
        ) from exc

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"invalid config JSON in {path}: {exc}") from exc

    try:
        cfg = AppConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"invalid config in {path}: {exc}") from exc

    if not cfg.carddav_services():
        raise ConfigError(f"no CardDAV services configured in {path}")

    logger.debug(
        "Loaded %d service(s) from %s", len(cfg.services), path,
    )
    return cfg
