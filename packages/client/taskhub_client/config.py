"""
Configuration loading and validation.

Loads client configuration from a YAML file. Passwords are never stored in
config files; the CLI reads them from the environment variable named here.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator


class LoggingConfig(BaseModel):
    level: str = "info"
    format: Literal["json", "text"] = "json"


class ClientConfig(BaseModel):
    base_url: str = "http://localhost:8000"
    verify_tls: bool = True
    request_timeout_seconds: int = 30
    refresh_path: str = "/auth/login/access-token"
    email: str | None = None
    password_env: str = "TASKHUB_PASSWORD"
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def password(self) -> str | None:
        return os.environ.get(self.password_env)


def load_config(path: str | Path) -> ClientConfig:
    """Load and validate client configuration from a YAML file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    return ClientConfig.model_validate(raw)
