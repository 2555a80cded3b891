# ABOUTME: Configuration loader for the bookswap marketplace.
# ABOUTME: Pydantic sections read from an optional YAML file, with environment overrides.

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from bookswap.db.connection import DEFAULT_DB_PATH

DEFAULT_CONFIG_PATH = Path("bookswap.yaml")

# Signs tokens when no secret is configured. Fine for local use only.
DEV_SECRET_KEY = "bookswap-dev-secret-change-me-before-deploying"


class StorageConfig(BaseModel):
    """Database location."""

    db_path: Path = DEFAULT_DB_PATH


class LockConfig(BaseModel):
    """Book lock durations and expiry sweeping."""

    duration_hours: int = Field(default=48, gt=0)
    max_extensions: int = Field(default=2, ge=0)
    extension_hours: int = Field(default=24, gt=0)
    sweep_interval_seconds: float = Field(default=0, ge=0)


class MatchingConfig(BaseModel):
    """Match refresh behaviour after ledger changes."""

    background: bool = False
    workers: int = Field(default=2, gt=0)


class AuthConfig(BaseModel):
    """Bearer token signing."""

    secret_key: str = DEV_SECRET_KEY
    algorithm: str = "HS256"
    token_ttl_minutes: int = Field(default=60 * 24 * 7, gt=0)


class NotificationConfig(BaseModel):
    """Trade event delivery. No webhook URL means events are dropped."""

    webhook_url: str | None = None
    max_retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=1.0, ge=0)


class ApiConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8000


class AppConfig(BaseModel):
    """Root application configuration."""

    storage: StorageConfig = Field(default_factory=StorageConfig)
    locks: LockConfig = Field(default_factory=LockConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load configuration from a YAML file and environment variables.

    Args:
        config_path: Path to the YAML configuration file. Defaults to
            ./bookswap.yaml; a missing file means all defaults.

    Returns:
        Fully populated AppConfig instance.
    """
    load_dotenv()

    yaml_data: dict = {}
    config_file = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    if config_file.exists():
        with open(config_file) as f:
            yaml_data = yaml.safe_load(f) or {}

    config = AppConfig(**yaml_data)

    # Environment wins over the file
    if db := os.getenv("BOOKSWAP_DB"):
        config.storage.db_path = Path(db).expanduser()
    if secret := os.getenv("BOOKSWAP_SECRET_KEY"):
        config.auth.secret_key = secret
    if webhook := os.getenv("BOOKSWAP_WEBHOOK_URL"):
        config.notifications.webhook_url = webhook

    return config
