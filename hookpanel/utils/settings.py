# hookpanel/utils/settings.py
import os
from functools import lru_cache
from typing import Dict, Optional

import toml
from croniter import croniter
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

CONFIG_ENV = "HOOKPANEL_CONFIG"
ENV_PREFIX = "HOOKPANEL_"
DEFAULT_CONFIG_FILE = "hookpanel.toml"


class Settings(BaseSettings):
    """
    Process level settings for the hook panel service.

    Attributes:
        data_dir: Root directory for the database, script logs and scratch files
        database_url: SQLAlchemy URL, defaults to a SQLite file in data_dir
        log_dir: Directory for the service's own loguru sinks
        access_key: Admin bearer token, generated into data_dir when empty
        default_timeout: Seconds a run may take when nothing else is configured
        script_log_max_bytes: Size cap for each script's rolling log
        webhook_log_retention_days: Age after which audit rows are swept
        retention_cron: Crontab expression for the retention sweep
        max_body_bytes: Largest webhook body copied into the audit log
        executors: Interpreter binary overrides keyed by executor tag
    """
    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        extra="ignore",
        case_sensitive=False,
    )

    data_dir: str = "./data"
    database_url: Optional[str] = None
    log_dir: Optional[str] = None
    access_key: Optional[str] = None
    default_timeout: int = Field(60, gt=0)
    script_log_max_bytes: int = Field(1024 * 1024, gt=0)
    webhook_log_retention_days: int = Field(30, ge=0)
    retention_cron: str = "0 3 * * *"
    max_body_bytes: int = Field(10 * 1024, ge=0)
    executors: Dict[str, str] = {}

    @field_validator("retention_cron")
    @classmethod
    def check_cron(cls, value):
        if not croniter.is_valid(value):
            raise ValueError(f"Invalid cron expression: {value}")
        return value

    @classmethod
    def settings_customise_sources(
        cls, settings_cls, init_settings, env_settings, dotenv_settings, file_secret_settings
    ):
        # File values arrive as init kwargs, so the environment goes first
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite:///{os.path.join(self.data_dir, 'hook-panel.db')}"

    @property
    def service_log_dir(self) -> str:
        return self.log_dir or os.path.join(self.data_dir, "service-logs")

    @property
    def script_log_dir(self) -> str:
        return os.path.join(self.data_dir, "logs")

    @property
    def scratch_dir(self) -> str:
        return os.path.join(self.data_dir, "temp")

    @property
    def access_key_file(self) -> str:
        return os.path.join(self.data_dir, "secret.key")


def load_settings(path: Optional[str] = None) -> Settings:
    """Read the toml settings file (if any); HOOKPANEL_* variables still win over it"""
    path = path or os.environ.get(CONFIG_ENV, DEFAULT_CONFIG_FILE)
    data = {}
    if os.path.exists(path):
        with open(path, 'r') as f:
            data = toml.load(f)
    return Settings(**data)


@lru_cache()
def get_settings() -> Settings:
    return load_settings()
