from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

LogFormat = Literal["json", "console"]

DOCKER_HUB = "docker.io"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="RELEASE_",
        env_file=".env",
        extra="ignore",
    )

    config_dir: Optional[Path] = Field(default=None)
    runs_root: Path = Field(default=Path("_runs"))
    state_root: Path = Field(default=Path(".release"))
    log_level: str = Field(default="INFO")
    log_format: LogFormat = Field(default="console")

    # registry account
    registry: str = Field(default=DOCKER_HUB)
    registry_namespace: str = Field(default="")
    registry_api_url: Optional[str] = Field(default=None)
    registry_username: str = Field(default="")
    registry_password: Optional[SecretStr] = Field(default=None)
    registry_password_file: Optional[Path] = Field(default=None)

    # deployment target
    target_host: str = Field(default="")
    target_user: str = Field(default="root")
    target_port: int = Field(default=22, ge=1, le=65535)
    target_key_path: Optional[Path] = Field(default=None)
    target_remote_dir: str = Field(default="/opt/app")

    # timeouts (seconds)
    build_timeout_s: float = Field(default=1800.0, gt=0)
    push_timeout_s: float = Field(default=900.0, gt=0)
    remote_timeout_s: float = Field(default=600.0, gt=0)
    http_timeout_s: float = Field(default=30.0, gt=0)

    # retries
    publish_max_attempts: int = Field(default=3, ge=1)
    connect_max_attempts: int = Field(default=3, ge=1)
    backoff_base: float = Field(default=1.0, ge=0)
    backoff_cap: float = Field(default=8.0, ge=0)

    max_workers: int = Field(default=4, ge=1)
    tag_length: int = Field(default=12, ge=6, le=64)


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    return Settings()
