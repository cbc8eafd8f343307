"""Configuration models and YAML loader for the price worker."""

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)


class ProxyConfig(BaseModel):
    """Outbound proxy. The password is read from the environment, never YAML."""

    host: str
    port: int = Field(default=823, ge=1, le=65535)
    username: str = ""
    password_env: str = "PROXY_PASSWORD"

    @field_validator("host")
    @classmethod
    def host_not_empty(cls, v: str) -> str:
        if not v.strip():
            msg = "proxy host must not be empty"
            raise ValueError(msg)
        return v.strip()

    @property
    def server(self) -> str:
        return f"http://{self.host}:{self.port}"

    def to_launch_option(self) -> dict[str, str]:
        """Proxy settings in the shape the browser launcher expects."""
        option = {"server": self.server}
        if self.username:
            option["username"] = self.username
            option["password"] = os.environ.get(self.password_env, "")
        return option


class BrowserConfig(BaseModel):
    """Browser process and page-context fingerprint."""

    headless: bool = True
    timeout_ms: int = Field(default=30000, ge=1000)
    navigation_timeout_ms: int = Field(default=60000, ge=1000)
    viewport_width: int = Field(default=1920, ge=320)
    viewport_height: int = Field(default=1080, ge=240)
    user_agent: str = DEFAULT_USER_AGENT
    locale: str = "ko-KR"
    timezone_id: str = "Asia/Seoul"
    cookies_path: str | None = None
    screenshots_dir: str = "data/screenshots"
    proxy: ProxyConfig | None = None


class MarketplaceConfig(BaseModel):
    """Marketplace entry point and the fixed sort/category filter."""

    base_url: str = "https://www.gmarket.co.kr"
    category_code: str = "100000076"
    max_listings: int = Field(default=5, ge=1, le=5)
    container_timeout_ms: int = Field(default=10000, ge=1000)


class WorkerConfig(BaseModel):
    """Polling, batching and retry settings."""

    poll_interval_s: float = Field(default=5.0, gt=0.0)
    concurrency: int = Field(default=1, ge=1, le=4)
    delay_min_s: float = Field(default=3.0, ge=0.0)
    delay_max_s: float = Field(default=8.0, ge=0.0)
    max_retries: int = Field(default=2, ge=0)
    # Queue writes (item result, counter) are retried with exponential backoff
    persist_attempts: int = Field(default=3, ge=1)
    persist_backoff_s: float = Field(default=1.0, ge=0.0)

    @model_validator(mode="after")
    def delay_window_ordered(self) -> "WorkerConfig":
        if self.delay_max_s < self.delay_min_s:
            msg = "delay_max_s must be greater than or equal to delay_min_s"
            raise ValueError(msg)
        return self


class RotationConfig(BaseModel):
    """When to restart the browser to reset its behavioral fingerprint."""

    restart_interval_hours: float = Field(default=24.0, gt=0.0)
    restart_after_jobs: int = Field(default=50, ge=1)
    # 0 disables search-count rotation
    restart_every_n_searches: int = Field(default=4, ge=0)


class QueueConfig(BaseModel):
    """Job queue backend."""

    backend: Literal["sqlite", "supabase"] = "sqlite"
    path: str = "data/queue.db"
    supabase_url: str | None = None
    supabase_url_env: str = "SUPABASE_URL"
    supabase_key_env: str = "SUPABASE_SERVICE_KEY"

    def resolve_supabase_url(self) -> str:
        url = self.supabase_url or os.environ.get(self.supabase_url_env, "")
        if not url:
            msg = f"Supabase URL not configured (set queue.supabase_url or ${self.supabase_url_env})"
            raise ValueError(msg)
        return url

    def resolve_supabase_key(self) -> str:
        key = os.environ.get(self.supabase_key_env, "")
        if not key:
            msg = f"Supabase key not configured (set ${self.supabase_key_env})"
            raise ValueError(msg)
        return key


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    marketplace: MarketplaceConfig = Field(default_factory=MarketplaceConfig)
    worker: WorkerConfig = Field(default_factory=WorkerConfig)
    rotation: RotationConfig = Field(default_factory=RotationConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
