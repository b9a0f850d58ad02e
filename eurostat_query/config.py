from __future__ import annotations

from functools import lru_cache
from typing import Dict, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from . import __version__


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or a .env file."""

    http_timeout: float = Field(default=30.0, gt=0, alias="EUROSTAT_HTTP_TIMEOUT")
    http_connect_timeout: float = Field(default=10.0, gt=0, alias="EUROSTAT_HTTP_CONNECT_TIMEOUT")
    http_keep_alive: bool = Field(default=True, alias="EUROSTAT_HTTP_KEEP_ALIVE")
    http_max_concurrency: int = Field(
        default=32,
        ge=1,
        alias="EUROSTAT_HTTP_MAX_CONCURRENCY",
        description="Upper bound of requests in flight for one scan",
    )
    http_follow_redirects: bool = Field(default=True, alias="EUROSTAT_HTTP_FOLLOW_REDIRECTS")
    http_user_agent: str = Field(
        default=f"eurostat-query/{__version__}",
        alias="EUROSTAT_HTTP_USER_AGENT",
    )
    http_proxy: Optional[str] = Field(default=None, alias="EUROSTAT_HTTP_PROXY")
    http2: bool = Field(default=False, alias="EUROSTAT_HTTP2")

    scan_batch_size: int = Field(default=2048, ge=1, alias="EUROSTAT_SCAN_BATCH_SIZE")
    debug_level: int = Field(
        default=0,
        ge=0,
        alias="EUROSTAT_DEBUG",
        description="1 or higher traces encoder rejections and issued URLs",
    )

    # "ESTAT=https://mirror/sdmx/2.1/,ECFIN=..." kept as text; parsed by endpoint_overrides
    endpoint_overrides_raw: str = Field(default="", alias="EUROSTAT_ENDPOINT_OVERRIDES")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
        populate_by_name=True,
    )

    @field_validator("http_user_agent")
    @classmethod
    def strip_user_agent(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("EUROSTAT_HTTP_USER_AGENT cannot be blank")
        return v

    @property
    def endpoint_overrides(self) -> Dict[str, str]:
        """Parse EUROSTAT_ENDPOINT_OVERRIDES into provider id -> API url."""
        overrides: Dict[str, str] = {}
        for pair in self.endpoint_overrides_raw.split(","):
            provider_id, sep, url = pair.partition("=")
            provider_id = provider_id.strip().upper()
            url = url.strip()
            if not sep or not provider_id or not url:
                continue
            if not url.endswith("/"):
                url += "/"
            overrides[provider_id] = url
        return overrides

    @property
    def debug(self) -> bool:
        return self.debug_level >= 1


@lru_cache
def get_settings() -> Settings:
    return Settings()
