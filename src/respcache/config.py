from __future__ import annotations

from typing import Annotated, Any

import orjson
from pydantic import AliasChoices, BeforeValidator, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_CONTENT_TYPES = [
    "application/json",
    "application/problem+json",
    "application/xml",
    "text/xml",
    "text/html",
    "application/xhtml+xml",
]

# Alternate option spellings accepted from config files and keyword arguments
OPTION_ALIASES = {
    "prefix": "key_prefix",
    "vary_on_headers": "vary_headers",
}


def _split_list(value: Any) -> Any:
    """Accept JSON lists or comma-separated strings for list options."""
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.startswith("["):
            return orjson.loads(stripped)
        return [part.strip() for part in stripped.split(",") if part.strip()]
    return value


StrList = Annotated[list[str], NoDecode, BeforeValidator(_split_list)]
IntList = Annotated[list[int], NoDecode, BeforeValidator(_split_list)]


class CacheSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="RESPCACHE_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    # Storage
    ttl: int = Field(default=300, ge=1)
    store: str = "memory"
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        validation_alias=AliasChoices("RESPCACHE_REDIS_URL", "REDIS_URL"),
    )
    key_prefix: str = "resp_cache:"

    # Key derivation
    vary_headers: StrList = Field(
        default_factory=lambda: ["Accept", "Accept-Language", "X-Locale"]
    )
    vary_on_cookies: StrList = Field(default_factory=list)
    include_query_params: StrList = Field(default_factory=list)
    ignore_query_params: StrList = Field(default_factory=list)
    include_ip: bool = False

    # Cacheability
    guest_only: bool = True
    status_whitelist: IntList = Field(default_factory=lambda: [200])
    max_payload_kb: float | None = Field(default=None, ge=0)
    restrict_content_types: bool = False
    content_types: StrList = Field(default_factory=lambda: list(DEFAULT_CONTENT_TYPES))
    etag: bool = True
    cache_header: str = "X-Cache"

    # Route index
    index_limit: int = Field(default=1000, ge=1)

    # Single-flight locking (lock_seconds=0 disables)
    lock_seconds: int = Field(default=0, ge=0)
    lock_wait: float = Field(default=10, ge=0)

    # Observability
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = False

    @model_validator(mode="before")
    @classmethod
    def _apply_aliases(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        for alias, name in OPTION_ALIASES.items():
            if alias in data and name not in data:
                data[name] = data.pop(alias)
        return data

    @field_validator("status_whitelist")
    @classmethod
    def _check_statuses(cls, value: list[int]) -> list[int]:
        for status in value:
            if not 100 <= status <= 599:
                raise ValueError(f"Invalid HTTP status in status_whitelist: {status}")
        return value

    @property
    def locking_enabled(self) -> bool:
        return self.lock_seconds > 0


settings = CacheSettings()
