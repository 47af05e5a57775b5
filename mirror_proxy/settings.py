# -*- coding: utf-8 -*-
"""
@FileName    : settings.py
@Author      : jiaxin
@Date        : 2026/10/19
@Time        : 10:12
@Description :
配置加载：init 参数 > 环境变量 > .env > secrets > config.yaml
"""
import os
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlsplit
from pydantic import BaseModel, model_validator, field_validator, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import PydanticBaseSettingsSource
from functools import lru_cache
import yaml

DOCKER_HUB = "https://registry-1.docker.io"


def _normalize_upstream(url: str) -> str:
    """上游地址必须是 scheme://host[:port]，不带路径"""
    url = url.rstrip("/")
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValueError(f"Invalid upstream url: {url}")
    if parts.path or parts.query or parts.fragment:
        raise ValueError(f"Upstream url must not carry a path: {url}")
    return url


class ListenConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000
    forwarded_allow_ips: str = "127.0.0.1"

class DocsConfig(BaseModel):
    enabled: bool = False

class HTTPSConfig(BaseModel):
    enabled: bool = False
    cert: Optional[str] = None
    key: Optional[str] = None

    @model_validator(mode='after')
    def validate_cert_and_key_if_enabled(self):
        if self.enabled:
            if not self.cert or not self.key:
                raise ValueError("'https.cert' and 'https.key' are required when 'https.enabled' is true")
            if not Path(self.cert).exists():
                raise ValueError(f"Certificate file not found: {self.cert}")
            if not Path(self.key).exists():
                raise ValueError(f"Private key file not found: {self.key}")
        return self


class YamlSettingsSource(PydanticBaseSettingsSource):
    def get_field_value(self, field_name: str, field: Any) -> tuple[Any, str, bool]:
        return None, "", False

    def __call__(self) -> Dict[str, Any]:
        config_file = os.getenv("CONFIG_FILE", "config.yaml")
        if Path(config_file).exists():
            with open(config_file, "r", encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        return {}


class Settings(BaseSettings):
    listen: ListenConfig = Field(default_factory=ListenConfig)
    docs: DocsConfig = Field(default_factory=DocsConfig)
    https: HTTPSConfig = Field(default_factory=HTTPSConfig)
    upstreams: Dict[str, str] = Field(default_factory=dict, description="hostname -> upstream registry")
    mode: str = "production"
    target_upstream: Optional[str] = None
    primary_upstream: str = DOCKER_HUB
    mirror_marker: str = "mirrors."
    service_name: str = "registry-proxy"
    expose_routes: bool = True
    upstream_timeout: Optional[float] = None  # 默认不设超时，由部署按需配置
    log_level: str = "INFO"

    @field_validator("upstreams")
    @classmethod
    def validate_upstreams(cls, value: Dict[str, str]) -> Dict[str, str]:
        return {host.lower(): _normalize_upstream(url) for host, url in value.items()}

    @field_validator("primary_upstream")
    @classmethod
    def validate_primary_upstream(cls, value: str) -> str:
        return _normalize_upstream(value)

    @model_validator(mode='after')
    def validate_debug_target(self):
        if self.debug:
            if not self.target_upstream:
                raise ValueError("'target_upstream' is required when 'mode' is 'debug'")
            self.target_upstream = _normalize_upstream(self.target_upstream)
        return self

    @property
    def debug(self) -> bool:
        return self.mode.lower() == "debug"

    @classmethod
    def settings_customise_sources(
            cls,
            settings_cls,
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
            YamlSettingsSource(settings_cls),
        )

    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="forbid",  # 禁止未定义字段
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
