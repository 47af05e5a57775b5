# -*- coding: utf-8 -*-
"""
@FileName    : resolver.py
@Author      : jiaxin
@Date        : 2026/10/19
@Time        : 10:20
@Description :
域名 → 上游注册表映射表。启动时由配置构建一次，请求期间只读。
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

from mirror_proxy.settings import Settings, DOCKER_HUB


@dataclass(frozen=True)
class RouteTable:
    routes: Mapping[str, str] = field(default_factory=dict)
    primary_upstream: str = DOCKER_HUB
    mirror_marker: str = "mirrors."
    debug: bool = False
    fallback_upstream: Optional[str] = None

    def __post_init__(self):
        # 冻结映射，防止请求处理过程中被修改
        object.__setattr__(self, "routes", MappingProxyType(dict(self.routes)))

    @classmethod
    def from_settings(cls, settings: Settings) -> "RouteTable":
        return cls(
            routes=settings.upstreams,
            primary_upstream=settings.primary_upstream,
            mirror_marker=settings.mirror_marker,
            debug=settings.debug,
            fallback_upstream=settings.target_upstream,
        )

    def resolve(self, host: Optional[str]) -> Optional[str]:
        """
        根据请求域名查找上游地址：
        - 命中映射表 → 返回上游 base url
        - 未命中且处于 debug 模式 → 返回 fallback 上游
        - 否则返回 None（未知域名）
        """
        if host and host.lower() in self.routes:
            return self.routes[host.lower()]
        if self.debug:
            return self.fallback_upstream
        return None

    def is_primary(self, upstream: Optional[str]) -> bool:
        return upstream is not None and upstream == self.primary_upstream

    def is_mirror_host(self, host: Optional[str]) -> bool:
        """镜像域名按命名约定识别（域名中包含 mirror_marker）"""
        return bool(host) and bool(self.mirror_marker) and self.mirror_marker in host.lower()

    def as_dict(self) -> dict[str, str]:
        return dict(self.routes)
