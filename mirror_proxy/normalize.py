# -*- coding: utf-8 -*-
"""
@FileName    : normalize.py
@Author      : jiaxin
@Date        : 2026/10/19
@Time        : 10:31
@Description :
Docker Hub 官方镜像隐式 library/ 命名空间补全：
- scope:  repository:busybox:pull      => repository:library/busybox:pull
- path:   /v2/busybox/manifests/latest => /v2/library/busybox/manifests/latest
"""
from typing import Optional

LIBRARY_NAMESPACE = "library"


def normalize_scope(scope: Optional[str], is_primary: bool) -> Optional[str]:
    """仅当 scope 恰好为 type:name:action 三段且 name 不含 '/' 时补全"""
    if not scope or not is_primary:
        return scope
    parts = scope.split(":")
    if len(parts) != 3 or "/" in parts[1]:
        return scope
    parts[1] = f"{LIBRARY_NAMESPACE}/{parts[1]}"
    return ":".join(parts)


def normalize_path(path: str, is_primary: bool) -> str:
    """
    /v2/<name>/<kind>/<ref> 按 '/' 切分恰好 5 段时，在下标 2 处插入 library。
    返回值与入参不同说明调用方需要 301 重定向到新路径。
    """
    if not is_primary:
        return path
    parts = path.split("/")
    if len(parts) != 5:
        return path
    parts.insert(2, LIBRARY_NAMESPACE)
    return "/".join(parts)
