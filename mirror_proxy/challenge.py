# -*- coding: utf-8 -*-
"""
@FileName    : challenge.py
@Author      : jiaxin
@Date        : 2026/10/19
@Time        : 11:02
@Description :
Bearer 认证中转：
- 解析上游 401 返回的 WWW-Authenticate 头
- 携带 service / scope 向上游 realm 换取 token
- 构造指向本代理 /v2/auth 的 401 响应
"""
from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi.responses import JSONResponse
from starlette.datastructures import URL

from mirror_proxy.logger import get_logger
from mirror_proxy.schemas import MessageResponse
from mirror_proxy.utils import send_streaming

logger = get_logger()


class AuthenticateParseError(ValueError):
    """上游 WWW-Authenticate 头格式不合法"""

    def __init__(self, header: str):
        super().__init__(f"invalid Www-Authenticate Header: {header}")
        self.header = header


@dataclass(frozen=True)
class WwwAuthenticate:
    realm: str
    service: str


def _quoted_values(header: str) -> list[str]:
    """按出现顺序提取所有 `="..."` 中的值，反斜杠转义的字符不视为结束引号"""
    values = []
    cursor = 0
    while True:
        start = header.find('="', cursor)
        if start < 0:
            return values
        pos = start + 2
        chars = []
        while pos < len(header):
            ch = header[pos]
            if ch == "\\" and pos + 1 < len(header):
                chars.append(header[pos:pos + 2])
                pos += 2
                continue
            if ch == '"':
                break
            chars.append(ch)
            pos += 1
        else:
            # 引号未闭合
            return values
        values.append("".join(chars))
        cursor = pos


def parse_authenticate(header: str) -> WwwAuthenticate:
    """
    示例：Bearer realm="https://auth.docker.io/token",service="registry.docker.io"
    取前两个引号值分别作为 realm 和 service，不足两个则抛出 AuthenticateParseError。
    """
    values = _quoted_values(header)
    if len(values) < 2:
        raise AuthenticateParseError(header)
    return WwwAuthenticate(realm=values[0], service=values[1])


# ======================
# 向上游 realm 换取 token
# ======================
async def fetch_token(
        client: httpx.AsyncClient,
        www_auth: WwwAuthenticate,
        scope: Optional[str] = None,
        authorization: Optional[str] = None
) -> httpx.Response:
    """上游返回的 token JSON（或错误）由调用方原样透传，不做解析"""
    url = httpx.URL(www_auth.realm)
    if www_auth.service:
        url = url.copy_set_param("service", www_auth.service)
    if scope:
        url = url.copy_set_param("scope", scope)

    headers = {}
    if authorization:
        headers["Authorization"] = authorization

    logger.info(f"🔐 [认证] 请求上游 token → realm: {www_auth.realm} | service: {www_auth.service} | scope: {scope}")
    return await send_streaming(client, "GET", url, headers=headers)


# ======================
# 构造 401：realm 指向本代理的 /v2/auth
# ======================
def unauthorized_response(url: URL, debug: bool, service: str) -> JSONResponse:
    if debug:
        realm = f"http://{url.netloc}/v2/auth"
    else:
        realm = f"https://{url.hostname}/v2/auth"

    logger.debug(f"🛡️ [认证] 返回 401 → realm: {realm}")
    return JSONResponse(
        status_code=401,
        content=MessageResponse(message="UNAUTHORIZED").model_dump(),
        headers={"www-authenticate": f'Bearer realm="{realm}",service="{service}"'},
    )
