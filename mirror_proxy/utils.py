# -*- coding: utf-8 -*-
"""
@FileName    : utils.py
@Author      : jiaxin
@Date        : 2026/10/19
@Time        : 10:40
@Description :
工具函数模块，包含：
- 请求/响应头处理
- 流式发起上游请求
- 流式透传上游响应
"""

from mirror_proxy.logger import get_logger
from typing import AsyncIterable, Iterable, Optional, Union
import httpx
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask
from starlette.datastructures import Headers

logger = get_logger()

# 逐跳头，不允许跨代理转发
HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "proxy-connection",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
})

# 转发到上游时额外去除 host（httpx 自动按目标地址设置）
REQUEST_EXCLUDED_HEADERS = HOP_BY_HOP_HEADERS | {"host"}


# ======================
# 请求头处理：合并重复头 + 去除逐跳头
# ======================
def handle_headers(
        headers: Union[Headers, httpx.Headers],
        exclude: Iterable[str] = HOP_BY_HOP_HEADERS
) -> dict[str, str]:
    """
    将 Starlette / httpx 的 Headers 转换为标准 dict，并：
    - 合并重复的 header → 用逗号连接（符合 RFC）
    - 去除 exclude 中列出的 header
    - 所有 header key 转为小写（HTTP 规范不区分大小写）

    注意：响应体使用 aiter_raw 原样透传，因此保留 content-encoding / content-length。
    """
    excluded = {name.lower() for name in exclude}
    header_dict: dict[str, str] = {}

    for key, value in headers.raw:
        key_str = key.decode("latin-1").lower()
        val_str = value.decode("latin-1")
        if key_str in excluded:
            continue
        elif key_str in header_dict:
            header_dict[key_str] = f"{header_dict[key_str]},{val_str}"
        else:
            header_dict[key_str] = val_str
    return header_dict


def forward_headers(headers: Headers) -> dict[str, str]:
    """客户端请求头 → 上游请求头"""
    return handle_headers(headers, exclude=REQUEST_EXCLUDED_HEADERS)


# ======================
# 发起上游请求（流式，不缓冲响应体）
# ======================
async def send_streaming(
        client: httpx.AsyncClient,
        method: str,
        url: Union[str, httpx.URL],
        headers: Optional[dict[str, str]] = None,
        content: Optional[AsyncIterable[bytes]] = None,
        follow_redirects: bool = True
) -> httpx.Response:
    """
    以 stream 模式发起请求，调用方负责 relay_response 透传或 aclose 关闭。
    网络异常（httpx.HTTPError）直接上抛，不做重试。
    """
    request = client.build_request(method, url, headers=headers, content=content)
    logger.debug(f"➡️ [上游] {method} {url} | follow_redirects={follow_redirects}")
    response = await client.send(request, stream=True, follow_redirects=follow_redirects)
    logger.debug(f"📡 [上游] {method} {url} → Status: {response.status_code}")
    return response


# ======================
# 透传上游响应：状态码 + 响应头 + 原始字节流
# ======================
def relay_response(upstream_resp: httpx.Response) -> StreamingResponse:
    """响应体逐块透传，客户端接收完毕后在后台关闭上游连接"""
    return StreamingResponse(
        upstream_resp.aiter_raw(),
        status_code=upstream_resp.status_code,
        headers=handle_headers(upstream_resp.headers),
        background=BackgroundTask(upstream_resp.aclose),
    )
