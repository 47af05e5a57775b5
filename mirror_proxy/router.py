# -*- coding: utf-8 -*-
"""
@FileName    : router.py
@Author      : jiaxin
@Date        : 2026/10/19
@Time        : 11:30
@Description :
请求路由：按优先级依次匹配规则，命中的第一条规则负责生成响应。

    mirror-login      镜像域名携带 Authorization → 403
    root              /                          → 301 /v2/
    unknown-host      未知域名                    → 404 + 路由表
    probe             /v2/                       → 探活，401 时改写 realm
    token             /v2/auth                   → 向上游 realm 换取 token
    library-redirect  Docker Hub 官方镜像短路径   → 301 补全 library/
    forward           其他                        → 转发；Docker Hub 的 307 手动跟随
"""
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional
from urllib.parse import urljoin

import httpx
from fastapi import Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from mirror_proxy.challenge import fetch_token, parse_authenticate, unauthorized_response
from mirror_proxy.logger import get_logger
from mirror_proxy.normalize import normalize_path, normalize_scope
from mirror_proxy.resolver import RouteTable
from mirror_proxy.schemas import MessageResponse, RoutesResponse
from mirror_proxy.settings import Settings
from mirror_proxy.utils import forward_headers, relay_response, send_streaming

logger = get_logger()

MIRROR_LOGIN_DISABLED = "Login via this mirror is disabled. Please login to the original registry directly."
BODYLESS_METHODS = ("GET", "HEAD")


@dataclass(frozen=True)
class RouteContext:
    """规则匹配所需的请求摘要，upstream 在构建时解析一次"""
    host: str
    path: str
    authorization: Optional[str]
    upstream: Optional[str]
    is_primary: bool
    is_mirror: bool

    @classmethod
    def build(cls, request: Request, routes: RouteTable) -> "RouteContext":
        host = request.url.hostname or ""
        upstream = routes.resolve(host)
        return cls(
            host=host,
            path=request.url.path,
            authorization=request.headers.get("authorization"),
            upstream=upstream,
            is_primary=routes.is_primary(upstream),
            is_mirror=routes.is_mirror_host(host),
        )


# ======================
# 规则判定（纯函数）
# ======================
def is_mirror_login(ctx: RouteContext) -> bool:
    return ctx.is_mirror and bool(ctx.authorization)


def is_root(ctx: RouteContext) -> bool:
    return ctx.path == "/"


def is_unknown_host(ctx: RouteContext) -> bool:
    return ctx.upstream is None


def is_probe(ctx: RouteContext) -> bool:
    return ctx.path == "/v2/"


def is_token(ctx: RouteContext) -> bool:
    return ctx.path == "/v2/auth"


def needs_library_redirect(ctx: RouteContext) -> bool:
    return normalize_path(ctx.path, ctx.is_primary) != ctx.path


def always(ctx: RouteContext) -> bool:
    return True


class RequestRouter:
    """
    持有只读路由表与共享 httpx 客户端，无请求间可变状态。
    每个请求最多依次发起三次上游调用，互相依赖，不并行、不重试。
    """

    def __init__(self, routes: RouteTable, client: httpx.AsyncClient, settings: Settings):
        self.routes = routes
        self.client = client
        self.debug = settings.debug
        self.service_name = settings.service_name
        self.expose_routes = settings.expose_routes

    async def handle(self, request: Request) -> Response:
        ctx = RouteContext.build(request, self.routes)
        rule = select_rule(ctx)
        logger.info(f"🧭 [路由] {request.method} {ctx.host}{ctx.path} → 规则: {rule.name} | upstream: {ctx.upstream}")
        return await rule.handler(self, ctx, request)

    def _unauthorized(self, request: Request) -> Response:
        return unauthorized_response(request.url, self.debug, self.service_name)

    # ======================
    # 1. 镜像域名禁止登录
    # ======================
    async def reject_mirror_login(self, ctx: RouteContext, request: Request) -> Response:
        logger.warning(f"🚫 [路由] 镜像域名携带 Authorization → 拒绝 | Host: {ctx.host}")
        return JSONResponse(status_code=403, content=MessageResponse(message=MIRROR_LOGIN_DISABLED).model_dump())

    # ======================
    # 2. 根路径跳转
    # ======================
    async def redirect_root(self, ctx: RouteContext, request: Request) -> Response:
        return RedirectResponse(f"{request.url.scheme}://{request.url.netloc}/v2/", status_code=301)

    # ======================
    # 3. 未知域名
    # ======================
    async def unknown_host(self, ctx: RouteContext, request: Request) -> Response:
        logger.warning(f"🌐 [路由] 收到未知域名请求 → Host: {ctx.host}")
        if not self.expose_routes:
            return JSONResponse(status_code=404, content=MessageResponse(message="Unknown registry host").model_dump())
        return JSONResponse(status_code=404, content=RoutesResponse(routes=self.routes.as_dict()).model_dump())

    # ======================
    # 4. /v2/ 探活
    # ======================
    async def probe(self, ctx: RouteContext, request: Request) -> Response:
        headers = {}
        if ctx.authorization:
            headers["Authorization"] = ctx.authorization
        resp = await send_streaming(self.client, "GET", f"{ctx.upstream}/v2/", headers=headers)
        if resp.status_code == 401:
            # 上游 challenge 指向其自身 realm，替换为本代理的 /v2/auth
            await resp.aclose()
            return self._unauthorized(request)
        return relay_response(resp)

    # ======================
    # 5. /v2/auth 换取 token
    # ======================
    async def token(self, ctx: RouteContext, request: Request) -> Response:
        resp = await send_streaming(self.client, "GET", f"{ctx.upstream}/v2/")
        if resp.status_code != 401:
            logger.warning(f"⚠️ [认证] 上游 /v2/ 未返回 401 → 原样透传 | Status: {resp.status_code}")
            return relay_response(resp)

        authenticate = resp.headers.get("www-authenticate")
        if authenticate is None:
            logger.warning("⚠️ [认证] 上游 401 缺少 WWW-Authenticate 头 → 原样透传")
            return relay_response(resp)
        await resp.aclose()

        www_auth = parse_authenticate(authenticate)
        # 跨仓库挂载 blob 时 scope 会重复出现，取第一个
        scopes = request.query_params.getlist("scope")
        scope = scopes[0] if scopes else None
        normalized = normalize_scope(scope, ctx.is_primary)
        if normalized != scope:
            logger.info(f"🔄 [认证] scope 补全 library → {scope} => {normalized}")

        token_resp = await fetch_token(self.client, www_auth, normalized, ctx.authorization)
        logger.info(f"✅ [认证] 上游 token 接口返回状态码: {token_resp.status_code}")
        return relay_response(token_resp)

    # ======================
    # 6. Docker Hub 官方镜像 library 重定向
    # ======================
    async def redirect_library(self, ctx: RouteContext, request: Request) -> Response:
        new_path = normalize_path(ctx.path, ctx.is_primary)
        logger.info(f"🔄 [路由] 补全 library 命名空间 → {ctx.path} => {new_path}")
        return RedirectResponse(str(request.url.replace(path=new_path)), status_code=301)

    # ======================
    # 7. 通用转发 + 8. Docker Hub blob 307 手动跟随
    # ======================
    async def forward(self, ctx: RouteContext, request: Request) -> Response:
        target_url = ctx.upstream + ctx.path
        if request.url.query:
            target_url += "?" + request.url.query

        content = None
        if request.method not in BODYLESS_METHODS:
            content = request.stream()

        # Docker Hub 的 blob 会 307 到 CDN，不自动跟随，由下方手动重放；
        # 带请求体的流无法重发，其他上游的重定向也交给客户端处理
        resp = await send_streaming(
            self.client,
            request.method,
            target_url,
            headers=forward_headers(request.headers),
            content=content,
            follow_redirects=not ctx.is_primary and content is None,
        )
        logger.info(f"➡️ [转发] {request.method} {target_url} → Status: {resp.status_code}")

        if resp.status_code == 401:
            await resp.aclose()
            return self._unauthorized(request)

        if ctx.is_primary and resp.status_code == 307:
            location = resp.headers.get("location")
            if not location:
                logger.warning("🔗 [转发] 307 响应缺少 Location 头 → 返回原响应")
                return relay_response(resp)
            await resp.aclose()

            resolved_location = urljoin(target_url, location)
            logger.info(f"📦 [转发] 跟随 blob 重定向 → {resolved_location}")
            redirect_resp = await send_streaming(self.client, "GET", resolved_location)
            return relay_response(redirect_resp)

        return relay_response(resp)


@dataclass(frozen=True)
class Rule:
    name: str
    guard: Callable[[RouteContext], bool]
    handler: Callable[[RequestRouter, RouteContext, Request], Awaitable[Response]]


# 顺序即优先级
RULES: tuple[Rule, ...] = (
    Rule("mirror-login", is_mirror_login, RequestRouter.reject_mirror_login),
    Rule("root", is_root, RequestRouter.redirect_root),
    Rule("unknown-host", is_unknown_host, RequestRouter.unknown_host),
    Rule("probe", is_probe, RequestRouter.probe),
    Rule("token", is_token, RequestRouter.token),
    Rule("library-redirect", needs_library_redirect, RequestRouter.redirect_library),
    Rule("forward", always, RequestRouter.forward),
)


def select_rule(ctx: RouteContext) -> Rule:
    for rule in RULES:
        if rule.guard(ctx):
            return rule
    raise LookupError(f"no rule matched {ctx.path}")
