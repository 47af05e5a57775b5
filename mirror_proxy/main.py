# -*- coding: utf-8 -*-
"""
@FileName    : main.py
@Author      : jiaxin
@Date        : 2026/10/19
@Time        : 12:05
@Description :
Docker Registry 多上游镜像代理：
- 按请求域名路由到不同上游注册表（Docker Hub、quay、gcr、ghcr 等）
- 拦截 401 并将 realm 改写为本代理的 /v2/auth，由本代理中转 token 申请
- Docker Hub 官方镜像自动补全 library/ 命名空间
- 手动跟随 Docker Hub blob 的 307 重定向（客户端只看到一跳）
- 提供健康检查接口
"""
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from mirror_proxy.challenge import AuthenticateParseError
from mirror_proxy.logger import get_logger, setup_logging
from mirror_proxy.resolver import RouteTable
from mirror_proxy.router import RequestRouter
from mirror_proxy.schemas import HealthCheckResponse, MessageResponse
from mirror_proxy.settings import Settings, get_settings

VERSION = "0.1.0"
PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def create_app(settings: Settings) -> FastAPI:
    logger = setup_logging(settings)
    routes = RouteTable.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # 连接池在应用内共享，请求之间不共享任何其他状态
        async with httpx.AsyncClient(timeout=settings.upstream_timeout) as client:
            app.state.router = RequestRouter(routes, client, settings)
            yield

    app = FastAPI(
        title="Registry Mirror Proxy",
        description="Docker Registry 多上游镜像代理，支持认证中转与 Docker Hub library 补全",
        version=VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.docs.enabled else None,
        redoc_url="/redoc" if settings.docs.enabled else None,
        openapi_url="/openapi.json" if settings.docs.enabled else None,
    )

    # ======================
    # 异常处理：上游协议错误 / 网络错误 → 502
    # ======================
    @app.exception_handler(AuthenticateParseError)
    async def authenticate_parse_error_handler(request: Request, exc: AuthenticateParseError):
        logger.error(f"❌ [认证] 上游 WWW-Authenticate 头无法解析 → {exc.header}")
        return JSONResponse(
            status_code=502,
            content=MessageResponse(message="Invalid WWW-Authenticate header from upstream").model_dump()
        )

    async def upstream_error_handler(request: Request, exc: Exception):
        logger.error(f"🔥 [转发] 请求上游失败 → {request.method} {request.url} | 错误: {exc!r}", exc_info=exc)
        return JSONResponse(status_code=502, content=MessageResponse(message="Bad Gateway").model_dump())

    # StreamError（如请求体流已被消费）不属于 HTTPError，同样按上游失败处理
    app.add_exception_handler(httpx.HTTPError, upstream_error_handler)
    app.add_exception_handler(httpx.StreamError, upstream_error_handler)

    # ======================
    # 健康检查端点
    # ======================
    @app.get("/healthz", response_model=HealthCheckResponse, summary="健康检查")
    async def health_check():
        """返回服务运行状态，用于 K8s/Liveness Probe"""
        logger.debug("🩺 [健康检查] 收到探测请求")
        return HealthCheckResponse(status="ok", message="registry-proxy is running", version=VERSION)

    # ======================
    # 主代理入口：所有路径
    # ======================
    @app.api_route("/{path:path}", methods=PROXY_METHODS, summary="主代理入口", include_in_schema=False)
    async def proxy(request: Request) -> Response:
        return await request.app.state.router.handle(request)

    return app


settings = get_settings()
app = create_app(settings)
logger = get_logger()


def run():
    import uvicorn

    # 打印配置摘要
    logger.info("📚 已加载的上游注册表映射：")
    for proxy_domain, url in settings.upstreams.items():
        logger.info(f"  🌍 {proxy_domain} → {url}")
    if settings.debug:
        logger.info(f"  🐞 debug 模式，未知域名回落到 → {settings.target_upstream}")

    ssl_args = {}
    if settings.https.enabled:
        ssl_args = {
            "ssl_certfile": settings.https.cert,
            "ssl_keyfile": settings.https.key
        }
        logger.info(f"🔒 启动 HTTPS 代理服务 → https://{settings.listen.host}:{settings.listen.port}")
    else:
        logger.info(f"🔌 启动 HTTP 代理服务 → http://{settings.listen.host}:{settings.listen.port}")

    uvicorn.run(
        app,
        host=settings.listen.host,
        port=settings.listen.port,
        proxy_headers=True,
        forwarded_allow_ips=settings.listen.forwarded_allow_ips,
        reload=False,
        log_config=None,  # 沿用 setup_logging 的配置
        **ssl_args
    )


if __name__ == "__main__":
    run()
