"""
File: app/main.py
Description: FastAPI 应用入口与工厂函数

本模块负责：
1. 创建 FastAPI 应用实例 (设置默认响应类为 ORJSONResponse)
2. 管理应用生命周期 (lifespan): 启动日志、预解析注册后置钩子、关闭数据库连接
3. 组装全局组件：中间件、异常处理器、路由
4. 提供健康检查接口 (/health)

Author: jinmozhe
Created: 2025-12-05
Updated: 2026-10-18 (Social identity service)
"""

import asyncio
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

# ------------------------------------------------------------------------------
# [Fix for Windows] 解决 Windows 下 asyncpg 连接重置/关闭的 Bug
# 必须在任何 asyncio 循环启动前执行 (放在顶部)
# ------------------------------------------------------------------------------
if sys.platform == "win32":
    # asyncpg 在 Windows 下必须使用 SelectorEventLoop
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


from fastapi import FastAPI
from fastapi.responses import ORJSONResponse

from app.api_router import api_router
from app.core.config import settings
from app.core.exceptions import register_exception_handlers
from app.core.logging import logger, setup_logging
from app.core.middleware import register_middlewares
from app.core.response import ResponseModel
from app.db.session import close_engine
from app.domains.social_auth.dependencies import get_post_registration_dispatcher


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    应用生命周期管理器。
    """
    # 1. 启动时：初始化日志系统
    setup_logging()

    # 2. 启动时：解析注册后置钩子，配置错误在此处即可在日志中看到
    dispatcher = get_post_registration_dispatcher()
    logger.bind(
        enabled_providers=settings.SOCIAL_AUTH.enabled_providers,
        auto_register=settings.SOCIAL_AUTH.auto_register,
        post_registration=dispatcher.enabled,
    ).info("Social identity service started")

    yield

    # 3. 关闭时：释放数据库连接池
    await close_engine()


def create_app() -> FastAPI:
    """应用工厂函数"""

    app = FastAPI(
        title=settings.PROJECT_NAME,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        # 强制默认响应类为 ORJSONResponse (高性能)
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    # 1. 注册中间件 (CORS, RequestID, Logging)
    register_middlewares(app)

    # 2. 注册异常处理器
    register_exception_handlers(app)

    # 3. 挂载 API 路由
    app.include_router(api_router, prefix=settings.API_V1_STR)

    # 4. 挂载健康检查
    @app.get("/health", tags=["health"], summary="健康检查")
    async def health_check() -> dict[str, str]:
        """
        健康检查接口。
        用于 K8s Liveness/Readiness Probe，返回裸结构，不使用统一响应信封。
        """
        return {"status": "ok"}

    # 5. 根路由 (Root Endpoint)
    @app.get(
        "/",
        tags=["root"],
        summary="系统入口",
        description="返回系统欢迎信息及关键入口链接。",
        response_model=ResponseModel[dict[str, str]],
    )
    async def root():
        return ResponseModel.success(
            message=f"Welcome to {settings.PROJECT_NAME}",
            data={
                "status": "running",
                "docs_url": "/docs",
                "health_url": "/health",
            },
        )

    return app


# 暴露给 Uvicorn 运行的应用实例
app = create_app()

if __name__ == "__main__":
    # 本地调试入口
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
