"""
FastAPI 应用配置

配置 CORS、路由注册，挂载刷新协调器。
"""

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..config import get_config
from ..coordinator import RefreshCoordinator
from .routers import dashboard, websites

logger = logging.getLogger(__name__)


def create_app(coordinator: Optional[RefreshCoordinator] = None) -> FastAPI:
    """
    创建 FastAPI 应用实例

    Args:
        coordinator: 刷新协调器；不指定时仪表盘接口返回 503

    配置：
    - CORS 中间件
    - API 路由
    """
    config = get_config()

    app = FastAPI(
        title="Uptime Aggregator",
        description="网站可用性监控：tick 存储与状态聚合",
        version="1.0.0",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(websites.router)
    app.include_router(dashboard.router)

    app.state.coordinator = coordinator

    if not config.api.tokens:
        logger.warning(f"No API tokens configured, all requests run as user '{config.api.dev_user}'")

    return app
