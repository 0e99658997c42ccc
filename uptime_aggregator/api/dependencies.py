"""
依赖注入模块

提供 FastAPI 依赖项。
"""

from typing import Optional

from fastapi import Header, HTTPException, Request, status

from ..config import get_config
from ..coordinator import RefreshCoordinator
from ..database import get_db, Database


async def get_database() -> Database:
    """获取数据库实例"""
    return get_db()


async def get_current_user(authorization: Optional[str] = Header(None)) -> str:
    """
    验证 Bearer Token 并返回用户 ID

    未配置任何 Token 时跳过验证（开发环境），所有请求视为 dev_user。
    """
    config = get_config()
    tokens = config.api.tokens

    if not tokens:
        return config.api.dev_user

    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header"
        )

    # 解析 Bearer token
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format"
        )

    user_id = tokens.get(parts[1])
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )
    return user_id


async def get_coordinator(request: Request) -> RefreshCoordinator:
    """获取挂载在应用上的刷新协调器"""
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Refresh coordinator is not running"
        )
    return coordinator
