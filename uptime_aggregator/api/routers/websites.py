"""
网站管理 API

提供网站的创建、查询、停用，以及上游探测器的 tick 上报。
"""

import logging
import sqlite3
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, status

from ...config import get_config
from ...database import Database
from ...errors import InvalidURLError
from ...models import TickCreate, WebsiteCreate, WebsiteCreated, WebsiteResponse
from ...utils import validate_url
from ..dependencies import get_current_user, get_database

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/websites", tags=["websites"])


def to_response(website: Dict[str, Any]) -> WebsiteResponse:
    """数据库记录转为响应模型"""
    return WebsiteResponse(
        id=website["id"],
        url=website["url"],
        name=website.get("name"),
        disabled=bool(website.get("disabled")),
        created_at=website.get("created_at"),
        ticks=website.get("ticks", []),
    )


@router.get("", response_model=List[WebsiteResponse])
async def list_websites(
    user_id: str = Depends(get_current_user),
    db: Database = Depends(get_database)
):
    """
    获取当前用户所有未停用的网站

    每个网站内嵌最近 api.max_ticks 条 tick（按时间升序）。
    """
    config = get_config()
    websites = db.get_websites_with_ticks(user_id, config.api.max_ticks)
    return [to_response(w) for w in websites]


@router.post("", response_model=WebsiteCreated)
async def create_website(
    data: WebsiteCreate,
    user_id: str = Depends(get_current_user),
    db: Database = Depends(get_database)
):
    """
    添加网站

    同一用户下未停用的 URL 不允许重复。
    """
    try:
        url = validate_url(data.url)
    except InvalidURLError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e)
        )

    if db.find_active_website(user_id, url):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Website '{url}' already exists"
        )

    name = data.name.strip() if data.name and data.name.strip() else None
    try:
        website_id = db.create_website(user_id, url, name)
    except sqlite3.IntegrityError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Website '{url}' already exists"
        )

    logger.info(f"Created website: {url} (id={website_id}, user={user_id})")

    return WebsiteCreated(id=website_id)


@router.get("/{website_id}", response_model=WebsiteResponse)
async def get_website(
    website_id: str,
    user_id: str = Depends(get_current_user),
    db: Database = Depends(get_database)
):
    """获取单个网站及其最近的 tick"""
    website = db.get_website(website_id, user_id)
    if not website:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Website {website_id} not found"
        )

    config = get_config()
    website["ticks"] = db.get_recent_ticks(website_id, config.api.max_ticks)
    return to_response(website)


@router.delete("/{website_id}")
async def delete_website(
    website_id: str,
    user_id: str = Depends(get_current_user),
    db: Database = Depends(get_database)
):
    """停用网站（软删除）"""
    if not db.disable_website(website_id, user_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Website {website_id} not found"
        )

    logger.info(f"Disabled website {website_id}")

    return {"message": "Deleted Website Successfully!"}


@router.post("/{website_id}/ticks", status_code=status.HTTP_201_CREATED)
async def record_tick(
    website_id: str,
    data: TickCreate,
    user_id: str = Depends(get_current_user),
    db: Database = Depends(get_database)
):
    """上报一次探测结果（只追加）"""
    website = db.get_website(website_id, user_id)
    if not website or website["disabled"]:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Website {website_id} not found"
        )

    tick_id = db.save_tick(website_id, data.status, data.latency, data.created_at)
    return {"id": tick_id}
