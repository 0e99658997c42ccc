"""
数据模型定义

包括：
- 数据源记录（Website / Tick）
- 派生视图（Window / DerivedStatusView）
- 刷新协调器发布的状态快照
- API 请求 / 响应模型
"""

from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


TickStatus = Literal["up", "down"]
SiteStatus = Literal["up", "down", "degraded"]


def utc_now() -> datetime:
    """当前 UTC 时间（带时区）"""
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # 不带时区的时间一律按 UTC 处理
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# 数据源记录
# =============================================================================

class Tick(BaseModel):
    """一次探测结果（只读）"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    created_at: datetime = Field(alias="createdAt")
    status: TickStatus
    latency: Optional[float] = None  # 毫秒，仅 status=up 时有意义

    @field_validator("created_at")
    @classmethod
    def _normalize_created_at(cls, value: datetime) -> datetime:
        return _as_utc(value)


class Website(BaseModel):
    """被监控网站及其 tick 序列"""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    url: str
    name: Optional[str] = None
    ticks: List[Tick] = Field(default_factory=list)


# =============================================================================
# 派生视图（每次聚合重新计算，不持久化）
# =============================================================================

class Window(BaseModel):
    """固定宽度的时间窗口"""
    model_config = ConfigDict(frozen=True)

    window_start: datetime
    status: TickStatus


class DerivedStatusView(BaseModel):
    """单个网站在一次刷新中的派生状态"""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    url: str
    status: SiteStatus
    uptime_pct: float
    avg_latency_ms: int
    last_checked_at: datetime
    windows: List[Window]


class CoordinatorState(BaseModel):
    """
    刷新协调器发布的状态快照

    每次发布整体替换，调用方不会看到部分更新的视图集合。
    """
    model_config = ConfigDict(frozen=True)

    views: Dict[str, DerivedStatusView] = Field(default_factory=dict)
    error: Optional[str] = None
    loading: bool = True
    updated_at: Optional[datetime] = None


class StatusSummary(BaseModel):
    """按状态统计的网站数量"""
    total: int = 0
    up: int = 0
    down: int = 0
    degraded: int = 0


# =============================================================================
# API 请求 / 响应模型
# =============================================================================

class WebsiteCreate(BaseModel):
    """创建网站请求模型"""
    url: str
    name: Optional[str] = None


class WebsiteCreated(BaseModel):
    """创建网站响应模型"""
    id: str


class WebsiteResponse(BaseModel):
    """网站响应模型（GET /api/v1/websites）"""
    id: str
    url: str
    name: Optional[str] = None
    disabled: bool = False
    created_at: Optional[str] = None
    ticks: List[Tick] = Field(default_factory=list)


class TickCreate(BaseModel):
    """上报 tick 请求模型（上游探测器使用）"""
    status: TickStatus
    latency: Optional[float] = None
    created_at: Optional[datetime] = None


class DashboardResponse(BaseModel):
    """GET /api/dashboard 响应"""
    state: CoordinatorState
    summary: StatusSummary


class AddWebsiteResult(BaseModel):
    """POST /api/dashboard/websites 响应"""
    success: bool
    error: Optional[str] = None
