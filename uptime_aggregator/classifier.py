"""
状态判定

基于最近的 tick 切片（最多 100 条）计算：
- uptime_pct: up tick 占比（百分比，保留 2 位小数）
- avg_latency_ms: up 且延迟 > 0 的 tick 平均延迟（取整）
- last_checked_at: 最后一条 tick 的时间
- status: down / degraded / up
"""

import math
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from pydantic import BaseModel

from .aggregator import WINDOW_COUNT, WINDOW_SIZE, aggregate_windows
from .models import DerivedStatusView, SiteStatus, StatusSummary, Tick, Website, utc_now
from .utils import display_name, recent_slice, round_half_up

TICK_SLICE_SIZE = 100
LATENCY_DEGRADED_MS = 1000
UPTIME_DEGRADED_PCT = 98


class Classification(BaseModel):
    """状态判定结果"""
    status: SiteStatus
    uptime_pct: float
    avg_latency_ms: int
    last_checked_at: datetime


def _valid_latency(tick: Tick) -> bool:
    # 负数、NaN、无穷大、缺失值都不参与平均
    latency = tick.latency
    return latency is not None and math.isfinite(latency) and latency > 0


def _mean(values: Sequence[float]) -> float:
    # 先除以 n 再求和，结果不超过最大的一项
    if not values:
        return 0.0
    n = len(values)
    mean = math.fsum(v / n for v in values)
    return mean if math.isfinite(mean) else 0.0


def classify(
    ticks: Sequence[Tick],
    now: Optional[datetime] = None,
    latency_threshold_ms: float = LATENCY_DEGRADED_MS,
    uptime_threshold_pct: float = UPTIME_DEGRADED_PCT
) -> Classification:
    """
    判定当前状态

    Args:
        ticks: 按时间排序的 tick 切片（调用方负责截取最近 100 条）
        now: 调用时间；切片为空时作为 last_checked_at
        latency_threshold_ms: 平均延迟超过该值判定为 degraded
        uptime_threshold_pct: 可用率低于该值判定为 degraded

    Returns:
        Classification

    判定顺序：
    1. 切片为空或最后一条 tick 为 down → down
    2. 平均延迟 > 阈值 或 可用率 < 阈值 → degraded
    3. 否则 up
    """
    if now is None:
        now = utc_now()

    total = len(ticks)
    up_count = sum(1 for t in ticks if t.status == "up")
    uptime = (up_count / total) * 100 if total else 0.0

    latencies = [t.latency for t in ticks if t.status == "up" and _valid_latency(t)]
    avg_latency = _mean(latencies)

    last_tick = ticks[-1] if ticks else None

    if last_tick is None or last_tick.status == "down":
        status = "down"
    elif avg_latency > latency_threshold_ms or uptime < uptime_threshold_pct:
        status = "degraded"
    else:
        status = "up"

    return Classification(
        status=status,
        uptime_pct=round_half_up(uptime, 2),
        avg_latency_ms=int(round_half_up(avg_latency)),
        last_checked_at=last_tick.created_at if last_tick else now,
    )


def derive_view(
    website: Website,
    now: Optional[datetime] = None,
    slice_size: int = TICK_SLICE_SIZE,
    window_size: timedelta = WINDOW_SIZE,
    window_count: int = WINDOW_COUNT,
    latency_threshold_ms: float = LATENCY_DEGRADED_MS,
    uptime_threshold_pct: float = UPTIME_DEGRADED_PCT
) -> DerivedStatusView:
    """
    计算单个网站的派生视图

    只取最近 slice_size 条 tick，更早的 tick 不影响结果。
    """
    if now is None:
        now = utc_now()

    ticks = recent_slice(website.ticks, slice_size)
    windows = aggregate_windows(ticks, now, window_size, window_count)
    result = classify(ticks, now, latency_threshold_ms, uptime_threshold_pct)

    return DerivedStatusView(
        id=website.id,
        name=display_name(website.url, website.name),
        url=website.url,
        status=result.status,
        uptime_pct=result.uptime_pct,
        avg_latency_ms=result.avg_latency_ms,
        last_checked_at=result.last_checked_at,
        windows=windows,
    )


def derive_views(websites: Iterable[Website], now: Optional[datetime] = None, **params) -> Dict[str, DerivedStatusView]:
    """计算所有网站的派生视图（同一个 now）"""
    if now is None:
        now = utc_now()
    return {w.id: derive_view(w, now, **params) for w in websites}


def summarize(views: Iterable[DerivedStatusView]) -> StatusSummary:
    """按状态统计网站数量"""
    counts: Dict[str, int] = {"up": 0, "down": 0, "degraded": 0}
    statuses: List[str] = [v.status for v in views]
    for status in statuses:
        counts[status] += 1
    return StatusSummary(total=len(statuses), **counts)
