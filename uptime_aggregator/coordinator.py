"""
刷新协调器

启动时以及之后每 interval 秒（默认 60s）：
1. 从数据源拉取网站及最近的 tick
2. 成功：计算所有网站的派生视图，整体替换已发布的状态
3. 失败：保留上一次成功发布的视图，只发布错误信息

聚合计算是同步的，挂起点只在数据源请求处。已发布状态只有协调器一个写者，
每次发布都整体替换，不需要加锁。
"""

import asyncio
import logging
from datetime import timedelta
from typing import Callable, Optional

from .aggregator import WINDOW_COUNT, WINDOW_SIZE
from .classifier import (
    LATENCY_DEGRADED_MS,
    TICK_SLICE_SIZE,
    UPTIME_DEGRADED_PCT,
    derive_views,
)
from .config import AggregationConfig
from .data_source import DataSource
from .errors import DataSourceTimeoutError, InvalidURLError, UptimeError
from .models import CoordinatorState, utc_now
from .utils import validate_url

logger = logging.getLogger(__name__)


class RefreshCoordinator:
    """
    轮询数据源并发布派生视图

    使用方式：
        coordinator = RefreshCoordinator(source)
        coordinator.start()
        state = coordinator.get_derived_views()
        ...
        await coordinator.stop()
    """

    def __init__(
        self,
        source: DataSource,
        interval: float = 60,
        timeout: Optional[float] = 10.0,
        aggregation: Optional[AggregationConfig] = None,
        clock: Callable = utc_now
    ):
        """
        Args:
            source: 数据源
            interval: 轮询间隔（秒）
            timeout: 单次数据源请求超时（秒），None 表示不限制
            aggregation: 窗口与阈值参数，不指定则使用默认值
            clock: 返回当前 UTC 时间的函数（测试可替换）
        """
        self.source = source
        self.interval = interval
        self.timeout = timeout
        self.clock = clock

        if aggregation is None:
            self._params = {
                "slice_size": TICK_SLICE_SIZE,
                "window_size": WINDOW_SIZE,
                "window_count": WINDOW_COUNT,
                "latency_threshold_ms": LATENCY_DEGRADED_MS,
                "uptime_threshold_pct": UPTIME_DEGRADED_PCT,
            }
        else:
            self._params = {
                "slice_size": aggregation.slice_size,
                "window_size": timedelta(minutes=aggregation.window_minutes),
                "window_count": aggregation.window_count,
                "latency_threshold_ms": aggregation.latency_degraded_ms,
                "uptime_threshold_pct": aggregation.uptime_degraded_pct,
            }

        self._state = CoordinatorState()
        self._task: Optional[asyncio.Task] = None
        self._closed = False
        # 刷新序号：较早发起的请求晚于较新的请求返回时直接丢弃
        self._started_seq = 0
        self._published_seq = 0

    # =========================================================================
    # 对外接口
    # =========================================================================

    def get_derived_views(self) -> CoordinatorState:
        """获取最近一次发布的状态快照"""
        return self._state

    async def refresh_now(self):
        """
        立即刷新一次（不等待下一个轮询周期）

        不会抛出异常：失败时保留已有视图并发布错误信息。
        """
        if self._closed:
            return

        self._started_seq += 1
        seq = self._started_seq

        try:
            websites = await self._call(self.source.list_websites())
        except UptimeError as e:
            logger.warning(f"Failed to fetch websites: {e}")
            self._publish_error(seq, str(e) or "Failed to fetch websites")
            return
        except Exception as e:
            logger.error(f"Unexpected error fetching websites: {e}", exc_info=True)
            self._publish_error(seq, str(e) or "Failed to fetch websites")
            return

        now = self.clock()
        try:
            views = derive_views(websites, now, **self._params)
        except Exception as e:
            logger.error(f"Failed to derive status views: {e}", exc_info=True)
            self._publish_error(seq, f"Failed to derive status views: {e}")
            return

        if not self._can_publish(seq):
            logger.debug(f"Discarding stale refresh #{seq}")
            return
        self._published_seq = seq
        self._state = CoordinatorState(views=views, error=None, loading=False, updated_at=now)
        logger.debug(f"Published {len(views)} views (refresh #{seq})")

    async def add_target(self, url: str, name: Optional[str] = None) -> bool:
        """
        添加被监控网站

        URL 校验失败时不发起任何请求。创建成功后立即刷新。

        Returns:
            是否添加成功（失败原因通过 get_derived_views().error 发布）
        """
        try:
            url = validate_url(url)
        except InvalidURLError as e:
            self._set_error(str(e))
            return False

        name = name.strip() if name and name.strip() else None

        try:
            website_id = await self._call(self.source.create_website(url, name))
        except UptimeError as e:
            logger.warning(f"Failed to add website {url}: {e}")
            self._set_error(str(e) or "Failed to add website")
            return False
        except Exception as e:
            logger.error(f"Unexpected error adding website {url}: {e}", exc_info=True)
            self._set_error(str(e) or "Failed to add website")
            return False

        logger.info(f"Added website {url} (id={website_id})")
        await self.refresh_now()
        return True

    # =========================================================================
    # 生命周期
    # =========================================================================

    async def run(self):
        """
        运行轮询循环

        启动时立即刷新，之后每 interval 秒刷新一次，直到被取消。
        """
        logger.info(f"Starting refresh loop (interval={self.interval}s, timeout={self.timeout}s)")
        try:
            while not self._closed:
                await self.refresh_now()
                await asyncio.sleep(self.interval)
        except asyncio.CancelledError:
            logger.info("Refresh loop cancelled")
            raise

    def start(self) -> asyncio.Task:
        """在当前事件循环中启动轮询任务"""
        if self._task is None or self._task.done():
            self._closed = False
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self):
        """
        停止轮询

        停止后，尚未返回的请求即使之后完成也不会再发布状态。
        """
        self._closed = True
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # =========================================================================
    # 内部方法
    # =========================================================================

    async def _call(self, coro):
        if self.timeout is None:
            return await coro
        try:
            return await asyncio.wait_for(coro, self.timeout)
        except asyncio.TimeoutError as e:
            raise DataSourceTimeoutError(f"Data source did not respond within {self.timeout}s") from e

    def _can_publish(self, seq: int) -> bool:
        return not self._closed and seq > self._published_seq

    def _publish_error(self, seq: int, message: str):
        # 保留已有视图，只替换错误信息
        if not self._can_publish(seq):
            return
        self._published_seq = seq
        self._set_error(message, loading=False)

    def _set_error(self, message: str, loading: Optional[bool] = None):
        if self._closed:
            return
        update = {"error": message}
        if loading is not None:
            update["loading"] = loading
        self._state = self._state.model_copy(update=update)
