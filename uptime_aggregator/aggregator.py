"""
时间窗口聚合

将最近的 tick 切分为固定数量、等宽的时间窗口（默认 10 个 3 分钟窗口，
覆盖截至 now 的最近 30 分钟），供前端绘制状态条。

窗口状态：窗口内只要有一个 down tick 即为 down，否则为 up。
没有任何 tick 的窗口也视为 up（无证据即视为健康）。这意味着在一个
没有探测数据的窗口里，短于窗口宽度的故障不会出现在图表上。
"""

from datetime import datetime, timedelta
from typing import List, Sequence

from .models import Tick, Window

WINDOW_SIZE = timedelta(minutes=3)
WINDOW_COUNT = 10


def aggregate_windows(
    ticks: Sequence[Tick],
    now: datetime,
    window_size: timedelta = WINDOW_SIZE,
    window_count: int = WINDOW_COUNT
) -> List[Window]:
    """
    计算时间窗口

    第 i 个窗口（i 从 window_count-1 递减到 0）覆盖
    [now - (i+1)*window_size, now - i*window_size)，输出按时间从旧到新排列。
    落在整个区间之外的 tick 被忽略。

    Args:
        ticks: tick 序列（无需排序）
        now: 参考时间（带时区）
        window_size: 窗口宽度
        window_count: 窗口数量

    Returns:
        恰好 window_count 个 Window
    """
    span_start = now - window_size * window_count

    # 每个窗口是否出现过 down tick
    has_down = [False] * window_count
    for tick in ticks:
        if tick.status != "down":
            continue
        if not (span_start <= tick.created_at < now):
            continue
        index = int((tick.created_at - span_start) // window_size)
        has_down[index] = True

    return [
        Window(
            window_start=span_start + window_size * index,
            status="down" if has_down[index] else "up",
        )
        for index in range(window_count)
    ]
