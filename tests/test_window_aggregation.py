"""
单元测试：时间窗口聚合

测试覆盖：
- 窗口数量、宽度、顺序
- 窗口状态（有 down 即 down，空窗口为 up）
- 区间边界与区间外 tick
"""

from datetime import datetime, timedelta, timezone

import sys
from pathlib import Path

# 添加项目路径到 sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))

from uptime_aggregator.aggregator import WINDOW_COUNT, WINDOW_SIZE, aggregate_windows
from uptime_aggregator.models import Tick

NOW = datetime(2026, 1, 20, 12, 0, 0, tzinfo=timezone.utc)


def make_tick(minutes_ago: float, status: str = "up", latency: float = 100.0, tick_id: str = None) -> Tick:
    created_at = NOW - timedelta(minutes=minutes_ago)
    return Tick(
        id=tick_id or f"t-{minutes_ago}-{status}",
        created_at=created_at,
        status=status,
        latency=latency,
    )


class TestWindowShape:
    """窗口形状测试"""

    def test_empty_ticks_give_ten_up_windows(self):
        """测试：无 tick 时返回 10 个 up 窗口"""
        windows = aggregate_windows([], NOW)

        assert len(windows) == WINDOW_COUNT == 10
        assert all(w.status == "up" for w in windows)

    def test_windows_are_contiguous_oldest_first(self):
        """测试：窗口从旧到新、首尾相接、覆盖截至 now 的 30 分钟"""
        windows = aggregate_windows([make_tick(1)], NOW)

        assert windows[0].window_start == NOW - timedelta(minutes=30)
        assert windows[-1].window_start == NOW - timedelta(minutes=3)
        for prev, cur in zip(windows, windows[1:]):
            assert cur.window_start - prev.window_start == WINDOW_SIZE

    def test_window_count_independent_of_tick_count(self):
        """测试：tick 数量不影响窗口数量"""
        ticks = [make_tick(m / 10, "down" if m % 7 == 0 else "up") for m in range(1, 1000)]

        assert len(aggregate_windows(ticks, NOW)) == 10
        assert len(aggregate_windows(ticks[:1], NOW)) == 10

    def test_custom_window_parameters(self):
        """测试：自定义窗口宽度和数量"""
        windows = aggregate_windows([], NOW, window_size=timedelta(minutes=1), window_count=5)

        assert len(windows) == 5
        assert windows[0].window_start == NOW - timedelta(minutes=5)


class TestWindowStatus:
    """窗口状态测试"""

    def test_single_down_tick_marks_window_down(self):
        """测试：窗口内一个 down tick 即整个窗口为 down"""
        ticks = [make_tick(4), make_tick(4.5, "down"), make_tick(5)]

        windows = aggregate_windows(ticks, NOW)

        # 4~5 分钟前落在 [now-6m, now-3m)，即倒数第二个窗口
        assert windows[-2].status == "down"
        assert [w.status for w in windows].count("down") == 1

    def test_up_only_window_stays_up(self):
        """测试：只有 up tick 的窗口为 up"""
        windows = aggregate_windows([make_tick(1), make_tick(2)], NOW)

        assert windows[-1].status == "up"

    def test_window_start_is_inclusive(self):
        """测试：窗口起点包含在窗口内"""
        windows = aggregate_windows([make_tick(3, "down")], NOW)

        # 恰好 3 分钟前是最后一个窗口 [now-3m, now) 的起点
        assert windows[-1].status == "down"
        assert windows[-2].status == "up"

    def test_now_is_exclusive(self):
        """测试：created_at == now 的 tick 不属于任何窗口"""
        windows = aggregate_windows([make_tick(0, "down")], NOW)

        assert all(w.status == "up" for w in windows)

    def test_ticks_outside_span_ignored(self):
        """测试：30 分钟之前和 now 之后的 tick 被忽略"""
        ticks = [make_tick(30.01, "down"), make_tick(45, "down"), make_tick(-1, "down")]

        windows = aggregate_windows(ticks, NOW)

        assert len(windows) == 10
        assert all(w.status == "up" for w in windows)

    def test_oldest_boundary_included(self):
        """测试：恰好 30 分钟前的 tick 属于第一个窗口"""
        windows = aggregate_windows([make_tick(30, "down")], NOW)

        assert windows[0].status == "down"

    def test_unsorted_input(self):
        """测试：输入无需排序"""
        ticks = [make_tick(1), make_tick(20, "down"), make_tick(10)]

        windows = aggregate_windows(ticks, NOW)

        # 20 分钟前落在 [now-21m, now-18m)
        assert windows[3].status == "down"
        assert windows[3].window_start == NOW - timedelta(minutes=21)

    def test_idempotent(self):
        """测试：相同输入两次调用结果完全一致"""
        ticks = [make_tick(1), make_tick(7, "down"), make_tick(29)]

        first = aggregate_windows(ticks, NOW)
        second = aggregate_windows(ticks, NOW)

        assert first == second
        assert [w.model_dump_json() for w in first] == [w.model_dump_json() for w in second]
