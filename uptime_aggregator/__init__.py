"""
Uptime Aggregator - 网站可用性监控

负责：
- 存储被监控网站及探测结果（tick）
- 每 60s 拉取网站及最近 tick，聚合为 10 个 3 分钟时间窗口
- 判定每个网站的当前状态（up / down / degraded）、可用率和平均延迟
- 提供 REST API 给前端
"""

__version__ = "1.0.0"
