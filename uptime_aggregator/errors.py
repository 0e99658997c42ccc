"""
异常定义

- 输入校验错误：添加网站时 URL 不合法，在任何网络请求之前抛出
- 数据源错误：网络、认证、超时、冲突，由刷新协调器捕获并转为错误信号
"""

from typing import Optional


class UptimeError(Exception):
    """基础异常"""


class InvalidURLError(UptimeError):
    """URL 为空或不是合法的绝对 URL"""


class DataSourceError(UptimeError):
    """数据源请求失败"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DataSourceAuthError(DataSourceError):
    """认证失败（401/403）"""


class DataSourceTimeoutError(DataSourceError):
    """请求超时"""


class DataSourceConflictError(DataSourceError):
    """资源冲突（如重复添加同一 URL）"""
