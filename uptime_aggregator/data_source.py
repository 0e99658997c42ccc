"""
数据源

刷新协调器通过 DataSource 拉取网站及 tick、提交新网站。
- HttpDataSource: 通过 REST API（Bearer Token 认证）访问远端服务
- DatabaseDataSource: 与 API 同进程时直接读写 SQLite
"""

import asyncio
import logging
import sqlite3
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, List, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from .database import Database
from .errors import (
    DataSourceAuthError,
    DataSourceConflictError,
    DataSourceError,
    DataSourceTimeoutError,
)
from .models import Website

logger = logging.getLogger(__name__)

_websites_adapter = TypeAdapter(List[Website])

TokenProvider = Callable[[], Awaitable[Optional[str]]]


class DataSource(ABC):
    """数据源接口"""

    @abstractmethod
    async def list_websites(self) -> List[Website]:
        """获取所有被监控网站（含最近的 tick）"""

    @abstractmethod
    async def create_website(self, url: str, name: Optional[str] = None) -> str:
        """创建网站，返回网站 ID"""


def parse_websites(payload: Any) -> List[Website]:
    """将数据源返回的 JSON 解析为 Website 列表"""
    try:
        return _websites_adapter.validate_python(payload)
    except ValidationError as e:
        raise DataSourceError(f"Malformed websites payload: {e.error_count()} errors") from e


class HttpDataSource(DataSource):
    """
    REST 数据源

    - GET  {base_url}/api/v1/websites
    - POST {base_url}/api/v1/websites  {"url": ..., "name": ...}
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        token_provider: Optional[TokenProvider] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Args:
            base_url: API 根地址
            token: 固定的 Bearer Token
            token_provider: 每次请求前获取 Token 的协程（优先于 token，用于 Token 刷新）
            timeout: 单次请求超时（秒）
            transport: 自定义 httpx 传输层（测试用）
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.token_provider = token_provider
        self.timeout = timeout
        self.transport = transport

    async def _headers(self) -> dict:
        token = await self.token_provider() if self.token_provider else self.token
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        headers = await self._headers()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(method, url, headers=headers, **kwargs)
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException as e:
            raise DataSourceTimeoutError(f"{method} {path} timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            code = e.response.status_code
            detail = _error_detail(e.response)
            if code in (401, 403):
                raise DataSourceAuthError(f"Unauthorized: {detail}", status_code=code) from e
            if code == 409:
                raise DataSourceConflictError(detail, status_code=code) from e
            raise DataSourceError(f"{method} {path} failed with {code}: {detail}", status_code=code) from e
        except httpx.HTTPError as e:
            raise DataSourceError(f"{method} {path} failed: {e}") from e
        except ValueError as e:
            # 响应体不是合法 JSON
            raise DataSourceError(f"{method} {path} returned invalid JSON") from e

    async def list_websites(self) -> List[Website]:
        payload = await self._request("GET", "/api/v1/websites")
        return parse_websites(payload)

    async def create_website(self, url: str, name: Optional[str] = None) -> str:
        payload = await self._request("POST", "/api/v1/websites", json={"url": url, "name": name})
        if not isinstance(payload, dict) or "id" not in payload:
            raise DataSourceError("Create website response missing id")
        return str(payload["id"])


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return str(body)


class DatabaseDataSource(DataSource):
    """
    本地数据源

    与 API 服务同进程运行时使用，SQLite 操作放到线程池执行，避免阻塞事件循环。
    """

    def __init__(self, db: Database, user_id: str, max_ticks: int = 100):
        self.db = db
        self.user_id = user_id
        self.max_ticks = max_ticks

    async def list_websites(self) -> List[Website]:
        try:
            rows = await asyncio.to_thread(self.db.get_websites_with_ticks, self.user_id, self.max_ticks)
        except Exception as e:
            raise DataSourceError(f"Database read failed: {e}") from e
        return parse_websites(rows)

    async def create_website(self, url: str, name: Optional[str] = None) -> str:
        try:
            existing = await asyncio.to_thread(self.db.find_active_website, self.user_id, url)
        except Exception as e:
            raise DataSourceError(f"Database read failed: {e}") from e
        if existing:
            raise DataSourceConflictError(f"Website '{url}' already exists", status_code=409)
        try:
            website_id = await asyncio.to_thread(self.db.create_website, self.user_id, url, name)
        except sqlite3.IntegrityError as e:
            # 并发添加时由唯一索引兜底
            raise DataSourceConflictError(f"Website '{url}' already exists", status_code=409) from e
        except Exception as e:
            raise DataSourceError(f"Database write failed: {e}") from e
        logger.info(f"Created website {url} (id={website_id})")
        return website_id
