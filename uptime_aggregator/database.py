"""
数据库操作抽象层

封装所有 SQLite 操作：网站的增删查、tick 的追加写入与查询。
"""

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Dict, Any

from .config import get_config
from .models import utc_now

SCHEMA = """
CREATE TABLE IF NOT EXISTS websites (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    url TEXT NOT NULL,
    name TEXT,
    disabled INTEGER DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS ticks (
    id TEXT PRIMARY KEY,
    website_id TEXT NOT NULL,
    created_at TEXT NOT NULL,
    status TEXT NOT NULL CHECK (status IN ('up', 'down')),
    latency REAL,
    FOREIGN KEY (website_id) REFERENCES websites(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_websites_user ON websites(user_id, disabled);
CREATE UNIQUE INDEX IF NOT EXISTS idx_websites_active_url ON websites(user_id, url) WHERE disabled = 0;
CREATE INDEX IF NOT EXISTS idx_ticks_website_ts ON ticks(website_id, created_at DESC);
"""


def format_ts(value: datetime) -> str:
    """统一的时间戳格式（UTC，毫秒精度，可按字符串排序）"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


class Database:
    """数据库操作类"""

    def __init__(self, db_path: Optional[str] = None, timeout: Optional[int] = None):
        """
        初始化数据库连接

        Args:
            db_path: 数据库文件路径，不指定则从配置加载
            timeout: SQLite 锁等待超时（秒）
        """
        config = get_config()
        if db_path is None:
            db_path = config.database.path
        if timeout is None:
            timeout = config.database.timeout

        self.db_path = Path(db_path)
        self.timeout = timeout

        # 确保目录存在
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def get_conn(self):
        """
        获取数据库连接（上下文管理器）

        使用方式：
            with db.get_conn() as conn:
                cursor = conn.execute("SELECT ...")
        """
        conn = sqlite3.connect(str(self.db_path), timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        # 启用外键约束
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_schema(self):
        """创建表结构（幂等）"""
        with self.get_conn() as conn:
            conn.executescript(SCHEMA)

    # =========================================================================
    # 网站操作
    # =========================================================================

    def create_website(self, user_id: str, url: str, name: Optional[str] = None) -> str:
        """
        创建网站

        Returns:
            新创建的网站 ID
        """
        website_id = str(uuid.uuid4())
        with self.get_conn() as conn:
            conn.execute("""
                INSERT INTO websites (id, user_id, url, name, disabled, created_at)
                VALUES (?, ?, ?, ?, 0, ?)
            """, (website_id, user_id, url, name, format_ts(utc_now())))
        return website_id

    def get_website(self, website_id: str, user_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """根据 ID 获取网站（可限定所属用户）"""
        sql = """
            SELECT id, user_id, url, name, disabled, created_at
            FROM websites
            WHERE id = ?
        """
        params: List[Any] = [website_id]
        if user_id is not None:
            sql += " AND user_id = ?"
            params.append(user_id)
        with self.get_conn() as conn:
            row = conn.execute(sql, params).fetchone()
            return dict(row) if row else None

    def find_active_website(self, user_id: str, url: str) -> Optional[Dict[str, Any]]:
        """查找用户名下未停用的同 URL 网站"""
        with self.get_conn() as conn:
            row = conn.execute("""
                SELECT id, user_id, url, name, disabled, created_at
                FROM websites
                WHERE user_id = ? AND url = ? AND disabled = 0
            """, (user_id, url)).fetchone()
            return dict(row) if row else None

    def get_active_websites(self, user_id: str) -> List[Dict[str, Any]]:
        """获取用户所有未停用的网站"""
        with self.get_conn() as conn:
            cursor = conn.execute("""
                SELECT id, user_id, url, name, disabled, created_at
                FROM websites
                WHERE user_id = ? AND disabled = 0
                ORDER BY created_at, id
            """, (user_id,))
            return [dict(row) for row in cursor.fetchall()]

    def get_websites_with_ticks(self, user_id: str, max_ticks: int = 100) -> List[Dict[str, Any]]:
        """获取用户所有未停用的网站，每个网站内嵌最近 max_ticks 条 tick"""
        websites = self.get_active_websites(user_id)
        for website in websites:
            website["ticks"] = self.get_recent_ticks(website["id"], max_ticks)
        return websites

    def disable_website(self, website_id: str, user_id: str) -> bool:
        """
        停用网站（软删除，tick 保留）

        Returns:
            是否更新成功
        """
        with self.get_conn() as conn:
            cursor = conn.execute(
                "UPDATE websites SET disabled = 1 WHERE id = ? AND user_id = ?",
                (website_id, user_id)
            )
            return cursor.rowcount > 0

    # =========================================================================
    # Tick 操作
    # =========================================================================

    def save_tick(
        self,
        website_id: str,
        status: str,
        latency: Optional[float] = None,
        created_at: Optional[datetime] = None
    ) -> str:
        """
        追加一条 tick

        Returns:
            tick ID
        """
        tick_id = str(uuid.uuid4())
        ts = format_ts(created_at or utc_now())
        with self.get_conn() as conn:
            conn.execute("""
                INSERT INTO ticks (id, website_id, created_at, status, latency)
                VALUES (?, ?, ?, ?, ?)
            """, (tick_id, website_id, ts, status, latency))
        return tick_id

    def get_recent_ticks(self, website_id: str, limit: int = 100) -> List[Dict[str, Any]]:
        """
        获取网站最近的 tick

        Returns:
            按时间升序排列的最近 limit 条 tick
        """
        with self.get_conn() as conn:
            cursor = conn.execute("""
                SELECT id, created_at, status, latency
                FROM ticks
                WHERE website_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
            """, (website_id, limit))
            rows = [dict(row) for row in cursor.fetchall()]
        rows.reverse()
        return rows

    # =========================================================================
    # 数据清理
    # =========================================================================

    def cleanup_old_ticks(self, retention_days: int = 30) -> int:
        """
        清理过期 tick

        Args:
            retention_days: 保留天数

        Returns:
            删除的条数
        """
        cutoff = format_ts(utc_now() - timedelta(days=retention_days))
        with self.get_conn() as conn:
            cursor = conn.execute("DELETE FROM ticks WHERE created_at < ?", (cutoff,))
            return cursor.rowcount


# 全局数据库实例（延迟加载）
_db: Optional[Database] = None


def get_db() -> Database:
    """获取全局数据库实例（首次使用时建表）"""
    global _db
    if _db is None:
        _db = Database()
        _db.init_schema()
    return _db
