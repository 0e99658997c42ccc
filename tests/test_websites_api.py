"""
测试网站管理与仪表盘 API

覆盖：
- /api/v1/websites 的创建、列表、查询、停用、tick 上报
- Bearer Token 认证
- /api/dashboard 派生视图、立即刷新、添加网站
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# 添加项目路径到 sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))

from uptime_aggregator import config as config_module
from uptime_aggregator.api.app import create_app
from uptime_aggregator.api.dependencies import get_database
from uptime_aggregator.config import APIConfig, AppConfig
from uptime_aggregator.coordinator import RefreshCoordinator
from uptime_aggregator.data_source import DatabaseDataSource
from uptime_aggregator.database import Database


@pytest.fixture(autouse=True)
def default_config():
    """每个测试使用默认配置（无 Token，开发用户 local）"""
    config_module._config = AppConfig()
    yield
    config_module.reset_config()


@pytest.fixture
def db(tmp_path):
    """创建临时测试数据库"""
    db = Database(str(tmp_path / "test_uptime.db"))
    db.init_schema()
    return db


def build_client(db: Database, coordinator=None) -> TestClient:
    app = create_app(coordinator)

    async def _override_db():
        return db

    app.dependency_overrides[get_database] = _override_db
    return TestClient(app)


@pytest.fixture
def client(db: Database):
    """创建测试客户端（使用临时数据库）"""
    return build_client(db)


@pytest.fixture
def coordinator(db: Database):
    return RefreshCoordinator(DatabaseDataSource(db, "local"), interval=3600)


@pytest.fixture
def dashboard_client(db: Database, coordinator):
    return build_client(db, coordinator)


class TestWebsitesAPI:
    """网站管理 API 测试"""

    def test_create_and_list(self, client):
        """测试：创建后出现在列表中"""
        response = client.post("/api/v1/websites", json={"url": "https://example.com", "name": "Example"})
        assert response.status_code == 200
        website_id = response.json()["id"]

        response = client.get("/api/v1/websites")
        assert response.status_code == 200
        data = response.json()
        assert len(data) == 1
        assert data[0]["id"] == website_id
        assert data[0]["url"] == "https://example.com"
        assert data[0]["name"] == "Example"
        assert data[0]["ticks"] == []

    def test_create_invalid_url(self, client):
        """测试：非法 URL 返回 422"""
        response = client.post("/api/v1/websites", json={"url": "not-a-url"})
        assert response.status_code == 422
        assert response.json()["detail"] == "Please enter a valid URL"

    def test_create_duplicate(self, client):
        """测试：重复 URL 返回 409"""
        client.post("/api/v1/websites", json={"url": "https://example.com"})
        response = client.post("/api/v1/websites", json={"url": "https://example.com"})
        assert response.status_code == 409

    def test_create_duplicate_race(self, client, db, monkeypatch):
        """测试：并发添加绕过重复检查时，唯一索引冲突同样返回 409"""
        client.post("/api/v1/websites", json={"url": "https://example.com"})
        monkeypatch.setattr(db, "find_active_website", lambda user_id, url: None)

        response = client.post("/api/v1/websites", json={"url": "https://example.com"})

        assert response.status_code == 409
        assert len(db.get_active_websites("local")) == 1

    def test_ticks_embedded_in_ascending_order(self, client, db):
        """测试：列表内嵌最近的 tick，按时间升序，字段名为 createdAt"""
        website_id = client.post("/api/v1/websites", json={"url": "https://example.com"}).json()["id"]
        base = datetime(2026, 1, 20, 10, 0, 0, tzinfo=timezone.utc)
        for i in range(5):
            db.save_tick(website_id, "up" if i % 2 == 0 else "down", 100 + i, base + timedelta(minutes=i))

        ticks = client.get("/api/v1/websites").json()[0]["ticks"]

        assert len(ticks) == 5
        timestamps = [t["createdAt"] for t in ticks]
        assert timestamps == sorted(timestamps)
        assert ticks[-1]["latency"] == 104

    def test_ticks_limited(self, client, db):
        """测试：只内嵌最近 api.max_ticks 条"""
        config_module._config = AppConfig(api=APIConfig(max_ticks=3))
        website_id = client.post("/api/v1/websites", json={"url": "https://example.com"}).json()["id"]
        base = datetime(2026, 1, 20, 10, 0, 0, tzinfo=timezone.utc)
        for i in range(10):
            db.save_tick(website_id, "up", 100, base + timedelta(minutes=i))

        ticks = client.get("/api/v1/websites").json()[0]["ticks"]

        assert len(ticks) == 3
        assert ticks[-1]["createdAt"] == "2026-01-20T10:09:00Z"

    def test_get_single_website(self, client):
        """测试：查询单个网站"""
        website_id = client.post("/api/v1/websites", json={"url": "https://example.com"}).json()["id"]

        response = client.get(f"/api/v1/websites/{website_id}")
        assert response.status_code == 200
        assert response.json()["id"] == website_id

        assert client.get("/api/v1/websites/missing").status_code == 404

    def test_delete_disables(self, client, db):
        """测试：停用后不再出现在列表中，但记录仍在"""
        website_id = client.post("/api/v1/websites", json={"url": "https://example.com"}).json()["id"]

        response = client.delete(f"/api/v1/websites/{website_id}")
        assert response.status_code == 200

        assert client.get("/api/v1/websites").json() == []
        assert db.get_website(website_id)["disabled"] == 1

        # 停用后可以重新添加同一 URL
        response = client.post("/api/v1/websites", json={"url": "https://example.com"})
        assert response.status_code == 200

    def test_delete_missing(self, client):
        """测试：停用不存在的网站返回 404"""
        assert client.delete("/api/v1/websites/missing").status_code == 404

    def test_record_tick(self, client, db):
        """测试：上报 tick"""
        website_id = client.post("/api/v1/websites", json={"url": "https://example.com"}).json()["id"]

        response = client.post(f"/api/v1/websites/{website_id}/ticks", json={"status": "up", "latency": 42})
        assert response.status_code == 201

        ticks = db.get_recent_ticks(website_id)
        assert len(ticks) == 1
        assert ticks[0]["status"] == "up"
        assert ticks[0]["latency"] == 42

    def test_record_tick_invalid_status(self, client):
        """测试：非法 tick 状态返回 422"""
        website_id = client.post("/api/v1/websites", json={"url": "https://example.com"}).json()["id"]

        response = client.post(f"/api/v1/websites/{website_id}/ticks", json={"status": "maybe"})
        assert response.status_code == 422


class TestAuthentication:
    """Bearer Token 认证测试"""

    @pytest.fixture(autouse=True)
    def token_config(self, default_config):
        config_module._config = AppConfig(api=APIConfig(tokens={"token-a": "alice", "token-b": "bob"}))

    def test_missing_token(self, client):
        assert client.get("/api/v1/websites").status_code == 401

    def test_malformed_header(self, client):
        response = client.get("/api/v1/websites", headers={"Authorization": "token-a"})
        assert response.status_code == 401

    def test_invalid_token(self, client):
        response = client.get("/api/v1/websites", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_websites_scoped_to_user(self, client):
        """测试：用户只能看到自己的网站"""
        alice = {"Authorization": "Bearer token-a"}
        bob = {"Authorization": "Bearer token-b"}

        website_id = client.post("/api/v1/websites", json={"url": "https://example.com"}, headers=alice).json()["id"]

        assert len(client.get("/api/v1/websites", headers=alice).json()) == 1
        assert client.get("/api/v1/websites", headers=bob).json() == []
        assert client.get(f"/api/v1/websites/{website_id}", headers=bob).status_code == 404
        assert client.delete(f"/api/v1/websites/{website_id}", headers=bob).status_code == 404


class TestDashboardAPI:
    """仪表盘 API 测试"""

    def test_no_coordinator(self, client):
        """测试：未挂载协调器时返回 503"""
        assert client.get("/api/dashboard").status_code == 503

    def test_initial_state(self, dashboard_client):
        """测试：首次刷新前为 loading"""
        data = dashboard_client.get("/api/dashboard").json()

        assert data["state"]["loading"] is True
        assert data["state"]["views"] == {}
        assert data["summary"]["total"] == 0

    def test_refresh_derives_views(self, dashboard_client, db):
        """测试：立即刷新后返回派生视图"""
        now = datetime.now(timezone.utc)
        website_id = db.create_website("local", "https://www.example.com")
        for minutes_ago in (10, 5, 1):
            db.save_tick(website_id, "up", 120, now - timedelta(minutes=minutes_ago))

        response = dashboard_client.post("/api/dashboard/refresh")
        assert response.status_code == 200
        data = response.json()

        view = data["state"]["views"][website_id]
        assert view["name"] == "example.com"
        assert view["status"] == "up"
        assert view["uptime_pct"] == 100.0
        assert view["avg_latency_ms"] == 120
        assert len(view["windows"]) == 10
        assert data["summary"] == {"total": 1, "up": 1, "down": 0, "degraded": 0}

    def test_add_website(self, dashboard_client):
        """测试：通过仪表盘添加网站，立即出现在视图中"""
        response = dashboard_client.post("/api/dashboard/websites", json={"url": "https://example.org"})
        assert response.status_code == 200
        assert response.json() == {"success": True, "error": None}

        views = dashboard_client.get("/api/dashboard").json()["state"]["views"]
        assert [v["url"] for v in views.values()] == ["https://example.org"]
        assert list(views.values())[0]["status"] == "down"

    def test_add_invalid_website(self, dashboard_client, db):
        """测试：非法 URL 返回 success=False，不写入数据库"""
        response = dashboard_client.post("/api/dashboard/websites", json={"url": "not-a-url"})

        assert response.json() == {"success": False, "error": "Please enter a valid URL"}
        assert db.get_active_websites("local") == []

    def test_add_duplicate_website(self, dashboard_client):
        """测试：重复添加返回 success=False"""
        dashboard_client.post("/api/dashboard/websites", json={"url": "https://example.org"})
        response = dashboard_client.post("/api/dashboard/websites", json={"url": "https://example.org"})

        data = response.json()
        assert data["success"] is False
        assert "already exists" in data["error"]
