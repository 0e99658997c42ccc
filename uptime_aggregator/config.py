"""
配置加载模块

从 config.yaml 加载配置，支持 Pydantic 验证和环境变量覆盖。
"""

import os
from pathlib import Path
from typing import Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field


class DatabaseConfig(BaseModel):
    """数据库配置"""
    path: str = "data/uptime.db"
    timeout: int = 30


class APIConfig(BaseModel):
    """API 服务配置"""
    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]
    # token -> user_id；为空时所有请求视为 dev_user（开发环境）
    tokens: Dict[str, str] = Field(default_factory=dict)
    dev_user: str = "local"
    # 列表接口每个网站内嵌的最近 tick 数量
    max_ticks: int = 100


class CoordinatorConfig(BaseModel):
    """刷新协调器配置"""
    interval: int = 60
    timeout: float = 10.0
    source: Literal["database", "http"] = "database"
    base_url: str = "http://127.0.0.1:8080"
    token: Optional[str] = None
    user_id: str = "local"


class AggregationConfig(BaseModel):
    """聚合与状态判定参数"""
    window_minutes: int = 3
    window_count: int = 10
    slice_size: int = 100
    latency_degraded_ms: float = 1000
    uptime_degraded_pct: float = 98


class RetentionConfig(BaseModel):
    """数据保留策略"""
    days: int = 30
    cleanup_hour: int = 3


class LoggingConfig(BaseModel):
    """日志配置"""
    level: str = "INFO"
    file: Optional[str] = None


class AppConfig(BaseModel):
    """应用配置（完整配置）"""
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    coordinator: CoordinatorConfig = Field(default_factory=CoordinatorConfig)
    aggregation: AggregationConfig = Field(default_factory=AggregationConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """
    加载配置文件

    优先级：
    1. 参数指定的路径
    2. 环境变量 UPTIME_CONFIG_PATH
    3. 默认路径 config.yaml

    数据库、日志文件等相对路径按配置文件所在目录解析。
    """
    if config_path is None:
        config_path = os.environ.get("UPTIME_CONFIG_PATH", "config.yaml")

    config_file = Path(config_path)

    if config_file.exists():
        with open(config_file, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
        if raw_config:
            base_dir = config_file.resolve().parent

            def _resolve_path(value: Optional[str]) -> Optional[str]:
                if not value:
                    return value
                path = Path(value)
                if path.is_absolute():
                    return str(path)
                return str((base_dir / path).resolve())

            if raw_config.get("database", {}).get("path"):
                raw_config["database"]["path"] = _resolve_path(raw_config["database"]["path"])
            if raw_config.get("logging", {}).get("file"):
                raw_config["logging"]["file"] = _resolve_path(raw_config["logging"]["file"])

            return AppConfig(**raw_config)

    # 配置文件不存在时使用默认配置
    return AppConfig()


# 全局配置实例（延迟加载）
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """获取全局配置实例（单例模式）"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config():
    """重置配置（主要用于测试）"""
    global _config
    _config = None
