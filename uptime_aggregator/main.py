"""
主程序入口

启动三个并发任务：
1. 刷新协调器轮询循环
2. tick 过期清理任务
3. REST API 服务
"""

import asyncio
import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import uvicorn

from . import __version__
from .config import AppConfig, get_config
from .coordinator import RefreshCoordinator
from .data_source import DataSource, DatabaseDataSource, HttpDataSource
from .database import Database, get_db

logger = logging.getLogger(__name__)


def setup_logging():
    """配置日志"""
    config = get_config()

    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    level = getattr(logging, config.logging.level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    # 如果配置了文件日志
    if config.logging.file:
        log_path = Path(config.logging.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(str(log_path), encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(log_format))
        logging.getLogger().addHandler(file_handler)

    # 降低第三方库日志级别
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def build_data_source(config: AppConfig, db: Database) -> DataSource:
    """按配置创建数据源"""
    if config.coordinator.source == "http":
        return HttpDataSource(
            base_url=config.coordinator.base_url,
            token=config.coordinator.token,
            timeout=config.coordinator.timeout,
        )
    return DatabaseDataSource(db, config.coordinator.user_id, config.aggregation.slice_size)


async def run_cleanup(db: Database):
    """
    运行 tick 清理任务

    每天在指定时间删除超过保留天数的 tick。
    """
    config = get_config()
    cleanup_hour = config.retention.cleanup_hour
    retention_days = config.retention.days

    logger.info(f"Starting cleanup task (hour={cleanup_hour}, retention={retention_days}d)")

    while True:
        try:
            now = datetime.now(timezone.utc)

            # 计算下次清理时间
            next_cleanup = now.replace(hour=cleanup_hour, minute=0, second=0, microsecond=0)
            if now >= next_cleanup:
                next_cleanup += timedelta(days=1)

            wait_seconds = (next_cleanup - now).total_seconds()
            logger.info(f"Next cleanup at {next_cleanup.isoformat()} (in {wait_seconds:.0f}s)")

            await asyncio.sleep(wait_seconds)

            removed = await asyncio.to_thread(db.cleanup_old_ticks, retention_days)
            logger.info(f"Cleanup completed: removed {removed} ticks older than {retention_days} days")

        except asyncio.CancelledError:
            logger.info("Cleanup task cancelled")
            raise
        except Exception as e:
            logger.error(f"Cleanup error: {e}", exc_info=True)
            await asyncio.sleep(3600)  # 出错后等 1 小时


async def run_api_server(coordinator: RefreshCoordinator):
    """运行 API 服务器"""
    from .api.app import create_app

    config = get_config()
    app = create_app(coordinator)

    server_config = uvicorn.Config(
        app=app,
        host=config.api.host,
        port=config.api.port,
        log_level="info",
        access_log=False
    )
    server = uvicorn.Server(server_config)
    await server.serve()


async def main():
    """主函数：启动所有任务"""
    setup_logging()
    logger.info("=" * 60)
    logger.info(f"Uptime Aggregator v{__version__}")
    logger.info("=" * 60)

    config = get_config()
    logger.info(f"Config loaded: API={config.api.host}:{config.api.port}")

    db = get_db()
    logger.info(f"Database initialized: {db.db_path}")

    source = build_data_source(config, db)
    coordinator = RefreshCoordinator(
        source,
        interval=config.coordinator.interval,
        timeout=config.coordinator.timeout,
        aggregation=config.aggregation,
    )
    logger.info(f"Data source: {config.coordinator.source}")

    logger.info("Starting concurrent tasks...")

    try:
        await asyncio.gather(
            coordinator.run(),
            run_cleanup(db),
            run_api_server(coordinator)
        )
    except asyncio.CancelledError:
        logger.info("Tasks cancelled, shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        raise
    finally:
        await coordinator.stop()


def cli():
    """命令行入口"""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutdown requested, exiting...")
        sys.exit(0)


if __name__ == "__main__":
    cli()
