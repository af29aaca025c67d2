"""
Dashboard Builder 主入口：启动 FastAPI 后端服务。
"""

import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dashboard.catalog import WidgetCatalog
from dashboard.config_loader import AppConfig, load_config
from dashboard.data_controller import DataController
from dashboard.resource_manager import DashboardResourceManager
from dashboard.session_registry import SessionRegistry
from dashboard import api

# 日志配置
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan 事件处理：启动时和关闭时的逻辑。"""
    dashboards = app.state.resource_manager.load_dashboards()
    logger.info(f"已发现 {len(dashboards)} 个仪表盘")

    yield  # 应用运行中

    # 关闭时：关闭数据库连接
    logger.info("正在关闭...")
    app.state.data_controller.close()


def create_app(config: AppConfig | None = None) -> FastAPI:
    """创建并配置 FastAPI 应用。"""
    app = FastAPI(
        title="Dashboard Builder API",
        description="Edit sessions for grid dashboards: widgets, responsive layouts, undo/redo",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS 中间件
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── 初始化核心组件 ────────────────────────────────────────
    if config is None:
        logger.info("正在加载配置...")
        config = load_config()

    data_dir = config.data_path()

    # 会话快照持久化
    data_controller = DataController(data_dir / config.storage.snapshots_file)

    # 仪表盘元数据 (JSON)
    resource_manager = DashboardResourceManager(data_dir, config.storage.dashboards_file)

    # 组件目录
    catalog = WidgetCatalog.from_config(config)
    logger.info(f"组件目录: {', '.join(k.value for k in catalog.kinds())}")

    # 编辑会话注册表
    registry = SessionRegistry(config, data_controller, catalog=catalog)

    # 注入依赖到 API 模块
    api.init_api(
        data_controller=data_controller,
        resource_manager=resource_manager,
        registry=registry,
    )

    # 注册 API 路由
    app.include_router(api.router)

    # 将组件存到 app.state，供 lifespan 访问
    app.state.config = config
    app.state.data_controller = data_controller
    app.state.resource_manager = resource_manager
    app.state.registry = registry

    return app


def main():
    """主入口。"""
    port = int(sys.argv[1]) if len(sys.argv) > 1 else 8400

    logger.info(f"🚀 启动 Dashboard Builder 后端 (port={port})...")

    app = create_app()

    uvicorn.run(
        app,
        host="127.0.0.1",
        port=port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
