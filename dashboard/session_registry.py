"""
会话注册表：每个打开的仪表盘对应一个 EditSessionStore。
首次打开时载入最新保存的快照；没有快照时保持 Fresh，由初始化器决定是否载入演示数据。
空闲会话在下次打开任意会话时被回收，有未保存修改的会话保留。
"""

import logging
import time
from typing import Callable, Dict, List, Optional

from dashboard.catalog import WidgetCatalog
from dashboard.config_loader import AppConfig
from dashboard.data_controller import DataController
from dashboard.initializer import SessionInitializer
from dashboard.store import EditSessionStore

logger = logging.getLogger(__name__)


class SessionRegistry:

    def __init__(
        self,
        config: AppConfig,
        data_controller: DataController,
        catalog: WidgetCatalog | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._config = config
        self._data_controller = data_controller
        self._catalog = catalog or WidgetCatalog.from_config(config)
        self._sessions: Dict[str, EditSessionStore] = {}
        self._last_access: Dict[str, float] = {}
        self._clock = clock

    @property
    def catalog(self) -> WidgetCatalog:
        return self._catalog

    def get(self, dashboard_id: str) -> Optional[EditSessionStore]:
        return self._sessions.get(dashboard_id)

    def open_ids(self) -> List[str]:
        return list(self._sessions)

    def open(self, dashboard_id: str) -> EditSessionStore:
        """获取或创建会话。"""
        now = self._clock()
        self.close_idle(now=now, keep=dashboard_id)
        self._last_access[dashboard_id] = now

        store = self._sessions.get(dashboard_id)
        if store is not None:
            return store

        store = EditSessionStore.from_config(self._config, catalog=self._catalog)
        saved = self._data_controller.get_latest(dashboard_id)
        if saved is not None:
            store.load_snapshot(saved)
            logger.info(f"[{dashboard_id}] 会话已从保存的快照恢复")
        else:
            logger.info(f"[{dashboard_id}] 新会话 (无已保存快照)")
        self._sessions[dashboard_id] = store
        return store

    def initializer_for(self, dashboard_id: str) -> SessionInitializer:
        return SessionInitializer.from_config(self.open(dashboard_id), self._config)

    def close(self, dashboard_id: str) -> bool:
        self._last_access.pop(dashboard_id, None)
        return self._sessions.pop(dashboard_id, None) is not None

    def close_idle(
        self,
        max_idle: Optional[float] = None,
        now: Optional[float] = None,
        keep: Optional[str] = None,
    ) -> List[str]:
        """
        关闭空闲超时的会话，返回被关闭的仪表盘 ID。
        有未保存修改的会话不会被关闭，关闭后再次打开会从最新快照恢复。
        """
        if max_idle is None:
            max_idle = self._config.editor.session_idle_seconds
        if not max_idle:
            return []
        now = self._clock() if now is None else now

        closed = []
        for dashboard_id, store in list(self._sessions.items()):
            if dashboard_id == keep:
                continue
            idle = now - self._last_access.get(dashboard_id, now)
            if idle < max_idle:
                continue
            if store.has_changes:
                logger.debug(f"[{dashboard_id}] 会话空闲 {idle:.0f}s，但有未保存修改，保留")
                continue
            self.close(dashboard_id)
            closed.append(dashboard_id)
            logger.info(f"[{dashboard_id}] 空闲会话已关闭 ({idle:.0f}s)")
        return closed
