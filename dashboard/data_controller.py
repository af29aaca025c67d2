"""
数据控制器：基于 TinyDB 的会话快照持久化层。
每个仪表盘保留一份最新快照（upsert），并追加保存历史。
"""

import logging
import time
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError
from tinydb import Query, TinyDB

from dashboard.config_loader import project_root
from dashboard.models import SaveErrorType, SaveResult, SessionSnapshot

logger = logging.getLogger(__name__)


class DataController:
    """TinyDB 数据操作封装。"""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            db_path = project_root() / "data" / "dashboards.json"
        db_path = Path(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)

        self.db = TinyDB(str(db_path), indent=2, ensure_ascii=False)
        self.latest_table = self.db.table("latest")
        self.history_table = self.db.table("history")
        logger.info(f"TinyDB 数据库已打开: {db_path}")

    # ── 写入 ──────────────────────────────────────────

    def save_snapshot(self, dashboard_id: str, snapshot: SessionSnapshot) -> SaveResult:
        """
        保存快照：更新最新记录并追加一条历史。
        失败时返回带错误类型的 SaveResult，不抛出异常。
        """
        if not dashboard_id:
            return SaveResult(
                ok=False,
                dashboard_id=dashboard_id,
                error=SaveErrorType.INVALID_REQUEST,
                message="dashboard_id 不能为空",
            )

        now = time.time()
        payload = snapshot.model_dump(mode="json")
        Dashboard = Query()
        try:
            self.latest_table.upsert(
                {"dashboard_id": dashboard_id, "snapshot": payload, "updated_at": now},
                Dashboard.dashboard_id == dashboard_id,
            )
            revision = self.history_table.insert(
                {"dashboard_id": dashboard_id, "snapshot": payload, "timestamp": now}
            )
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"[{dashboard_id}] 保存快照失败: {e}")
            return SaveResult(
                ok=False,
                dashboard_id=dashboard_id,
                error=SaveErrorType.STORAGE_ERROR,
                message=str(e),
            )

        logger.debug(f"[{dashboard_id}] 快照已保存 (revision={revision})")
        return SaveResult(ok=True, dashboard_id=dashboard_id, revision=revision, saved_at=now)

    # ── 查询 ──────────────────────────────────────────

    def get_latest(self, dashboard_id: str) -> Optional[SessionSnapshot]:
        """获取指定仪表盘的最新快照。记录损坏时返回 None。"""
        Dashboard = Query()
        results = self.latest_table.search(Dashboard.dashboard_id == dashboard_id)
        if not results:
            return None
        try:
            return SessionSnapshot.model_validate(results[0]["snapshot"])
        except (KeyError, PydanticValidationError) as e:
            logger.error(f"[{dashboard_id}] 快照记录无法解析: {e}")
            return None

    def get_history(self, dashboard_id: str, limit: int = 100) -> list[dict[str, Any]]:
        """获取指定仪表盘的保存历史（按时间倒序）。"""
        Dashboard = Query()
        records = self.history_table.search(Dashboard.dashboard_id == dashboard_id)
        records.sort(key=lambda r: (r.get("timestamp", 0), r.doc_id), reverse=True)
        return [
            {
                "revision": r.doc_id,
                "timestamp": r.get("timestamp"),
                "widget_count": len(r.get("snapshot", {}).get("widgets", [])),
            }
            for r in records[:limit]
        ]

    # ── 管理 ──────────────────────────────────────────

    def clear_dashboard(self, dashboard_id: str):
        """清除指定仪表盘的所有快照。"""
        Dashboard = Query()
        self.latest_table.remove(Dashboard.dashboard_id == dashboard_id)
        self.history_table.remove(Dashboard.dashboard_id == dashboard_id)

    def close(self):
        """关闭数据库。"""
        self.db.close()
