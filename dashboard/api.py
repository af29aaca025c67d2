"""
FastAPI 路由：向展现层暴露仪表盘编辑会话。
"""

import logging
import time
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from dashboard.errors import ValidationError
from dashboard.grid_view import GridRender, GridView
from dashboard.models import StoredDashboard
from dashboard.store import EditSessionStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# 这些全局引用会在 main.py 中注入
_data_controller = None
_resource_manager = None
_registry = None


def init_api(data_controller, resource_manager, registry):
    """注入全局依赖（由 main.py 调用）。"""
    global _data_controller, _resource_manager, _registry
    _data_controller = data_controller
    _resource_manager = resource_manager
    _registry = registry


# ── 请求模型 ──────────────────────────────────────────

class DashboardCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    is_public: bool = False


class EditModeRequest(BaseModel):
    enabled: bool


class AddWidgetRequest(BaseModel):
    kind: str
    title: Optional[str] = None
    config: Optional[Dict[str, Any]] = None
    data_source_ref: Optional[str] = None


class EditWidgetRequest(BaseModel):
    title: Optional[str] = None
    config: Optional[Dict[str, Any]] = None
    data_source_ref: Optional[str] = None


class LayoutChangeRequest(BaseModel):
    breakpoint: str = "lg"
    layouts: Dict[str, List[Dict[str, Any]]]


# ── 工具函数 ──────────────────────────────────────────

def _session_payload(store: EditSessionStore) -> dict[str, Any]:
    flags = store.flags
    return {
        **store.snapshot().model_dump(mode="json"),
        "flags": flags.model_dump(),
        "phase": flags.phase.value,
        "can_undo": store.can_undo,
        "can_redo": store.can_redo,
        "undo_depth": store.undo_depth,
        "redo_depth": store.redo_depth,
    }


def _open_session(dashboard_id: str) -> EditSessionStore:
    if _resource_manager.get_dashboard(dashboard_id) is None:
        raise HTTPException(404, f"仪表盘 '{dashboard_id}' 不存在")
    return _registry.open(dashboard_id)


def _require_widget(store: EditSessionStore, widget_id: str):
    if store.get_widget(widget_id) is None:
        raise HTTPException(404, f"组件 '{widget_id}' 不存在")


# ── 组件目录 ──────────────────────────────────────────

@router.get("/catalog")
async def get_catalog() -> list[dict]:
    """获取可添加的组件类型及其默认值。"""
    return _registry.catalog.describe()


# ── 仪表盘 (JSON 存储) ────────────────────────────────

@router.get("/dashboards")
async def list_dashboards() -> list[StoredDashboard]:
    return _resource_manager.load_dashboards()


@router.post("/dashboards")
async def create_dashboard(request: DashboardCreate) -> StoredDashboard:
    dashboard = StoredDashboard(
        id=f"dash-{int(time.time() * 1000)}",
        name=request.name,
        description=request.description,
        is_public=request.is_public,
    )
    logger.info(f"[{dashboard.id}] 创建仪表盘: {dashboard.name}")
    return _resource_manager.save_dashboard(dashboard)


@router.put("/dashboards/{dashboard_id}")
async def update_dashboard(dashboard_id: str, dashboard: StoredDashboard) -> StoredDashboard:
    if dashboard.id != dashboard_id:
        raise HTTPException(400, "ID mismatch")
    return _resource_manager.save_dashboard(dashboard)


@router.delete("/dashboards/{dashboard_id}")
async def delete_dashboard(dashboard_id: str) -> dict:
    if not _resource_manager.delete_dashboard(dashboard_id):
        raise HTTPException(404, f"Dashboard {dashboard_id} not found")
    _data_controller.clear_dashboard(dashboard_id)
    _registry.close(dashboard_id)
    return {"message": f"Dashboard {dashboard_id} deleted"}


@router.get("/dashboards/{dashboard_id}/history")
async def get_save_history(dashboard_id: str, limit: int = 100) -> list[dict]:
    """获取仪表盘的保存历史。"""
    if _resource_manager.get_dashboard(dashboard_id) is None:
        raise HTTPException(404, f"仪表盘 '{dashboard_id}' 不存在")
    return _data_controller.get_history(dashboard_id, limit=limit)


# ── 编辑会话 ──────────────────────────────────────────

@router.get("/dashboards/{dashboard_id}/session")
async def get_session(dashboard_id: str) -> dict[str, Any]:
    return _session_payload(_open_session(dashboard_id))


@router.get("/dashboards/{dashboard_id}/session/grid")
async def get_grid(dashboard_id: str, width: int = 1280) -> GridRender:
    """按视口宽度渲染当前断点的网格。"""
    return GridView(_open_session(dashboard_id)).render(width)


@router.post("/dashboards/{dashboard_id}/session/init")
async def init_session(dashboard_id: str) -> dict[str, Any]:
    """载入演示数据（仅对从未初始化且未修改的会话生效）。"""
    store = _open_session(dashboard_id)
    seeded = _registry.initializer_for(dashboard_id).initialize_demo_data()
    return {"seeded": seeded, **_session_payload(store)}


@router.post("/dashboards/{dashboard_id}/session/edit-mode")
async def set_edit_mode(dashboard_id: str, request: EditModeRequest) -> dict[str, Any]:
    store = _open_session(dashboard_id)
    store.set_edit_mode(request.enabled)
    return _session_payload(store)


@router.post("/dashboards/{dashboard_id}/session/widgets")
async def add_widget(dashboard_id: str, request: AddWidgetRequest) -> dict[str, Any]:
    store = _open_session(dashboard_id)
    try:
        widget = store.add_widget(
            request.kind,
            title=request.title,
            config=request.config,
            data_source_ref=request.data_source_ref,
        )
    except ValidationError as e:
        logger.warning(f"[{dashboard_id}] 添加组件被拒绝: {e}")
        raise HTTPException(422, str(e))
    return {"widget": widget.model_dump(mode="json"), **_session_payload(store)}


@router.patch("/dashboards/{dashboard_id}/session/widgets/{widget_id}")
async def edit_widget(dashboard_id: str, widget_id: str, request: EditWidgetRequest) -> dict[str, Any]:
    store = _open_session(dashboard_id)
    _require_widget(store, widget_id)

    changes = {key: getattr(request, key) for key in request.model_fields_set}
    try:
        updated = store.edit_widget(widget_id, **changes)
    except ValidationError as e:
        logger.warning(f"[{dashboard_id}] 编辑组件 {widget_id} 被拒绝: {e}")
        raise HTTPException(422, str(e))
    return {"changed": updated is not None, **_session_payload(store)}


@router.delete("/dashboards/{dashboard_id}/session/widgets/{widget_id}")
async def delete_widget(dashboard_id: str, widget_id: str) -> dict[str, Any]:
    store = _open_session(dashboard_id)
    if not store.delete_widget(widget_id):
        raise HTTPException(404, f"组件 '{widget_id}' 不存在")
    return _session_payload(store)


@router.post("/dashboards/{dashboard_id}/session/widgets/{widget_id}/duplicate")
async def duplicate_widget(dashboard_id: str, widget_id: str) -> dict[str, Any]:
    store = _open_session(dashboard_id)
    clone = store.duplicate_widget(widget_id)
    if clone is None:
        raise HTTPException(404, f"组件 '{widget_id}' 不存在")
    return {"widget": clone.model_dump(mode="json"), **_session_payload(store)}


@router.put("/dashboards/{dashboard_id}/session/layout")
async def change_layout(dashboard_id: str, request: LayoutChangeRequest) -> dict[str, Any]:
    """
    接收一次拖拽释放后的完整布局。每次请求视为一个拖拽手势，
    最多产生一条撤销记录。
    """
    store = _open_session(dashboard_id)
    view = GridView(store)
    view.on_drag_start()
    try:
        changed = view.on_layout_change(request.breakpoint, request.layouts)
    except ValueError as e:
        view.on_drag_stop()
        logger.warning(f"[{dashboard_id}] 布局数据无效: {e}")
        raise HTTPException(422, f"布局数据无效: {e}")
    view.on_drag_stop()
    return {"changed": changed, **_session_payload(store)}


@router.post("/dashboards/{dashboard_id}/session/undo")
async def undo(dashboard_id: str) -> dict[str, Any]:
    store = _open_session(dashboard_id)
    restored = store.undo()
    return {"applied": restored is not None, **_session_payload(store)}


@router.post("/dashboards/{dashboard_id}/session/redo")
async def redo(dashboard_id: str) -> dict[str, Any]:
    store = _open_session(dashboard_id)
    restored = store.redo()
    return {"applied": restored is not None, **_session_payload(store)}


@router.post("/dashboards/{dashboard_id}/session/reset")
async def reset_session(dashboard_id: str) -> dict[str, Any]:
    store = _open_session(dashboard_id)
    store.reset_session()
    return _session_payload(store)


@router.post("/dashboards/{dashboard_id}/session/save")
async def save_session(dashboard_id: str) -> dict[str, Any]:
    """
    保存当前快照。只有持久化成功后才清除 has_changes。
    """
    store = _open_session(dashboard_id)
    result = _data_controller.save_snapshot(dashboard_id, store.snapshot())
    if not result.ok:
        logger.error(f"[{dashboard_id}] 保存失败: {result.message}")
        raise HTTPException(500, f"保存失败: {result.message}")

    store.mark_saved()
    _resource_manager.touch(dashboard_id)
    return {"result": result.model_dump(mode="json"), **_session_payload(store)}
