"""
会话初始化器：仅在会话从未初始化、也从未被用户修改时载入演示数据。
重复或延迟到达的初始化调用不会覆盖用户的修改。
"""

import logging
from typing import Optional

from dashboard.models import LayoutEntry, SessionSnapshot, Widget, WidgetKind
from dashboard.store import EditSessionStore

logger = logging.getLogger(__name__)


def _entries(*rows):
    return tuple(LayoutEntry(widget_id=i, x=x, y=y, w=w, h=h) for i, x, y, w, h in rows)


DEMO_WIDGETS = (
    Widget(id="widget-1", kind=WidgetKind.LINE, title="Revenue 2024", config={}),
    Widget(id="widget-2", kind=WidgetKind.BAR, title="Quarterly comparison", config={}),
    Widget(id="widget-3", kind=WidgetKind.PIE, title="Expense breakdown", config={}),
    Widget(
        id="widget-4",
        kind=WidgetKind.KPI,
        title="Total revenue",
        config={
            "metric": "Total revenue",
            "value": 125000,
            "previousValue": 118000,
            "unit": "currency",
            "trend": "up",
        },
    ),
)

DEMO_LAYOUT = {
    "lg": _entries(
        ("widget-1", 0, 0, 6, 4),
        ("widget-2", 6, 0, 6, 4),
        ("widget-3", 0, 4, 4, 4),
        ("widget-4", 4, 4, 3, 2),
    ),
    "md": _entries(
        ("widget-1", 0, 0, 5, 4),
        ("widget-2", 5, 0, 5, 4),
        ("widget-3", 0, 4, 4, 4),
        ("widget-4", 4, 4, 3, 2),
    ),
    "sm": _entries(
        ("widget-1", 0, 0, 6, 4),
        ("widget-2", 0, 4, 6, 4),
        ("widget-3", 0, 8, 6, 4),
        ("widget-4", 0, 12, 6, 2),
    ),
    "xs": _entries(
        ("widget-1", 0, 0, 4, 4),
        ("widget-2", 0, 4, 4, 4),
        ("widget-3", 0, 8, 4, 4),
        ("widget-4", 0, 12, 4, 2),
    ),
    "xxs": _entries(
        ("widget-1", 0, 0, 2, 4),
        ("widget-2", 0, 4, 2, 4),
        ("widget-3", 0, 8, 2, 4),
        ("widget-4", 0, 12, 2, 2),
    ),
}

DEMO_SNAPSHOT = SessionSnapshot(widgets=DEMO_WIDGETS, layout=DEMO_LAYOUT)


class SessionInitializer:
    """
    一次性初始化守卫。
    is_initialized 或 has_been_modified 任一为 True 时，initialize_demo_data 不做任何事。
    """

    def __init__(self, store: EditSessionStore, seed: Optional[SessionSnapshot] = None):
        self._store = store
        self._seed = seed if seed is not None else DEMO_SNAPSHOT

    @classmethod
    def from_config(cls, store: EditSessionStore, config) -> "SessionInitializer":
        return cls(store, seed=config.seed)

    @property
    def seed(self) -> SessionSnapshot:
        return self._seed

    def initialize_demo_data(self) -> bool:
        """载入演示数据。返回是否真正执行了载入。"""
        flags = self._store.flags
        if not flags.can_seed:
            logger.debug(
                f"跳过演示数据初始化 (initialized={flags.is_initialized}, modified={flags.has_been_modified})"
            )
            return False

        self._store.apply_seed(self._seed)
        logger.info(f"已载入演示数据 ({len(self._seed.widgets)} 个组件)")
        return True
