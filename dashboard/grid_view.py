"""
Grid view glue: renders widgets positioned by the edit session's current layout
and forwards grid drag results back into the session.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from dashboard import layout as geometry
from dashboard.models import (
    BREAKPOINT_COLUMNS,
    BREAKPOINT_WIDTHS,
    BREAKPOINTS,
    ROW_HEIGHT,
    Breakpoint,
    LayoutEntry,
    Widget,
)
from dashboard.store import EditSessionStore

logger = logging.getLogger(__name__)


class WidgetActions(ABC):
    """Edit/delete/duplicate capability handed to every rendered widget."""

    @abstractmethod
    def edit(self, widget_id: str, title: Optional[str] = None,
             config: Optional[Mapping[str, Any]] = None) -> Optional[Widget]:
        ...

    @abstractmethod
    def delete(self, widget_id: str) -> bool:
        ...

    @abstractmethod
    def duplicate(self, widget_id: str) -> Optional[Widget]:
        ...


class StoreWidgetActions(WidgetActions):
    """WidgetActions backed by an EditSessionStore."""

    def __init__(self, store: EditSessionStore):
        self._store = store

    def edit(self, widget_id, title=None, config=None):
        return self._store.edit_widget(widget_id, title=title, config=config)

    def delete(self, widget_id):
        return self._store.delete_widget(widget_id)

    def duplicate(self, widget_id):
        return self._store.duplicate_widget(widget_id)


class GridItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    widget: Widget
    entry: LayoutEntry


class GridRender(BaseModel):
    """Everything the grid engine needs for one breakpoint."""
    breakpoint: Breakpoint
    columns: int
    row_height: int = ROW_HEIGHT
    is_draggable: bool = False
    is_resizable: bool = False
    items: List[GridItem]


def active_breakpoint(width: int) -> Breakpoint:
    """Widest breakpoint whose minimum width fits the viewport."""
    for bp in BREAKPOINTS:
        if width >= BREAKPOINT_WIDTHS[bp]:
            return bp
    return BREAKPOINTS[-1]


class GridView:
    """
    Holds no copy of widgets or layout: every render reads the store.
    """

    def __init__(self, store: EditSessionStore, actions: Optional[WidgetActions] = None):
        self._store = store
        self.actions = actions or StoreWidgetActions(store)

    def render(self, width: int) -> GridRender:
        bp = active_breakpoint(width)
        layout = self._store.layout
        items = []
        for widget in self._store.widgets:
            entry = geometry.entry_for(layout, bp.value, widget.id)
            if entry is None:
                logger.warning(f"[{widget.id}] No geometry at {bp.value}, not rendered")
                continue
            items.append(GridItem(widget=widget, entry=entry))
        items.sort(key=lambda item: (item.entry.y, item.entry.x))

        editable = self._store.is_edit_mode
        return GridRender(
            breakpoint=bp,
            columns=BREAKPOINT_COLUMNS[bp],
            is_draggable=editable,
            is_resizable=editable,
            items=items,
        )

    # ── Grid engine callbacks ──────────────────────────

    def on_drag_start(self):
        if self._store.is_edit_mode:
            self._store.begin_layout_gesture()

    def on_drag_stop(self) -> bool:
        """Close the gesture. Returns True if it produced an undo entry."""
        return self._store.end_layout_gesture()

    def on_layout_change(self, breakpoint: str, all_layouts: Mapping[str, Any]) -> bool:
        """
        Receive the full per-breakpoint layout from the grid engine.
        Ignored outside edit mode and when nothing moved (engines echo the
        layout back on mount). A change reported outside on_drag_start /
        on_drag_stop is treated as a gesture of its own, so it always gets an
        undo entry and invalidates redo. Returns True if the store was updated.
        """
        if not self._store.is_edit_mode:
            logger.debug(f"Layout change at {breakpoint} ignored outside edit mode")
            return False

        current = self._store.layout
        normalized = geometry.normalize_layout(all_layouts, self._store.widgets, fallback=current)
        if normalized == current:
            return False

        standalone = not self._store.in_layout_gesture
        if standalone:
            self._store.begin_layout_gesture()
        self._store.replace_layout(normalized)
        if standalone:
            self._store.end_layout_gesture()
        return True
