"""
Data models for widgets, grid layouts and edit-session snapshots.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class WidgetKind(str, Enum):
    LINE = "line"
    BAR = "bar"
    PIE = "pie"
    KPI = "kpi"
    TEXT = "text"


class Breakpoint(str, Enum):
    LG = "lg"
    MD = "md"
    SM = "sm"
    XS = "xs"
    XXS = "xxs"


# Widest first
BREAKPOINTS: Tuple[Breakpoint, ...] = tuple(Breakpoint)

BREAKPOINT_COLUMNS: Dict[Breakpoint, int] = {
    Breakpoint.LG: 12,
    Breakpoint.MD: 10,
    Breakpoint.SM: 6,
    Breakpoint.XS: 4,
    Breakpoint.XXS: 2,
}

# Minimum viewport width in px for each breakpoint
BREAKPOINT_WIDTHS: Dict[Breakpoint, int] = {
    Breakpoint.LG: 1200,
    Breakpoint.MD: 996,
    Breakpoint.SM: 768,
    Breakpoint.XS: 480,
    Breakpoint.XXS: 0,
}

ROW_HEIGHT = 80


class Widget(BaseModel):
    """A single dashboard widget. Its geometry lives in the Layout, not here."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="Unique identifier, also the layout key")
    kind: WidgetKind
    title: str
    config: Dict[str, Any] = Field(default_factory=dict, description="Kind-specific settings")
    data_source_ref: Optional[str] = Field(default=None, description="Link to an external data source")


class LayoutEntry(BaseModel):
    """Placement of one widget at one breakpoint."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    # Grid engines report the widget key as "i"
    widget_id: str = Field(alias="i", description="Widget this placement belongs to")
    x: int = Field(default=0, ge=0, description="X position in grid columns")
    y: int = Field(default=0, ge=0, description="Y position in grid rows")
    w: int = Field(default=4, ge=1, description="Width in grid columns")
    h: int = Field(default=2, ge=1, description="Height in grid rows")


# breakpoint name -> ordered placements
Layout = Dict[str, Tuple[LayoutEntry, ...]]


def empty_layout() -> Layout:
    return {bp.value: () for bp in BREAKPOINTS}


class SessionSnapshot(BaseModel):
    """
    The {widgets, layout} pair handled as one unit by undo/redo history
    and by the persistence layer.
    """
    model_config = ConfigDict(frozen=True)

    widgets: Tuple[Widget, ...] = ()
    layout: Dict[str, Tuple[LayoutEntry, ...]] = Field(default_factory=empty_layout)

    def widget_ids(self) -> Tuple[str, ...]:
        return tuple(w.id for w in self.widgets)


class StoredDashboard(BaseModel):
    """Dashboard metadata. Widgets and layout are stored separately as snapshots."""
    id: str
    name: str
    description: str = ""
    is_public: bool = False
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class SaveErrorType(str, Enum):
    INVALID_REQUEST = "invalid_request"
    STORAGE_ERROR = "storage_error"


class SaveResult(BaseModel):
    """Outcome of handing a snapshot to the persistence layer."""
    ok: bool
    dashboard_id: str
    revision: Optional[int] = None
    saved_at: Optional[float] = None
    error: Optional[SaveErrorType] = None
    message: Optional[str] = None
