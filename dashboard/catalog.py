"""
Widget catalog: default title and configuration for each widget kind.
Overrides from the YAML config (e.g. localized titles) replace the built-in entries.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from dashboard.errors import ValidationError
from dashboard.models import WidgetKind

logger = logging.getLogger(__name__)


class WidgetDefaults(BaseModel):
    """What a freshly added widget of a given kind starts with."""
    title: str
    config: Dict[str, Any] = Field(default_factory=dict)
    label: str = Field(default="", description="Name shown in the add-widget picker")
    description: str = ""


DEFAULT_CATALOG: Dict[WidgetKind, WidgetDefaults] = {
    WidgetKind.LINE: WidgetDefaults(
        title="Line Chart",
        label="Line chart",
        description="Time-based data and trends",
        config={"height": 250, "showGrid": True, "showLegend": True},
    ),
    WidgetKind.BAR: WidgetDefaults(
        title="Bar Chart",
        label="Bar chart",
        description="Comparisons between categories",
        config={"height": 250, "horizontal": False, "stacked": False},
    ),
    WidgetKind.PIE: WidgetDefaults(
        title="Pie Chart",
        label="Pie chart",
        description="Shares and proportions",
        config={"height": 250, "doughnut": False},
    ),
    WidgetKind.KPI: WidgetDefaults(
        title="KPI Metric",
        label="KPI card",
        description="Highlight a key figure",
        config={"metric": "Total revenue", "value": 0, "unit": "currency"},
    ),
    WidgetKind.TEXT: WidgetDefaults(
        title="Text Widget",
        label="Text block",
        description="Descriptions and notes",
        config={"content": "Add your text here..."},
    ),
}


def parse_kind(kind: Any) -> WidgetKind:
    """Resolve a widget kind name, rejecting anything outside the catalog."""
    if isinstance(kind, WidgetKind):
        return kind
    try:
        return WidgetKind(kind)
    except ValueError:
        raise ValidationError(f"Unknown widget kind: {kind!r}") from None


class WidgetCatalog:
    """Pure lookup from widget kind to its defaults."""

    def __init__(self, overrides: Optional[Mapping[str, Mapping[str, Any]]] = None):
        self._entries: Dict[WidgetKind, WidgetDefaults] = {
            kind: entry.model_copy(deep=True) for kind, entry in DEFAULT_CATALOG.items()
        }
        for raw_kind, override in (overrides or {}).items():
            kind = parse_kind(raw_kind)
            merged = self._entries[kind].model_dump()
            for key, value in override.items():
                if value is None:
                    continue
                if key == "config" and isinstance(value, dict):
                    merged["config"] = {**merged["config"], **value}
                else:
                    merged[key] = value
            self._entries[kind] = WidgetDefaults.model_validate(merged)
            logger.debug(f"Catalog entry overridden: {kind.value}")

    @classmethod
    def from_config(cls, config) -> "WidgetCatalog":
        """Build the catalog from an AppConfig's `catalog` section."""
        overrides = {
            kind: entry.model_dump(exclude_none=True)
            for kind, entry in config.catalog.items()
        }
        return cls(overrides)

    def defaults_for(self, kind: Any) -> WidgetDefaults:
        # Callers may mutate the returned config freely
        return self._entries[parse_kind(kind)].model_copy(deep=True)

    def kinds(self) -> List[WidgetKind]:
        return list(self._entries)

    def describe(self) -> List[dict]:
        """Catalog listing for the add-widget picker."""
        return [
            {"kind": kind.value, **entry.model_dump()}
            for kind, entry in self._entries.items()
        ]
