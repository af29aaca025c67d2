"""
Layout geometry: pure functions over per-breakpoint grid placements.

None of these functions mutate their inputs. Every function returns a new
Layout, so snapshots held in undo/redo history stay untouched.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from dashboard.errors import InvariantViolation
from dashboard.models import (
    BREAKPOINT_COLUMNS,
    BREAKPOINTS,
    Breakpoint,
    Layout,
    LayoutEntry,
    Widget,
    WidgetKind,
    empty_layout,
)

logger = logging.getLogger(__name__)

# (w, h) on the widest breakpoint
DEFAULT_SIZES: Dict[WidgetKind, Tuple[int, int]] = {
    WidgetKind.LINE: (6, 4),
    WidgetKind.BAR: (6, 4),
    WidgetKind.PIE: (4, 4),
    WidgetKind.KPI: (3, 2),
    WidgetKind.TEXT: (4, 3),
}

# Narrow breakpoints always span the full row
_FULL_WIDTH = {Breakpoint.XS, Breakpoint.XXS}


def _breakpoint_keys(*layouts: Mapping[str, Any]) -> List[str]:
    """Recognized breakpoints first, then any extra keys in encounter order."""
    keys = [bp.value for bp in BREAKPOINTS]
    for layout in layouts:
        for key in layout:
            key = key.value if isinstance(key, Breakpoint) else key
            if key not in keys:
                keys.append(key)
    return keys


def default_geometry_for(widget_id: str, kind: WidgetKind) -> Layout:
    """Default placement at (0, 0) on every breakpoint, sized by widget kind."""
    w, h = DEFAULT_SIZES[WidgetKind(kind)]
    geometry: Layout = {}
    for bp in BREAKPOINTS:
        columns = BREAKPOINT_COLUMNS[bp]
        width = columns if bp in _FULL_WIDTH else min(w, columns)
        geometry[bp.value] = (LayoutEntry(widget_id=widget_id, x=0, y=0, w=width, h=h),)
    return geometry


def merge(existing: Layout, addition: Layout) -> Layout:
    """
    Breakpoint-wise concatenation. No collision resolution: the grid engine
    compacts overlapping items, and callers that care use place_below().
    """
    return {
        key: tuple(existing.get(key, ())) + tuple(addition.get(key, ()))
        for key in _breakpoint_keys(existing, addition)
    }


def remove_widget(layout: Layout, widget_id: str) -> Layout:
    return {
        key: tuple(entry for entry in entries if entry.widget_id != widget_id)
        for key, entries in layout.items()
    }


def reposition_widget(
    layout: Layout,
    widget_id: str,
    update: Mapping[str, int],
    breakpoint: Optional[str] = None,
) -> Layout:
    """
    Replace fields of the matching entry. Applies to every breakpoint unless
    `breakpoint` is given. The widget id itself cannot be changed.
    """
    changes = {k: v for k, v in update.items() if k in ("x", "y", "w", "h")}
    result: Layout = {}
    for key, entries in layout.items():
        if breakpoint is not None and key != breakpoint:
            result[key] = tuple(entries)
            continue
        result[key] = tuple(
            LayoutEntry.model_validate({**entry.model_dump(), **changes})
            if entry.widget_id == widget_id else entry
            for entry in entries
        )
    return result


def next_free_row(entries: Iterable[LayoutEntry]) -> int:
    return max((entry.y + entry.h for entry in entries), default=0)


def place_below(existing: Layout, addition: Layout) -> Layout:
    """Merge `addition` with its entries moved to the first empty row at x=0."""
    shifted: Layout = {}
    for key, entries in addition.items():
        row = next_free_row(existing.get(key, ()))
        shifted[key] = tuple(entry.model_copy(update={"x": 0, "y": row}) for entry in entries)
    return merge(existing, shifted)


def entry_for(layout: Layout, breakpoint: str, widget_id: str) -> Optional[LayoutEntry]:
    for entry in layout.get(breakpoint, ()):
        if entry.widget_id == widget_id:
            return entry
    return None


# ── Consistency ─────────────────────────────────────

def normalize_layout(
    raw: Mapping[str, Iterable[Any]],
    widgets: Sequence[Widget],
    fallback: Optional[Layout] = None,
) -> Layout:
    """
    Consistency pass over a layout reported by the grid engine.

    - raw dicts are validated into LayoutEntry (the grid's "i" key is accepted)
    - unknown breakpoints and entries for unknown widgets are dropped
    - duplicate entries for one widget collapse into the last one reported
    - widgets missing from a breakpoint get their entry from `fallback`,
      or default geometry if the fallback has none either
    """
    fallback = fallback or empty_layout()
    kinds = {w.id: w.kind for w in widgets}
    result: Layout = {}

    for bp in BREAKPOINTS:
        reported: Dict[str, LayoutEntry] = {}
        for item in raw.get(bp.value) or ():
            entry = item if isinstance(item, LayoutEntry) else LayoutEntry.model_validate(item)
            if entry.widget_id not in kinds:
                logger.debug(f"[{entry.widget_id}] Dropping geometry without widget ({bp.value})")
                continue
            reported[entry.widget_id] = entry

        entries = list(reported.values())
        for widget_id, kind in kinds.items():
            if widget_id in reported:
                continue
            previous = entry_for(fallback, bp.value, widget_id)
            entries.append(previous or default_geometry_for(widget_id, kind)[bp.value][0])
        result[bp.value] = tuple(entries)

    dropped = set(raw) - {bp.value for bp in BREAKPOINTS}
    if dropped:
        logger.debug(f"Ignoring unknown breakpoints: {sorted(str(k) for k in dropped)}")
    return result


def check_consistency(widgets: Sequence[Widget], layout: Layout) -> List[str]:
    """List every mismatch between widgets and layout. Empty means consistent."""
    problems = []
    widget_ids = [w.id for w in widgets]
    if len(set(widget_ids)) != len(widget_ids):
        problems.append("duplicate widget ids")

    known = set(widget_ids)
    for bp in BREAKPOINTS:
        entries = layout.get(bp.value)
        if entries is None:
            problems.append(f"{bp.value}: breakpoint missing")
            continue
        placed = [entry.widget_id for entry in entries]
        for widget_id in known:
            count = placed.count(widget_id)
            if count != 1:
                problems.append(f"{bp.value}: widget {widget_id} has {count} entries")
        for widget_id in set(placed) - known:
            problems.append(f"{bp.value}: entry for unknown widget {widget_id}")
    return problems


def assert_consistent(widgets: Sequence[Widget], layout: Layout) -> None:
    problems = check_consistency(widgets, layout)
    if problems:
        raise InvariantViolation("; ".join(problems))
