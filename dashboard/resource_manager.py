"""
Resource Manager: JSON-based storage for dashboard metadata
(name, description, visibility). Widgets and layout are stored as snapshots
by the DataController.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from dashboard.models import StoredDashboard

logger = logging.getLogger(__name__)


class DashboardResourceManager:
    """Manages stored dashboards in a single JSON file."""

    def __init__(self, data_dir: Path = Path("data"), filename: str = "dashboards_meta.json"):
        self.data_dir = Path(data_dir)
        self.dashboards_file = self.data_dir / filename

        # Ensure data directory exists
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def load_dashboards(self) -> List[StoredDashboard]:
        """Load all stored dashboards, most recently updated first."""
        if not self.dashboards_file.exists():
            return []
        try:
            with open(self.dashboards_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            dashboards = [StoredDashboard.model_validate(item) for item in data]
        except (OSError, json.JSONDecodeError, PydanticValidationError) as e:
            logger.error(f"Failed to load dashboards: {e}")
            return []
        dashboards.sort(key=lambda d: d.updated_at, reverse=True)
        return dashboards

    def get_dashboard(self, dashboard_id: str) -> Optional[StoredDashboard]:
        for d in self.load_dashboards():
            if d.id == dashboard_id:
                return d
        return None

    def save_dashboard(self, dashboard: StoredDashboard) -> StoredDashboard:
        """Create or update a dashboard. created_at of an existing entry is kept."""
        dashboards = self.load_dashboards()
        existing = next((d for d in dashboards if d.id == dashboard.id), None)

        update = {"updated_at": datetime.now()}
        if existing is not None:
            update["created_at"] = existing.created_at
        saved = dashboard.model_copy(update=update)

        dashboards = [saved if d.id == saved.id else d for d in dashboards]
        if existing is None:
            dashboards.append(saved)

        self._write(dashboards)
        return saved

    def touch(self, dashboard_id: str) -> Optional[StoredDashboard]:
        """Bump updated_at after a successful snapshot save."""
        dashboard = self.get_dashboard(dashboard_id)
        if dashboard is None:
            return None
        return self.save_dashboard(dashboard)

    def delete_dashboard(self, dashboard_id: str) -> bool:
        dashboards = self.load_dashboards()
        remaining = [d for d in dashboards if d.id != dashboard_id]

        if len(remaining) < len(dashboards):
            self._write(remaining)
            return True
        return False

    def _write(self, dashboards: List[StoredDashboard]):
        with open(self.dashboards_file, "w", encoding="utf-8") as f:
            json.dump([d.model_dump(mode="json") for d in dashboards], f, indent=2, ensure_ascii=False)
