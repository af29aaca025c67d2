"""
配置加载器：将 YAML 配置文件解析为 Pydantic 模型。
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from dashboard.models import SessionSnapshot, WidgetKind

logger = logging.getLogger(__name__)

ROOT_ENV = "DASHBOARD_BUILDER_ROOT"


# ── 编辑器配置 ────────────────────────────────────────

class EditorConfig(BaseModel):
    title_max_length: int = Field(default=50, ge=1)
    copy_suffix: str = " (copy)"
    id_prefix: str = "widget"
    # 空闲超过该秒数且无未保存修改的会话会被关闭，0 表示不关闭
    session_idle_seconds: int = Field(default=1800, ge=0)


# ── 组件目录覆盖 ──────────────────────────────────────

class CatalogOverride(BaseModel):
    """覆盖某类组件的默认标题/配置（例如本地化）。"""
    title: Optional[str] = None
    label: Optional[str] = None
    description: Optional[str] = None
    config: Optional[Dict[str, Any]] = None


# ── 存储配置 ──────────────────────────────────────────

class StorageConfig(BaseModel):
    data_dir: str = "data"
    snapshots_file: str = "dashboards.json"
    dashboards_file: str = "dashboards_meta.json"


# ── 顶层配置 ──────────────────────────────────────────

class AppConfig(BaseModel):
    editor: EditorConfig = Field(default_factory=EditorConfig)
    catalog: Dict[str, CatalogOverride] = Field(default_factory=dict)
    # 为空时使用内置演示数据
    seed: Optional[SessionSnapshot] = None
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @field_validator("catalog")
    @classmethod
    def check_catalog_kinds(cls, value: Dict[str, CatalogOverride]) -> Dict[str, CatalogOverride]:
        known = {k.value for k in WidgetKind}
        unknown = sorted(set(value) - known)
        if unknown:
            raise ValueError(f"未知的组件类型: {', '.join(unknown)}")
        return value

    def data_path(self) -> Path:
        """数据目录（相对路径基于项目根目录）。"""
        path = Path(self.storage.data_dir)
        if path.is_absolute():
            return path
        return project_root() / path


# ── Loading ──────────────────────────────────────────

_CONFIG_SEARCH_PATHS = [
    "config/dashboard.yaml",
    "dashboard.yaml",
]


def project_root() -> Path:
    return Path(os.getenv(ROOT_ENV, "."))


def find_config_root() -> Path:
    """Find the root config file or directory."""
    base = project_root()
    config_dir = base / "config"
    if config_dir.is_dir():
        return config_dir

    for p in _CONFIG_SEARCH_PATHS:
        path = base / p
        if path.exists():
            return path

    # 未找到时返回根目录（将加载为空配置）
    return base


def deep_merge_dict(base: dict, update: dict) -> dict:
    """Deep merge two dictionaries. Lists in `update` replace lists in `base`."""
    for k, v in update.items():
        if isinstance(v, dict) and k in base and isinstance(base[k], dict):
            base[k] = deep_merge_dict(base[k], v)
        else:
            base[k] = v
    return base


def load_all_yamls(root: Path) -> dict:
    """Load and merge all YAML files under root (sorted by name, later files win)."""
    combined: dict = {}

    files = []
    if root.is_file():
        files.append(root)
    elif root.is_dir():
        files.extend(root.glob("*.yaml"))
        files.extend(root.glob("*.yml"))
        files.sort()

    for f in files:
        try:
            with open(f, "r", encoding="utf-8") as fp:
                content = yaml.safe_load(fp)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"加载配置文件失败 {f}: {e}")
            continue
        if not content:
            continue
        if not isinstance(content, dict):
            logger.warning(f"忽略非映射结构的配置文件: {f}")
            continue
        deep_merge_dict(combined, content)

    return combined


def load_config(path: Optional[str | Path] = None) -> AppConfig:
    """
    Load and merge configuration from YAML files.
    """
    if path is None:
        path = find_config_root()
    path = Path(path)

    raw = load_all_yamls(path)

    # Validation
    return AppConfig.model_validate(raw)
