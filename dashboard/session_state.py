"""
编辑会话的运行时标志。
包含标志模型与由标志推导出的会话阶段。
"""

from enum import Enum

from pydantic import BaseModel


class SessionPhase(str, Enum):
    FRESH = "fresh" # 从未初始化，也未被用户修改
    SEEDED = "seeded" # 已载入演示数据或已保存的数据
    USER_OWNED = "user_owned" # 用户已修改，永不再重新填充演示数据


class SessionFlags(BaseModel):
    """会话标志，仅由 EditSessionStore 修改。"""
    is_edit_mode: bool = False
    has_changes: bool = False # 自上次保存以来有未保存的修改
    is_initialized: bool = False
    has_been_modified: bool = False # 首次用户修改后置为 True，只有 reset 才会清除

    @property
    def phase(self) -> SessionPhase:
        if self.has_been_modified:
            return SessionPhase.USER_OWNED
        if self.is_initialized:
            return SessionPhase.SEEDED
        return SessionPhase.FRESH

    @property
    def can_seed(self) -> bool:
        return not (self.is_initialized or self.has_been_modified)
