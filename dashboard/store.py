"""
编辑会话状态：持有组件列表、各断点布局、编辑模式标志与撤销/重做历史。
所有状态变更都经由 EditSessionStore 的方法完成，外部不持有可变副本。
"""

import copy
import logging
import re
import time
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple

from dashboard import layout as geometry
from dashboard.catalog import WidgetCatalog, parse_kind
from dashboard.errors import ValidationError
from dashboard.models import Layout, SessionSnapshot, Widget, empty_layout
from dashboard.session_state import SessionFlags

logger = logging.getLogger(__name__)

DEFAULT_TITLE_MAX_LENGTH = 50
DEFAULT_COPY_SUFFIX = " (copy)"

# 只匹配形如标签的片段（"<" 后紧跟字母或 "/"），"a < b > c" 这类文本保留
_TAG_RE = re.compile(r"</?[A-Za-z][^>]*>")

# edit_widget 中区分“未传入”和“显式置空”
_UNSET: Any = object()

Listener = Callable[["EditSessionStore"], None]


def sanitize_title(title: Any, max_length: int = DEFAULT_TITLE_MAX_LENGTH) -> str:
    """去除 HTML 标签与首尾空白，并校验长度。不合法时抛出 ValidationError。"""
    if not isinstance(title, str):
        raise ValidationError("Widget title must be a string")
    cleaned = _TAG_RE.sub("", title).strip()
    if not cleaned:
        raise ValidationError("Widget title cannot be empty")
    if len(cleaned) > max_length:
        raise ValidationError(f"Widget title cannot exceed {max_length} characters")
    return cleaned


def _detach(widgets: Sequence[Widget]) -> Tuple[Widget, ...]:
    """深拷贝组件。Widget 虽为 frozen，config 字典仍可变，进出会话时都要切断共享。"""
    return tuple(w.model_copy(deep=True) for w in widgets)


def timestamp_id_factory(prefix: str = "widget") -> Callable[[], str]:
    """基于毫秒时间戳生成组件 ID。"""
    def _next_id() -> str:
        return f"{prefix}-{int(time.time() * 1000)}"
    return _next_id


class EditSessionStore:
    """
    单个仪表盘编辑界面的会话状态。

    结构性操作（add / delete / duplicate / edit）会先把修改前的快照压入
    撤销栈并清空重做栈；布局拖拽通过 replace_layout 直接写入，
    一次拖拽手势最多合并为一条撤销记录。
    """

    def __init__(
        self,
        catalog: WidgetCatalog | None = None,
        id_factory: Callable[[], str] | None = None,
        title_max_length: int = DEFAULT_TITLE_MAX_LENGTH,
        copy_suffix: str = DEFAULT_COPY_SUFFIX,
    ):
        self._catalog = catalog or WidgetCatalog()
        self._id_factory = id_factory or timestamp_id_factory()
        self._title_max_length = title_max_length
        self._copy_suffix = copy_suffix

        self._widgets: Tuple[Widget, ...] = ()
        self._layout: Layout = empty_layout()
        self._flags = SessionFlags()
        self._undo_stack: List[SessionSnapshot] = []
        self._redo_stack: List[SessionSnapshot] = []
        # 拖拽开始时的快照
        self._gesture_origin: Optional[SessionSnapshot] = None
        self._listeners: List[Listener] = []

    @classmethod
    def from_config(cls, config, catalog: WidgetCatalog | None = None, id_factory=None) -> "EditSessionStore":
        """根据 AppConfig 创建会话。"""
        return cls(
            catalog=catalog or WidgetCatalog.from_config(config),
            id_factory=id_factory or timestamp_id_factory(config.editor.id_prefix),
            title_max_length=config.editor.title_max_length,
            copy_suffix=config.editor.copy_suffix,
        )

    # ── 读取 ──────────────────────────────────────────

    @property
    def widgets(self) -> Tuple[Widget, ...]:
        return _detach(self._widgets)

    @property
    def layout(self) -> Layout:
        return dict(self._layout)

    @property
    def flags(self) -> SessionFlags:
        return self._flags.model_copy()

    @property
    def is_edit_mode(self) -> bool:
        return self._flags.is_edit_mode

    @property
    def has_changes(self) -> bool:
        return self._flags.has_changes

    @property
    def undo_stack(self) -> Tuple[SessionSnapshot, ...]:
        return tuple(s.model_copy(deep=True) for s in self._undo_stack)

    @property
    def redo_stack(self) -> Tuple[SessionSnapshot, ...]:
        return tuple(s.model_copy(deep=True) for s in self._redo_stack)

    @property
    def undo_depth(self) -> int:
        return len(self._undo_stack)

    @property
    def redo_depth(self) -> int:
        return len(self._redo_stack)

    @property
    def can_undo(self) -> bool:
        return bool(self._undo_stack)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo_stack)

    @property
    def in_layout_gesture(self) -> bool:
        return self._gesture_origin is not None

    @property
    def catalog(self) -> WidgetCatalog:
        return self._catalog

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(widgets=_detach(self._widgets), layout=dict(self._layout))

    def get_widget(self, widget_id: str) -> Optional[Widget]:
        widget = self._find(widget_id)
        return widget.model_copy(deep=True) if widget is not None else None

    def _find(self, widget_id: str) -> Optional[Widget]:
        for widget in self._widgets:
            if widget.id == widget_id:
                return widget
        return None

    # ── 订阅 ──────────────────────────────────────────

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """注册状态变更回调，返回取消订阅函数。"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _notify(self):
        for listener in list(self._listeners):
            listener(self)

    # ── 底层写入 ──────────────────────────────────────

    def _set_widgets(self, widgets: Sequence[Widget]):
        self._widgets = tuple(widgets)
        self._flags.has_changes = True
        self._flags.has_been_modified = True

    def _set_layout(self, layout: Layout):
        self._layout = dict(layout)
        self._flags.has_changes = True
        self._flags.has_been_modified = True

    def _flush_gesture(self) -> bool:
        """
        结束进行中的拖拽手势：布局有变化时，把拖拽前的快照单独压入撤销栈。
        返回是否记录了历史。
        """
        origin, self._gesture_origin = self._gesture_origin, None
        if origin is None or origin.layout == self._layout:
            return False
        self._undo_stack.append(origin)
        self._redo_stack.clear()
        return True

    def _push_history(self):
        """把当前快照压入撤销栈，并使重做历史失效。"""
        # 拖拽到一半发生结构性修改时，拖拽本身先成为一条记录
        self._flush_gesture()
        self._undo_stack.append(self.snapshot())
        self._redo_stack.clear()

    def _restore(self, snapshot: SessionSnapshot):
        self._widgets = _detach(snapshot.widgets)
        self._layout = dict(snapshot.layout)

    def replace_widgets(self, widgets: Sequence[Widget | Mapping[str, Any]]):
        """
        直接替换组件列表，不记录撤销历史。
        面向用户的结构性修改请使用 add_widget 等方法。
        """
        self._set_widgets(_detach(
            [w if isinstance(w, Widget) else Widget.model_validate(w) for w in widgets]
        ))
        self._notify()

    def replace_layout(self, layout: Mapping[str, Any]) -> Layout:
        """
        直接替换布局（网格拖拽结果），不记录撤销历史，也不清空重做栈。
        写入前做一致性整理：丢弃未知组件的条目，补齐缺失的条目。
        面向用户的拖拽应包在 begin/end_layout_gesture 之间（GridView 会自动处理），
        否则之后的 redo() 会覆盖这次拖拽。
        """
        normalized = geometry.normalize_layout(layout, self._widgets, fallback=self._layout)
        self._set_layout(normalized)
        self._notify()
        return dict(normalized)

    # ── 编辑模式 ──────────────────────────────────────

    def set_edit_mode(self, on: bool):
        """切换编辑模式。不属于内容修改，不记录历史。"""
        on = bool(on)
        if not on and self._gesture_origin is not None:
            self.end_layout_gesture()
        self._flags.is_edit_mode = on
        logger.debug(f"编辑模式 -> {on}")
        self._notify()

    # ── 结构性操作 ────────────────────────────────────

    def _new_id(self) -> str:
        existing = {w.id for w in self._widgets}
        candidate = base = self._id_factory()
        suffix = 1
        while candidate in existing:
            candidate = f"{base}-{suffix}"
            suffix += 1
        return candidate

    def add_widget(
        self,
        kind: Any,
        title: Optional[str] = None,
        config: Optional[Mapping[str, Any]] = None,
        data_source_ref: Optional[str] = None,
    ) -> Widget:
        """按组件类型添加新组件，默认值来自组件目录。"""
        widget_kind = parse_kind(kind)
        defaults = self._catalog.defaults_for(widget_kind)
        final_title = defaults.title if title is None else sanitize_title(title, self._title_max_length)
        widget = Widget(
            id=self._new_id(),
            kind=widget_kind,
            title=final_title,
            config=copy.deepcopy(dict(config)) if config is not None else defaults.config,
            data_source_ref=data_source_ref,
        )

        self._push_history()
        self._set_widgets(self._widgets + (widget,))
        self._set_layout(geometry.merge(self._layout, geometry.default_geometry_for(widget.id, widget.kind)))
        logger.info(f"[{widget.id}] 已添加组件 ({widget.kind.value})")
        self._notify()
        return widget.model_copy(deep=True)

    def delete_widget(self, widget_id: str) -> bool:
        """删除组件及其所有断点上的布局。组件不存在时不做任何修改。"""
        widget = self._find(widget_id)
        if widget is None:
            logger.warning(f"[{widget_id}] 组件不存在，忽略删除 (现有: {[w.id for w in self._widgets]})")
            return False

        self._push_history()
        self._set_widgets(w for w in self._widgets if w.id != widget_id)
        self._set_layout(geometry.remove_widget(self._layout, widget_id))
        logger.info(f"[{widget_id}] 已删除组件 ({len(self._widgets)} 个剩余)")
        self._notify()
        return True

    def duplicate_widget(self, widget_id: str) -> Optional[Widget]:
        """复制组件：新 ID、标题加后缀，放置在下一空行。"""
        source = self._find(widget_id)
        if source is None:
            logger.warning(f"[{widget_id}] 组件不存在，忽略复制")
            return None

        clone = source.model_copy(update={
            "id": self._new_id(),
            "title": self._copy_title(source.title),
            "config": copy.deepcopy(source.config),
        })

        self._push_history()
        self._set_widgets(self._widgets + (clone,))
        self._set_layout(geometry.place_below(self._layout, geometry.default_geometry_for(clone.id, clone.kind)))
        logger.info(f"[{clone.id}] 已复制组件 {widget_id}")
        self._notify()
        return clone.model_copy(deep=True)

    def _copy_title(self, title: str) -> str:
        room = max(self._title_max_length - len(self._copy_suffix), 0)
        return (title[:room].rstrip() + self._copy_suffix)[: self._title_max_length]

    def edit_widget(
        self,
        widget_id: str,
        title: Optional[str] = None,
        config: Optional[Mapping[str, Any]] = None,
        data_source_ref: Optional[str] = _UNSET,
    ) -> Optional[Widget]:
        """
        修改组件内容（标题 / 配置 / 数据源）。先校验再写入历史；
        组件不存在或内容无变化时返回 None，不记录历史。
        """
        changes: dict = {}
        if title is not None:
            changes["title"] = sanitize_title(title, self._title_max_length)
        if config is not None:
            if not isinstance(config, Mapping):
                raise ValidationError("Widget config must be a mapping")
            changes["config"] = copy.deepcopy(dict(config))
        if data_source_ref is not _UNSET:
            if data_source_ref is not None and not isinstance(data_source_ref, str):
                raise ValidationError("Data source reference must be a string")
            changes["data_source_ref"] = data_source_ref

        target = self._find(widget_id)
        if target is None:
            logger.warning(f"[{widget_id}] 组件不存在，忽略编辑")
            return None
        if all(getattr(target, key) == value for key, value in changes.items()):
            return None

        updated = target.model_copy(update=changes)
        self._push_history()
        self._set_widgets(updated if w.id == widget_id else w for w in self._widgets)
        logger.info(f"[{widget_id}] 已更新组件: {', '.join(changes)}")
        self._notify()
        return updated.model_copy(deep=True)

    def edit_widget_title(self, widget_id: str, new_title: str) -> Optional[Widget]:
        if new_title is None:
            raise ValidationError("Widget title cannot be empty")
        return self.edit_widget(widget_id, title=new_title)

    # ── 布局拖拽手势 ──────────────────────────────────

    def begin_layout_gesture(self):
        """记录拖拽开始时的快照。"""
        if self._gesture_origin is None:
            self._gesture_origin = self.snapshot()

    def end_layout_gesture(self) -> bool:
        """
        结束拖拽：若布局发生变化，把拖拽前的快照作为一条撤销记录压栈。
        返回是否记录了历史。
        """
        if not self._flush_gesture():
            return False
        logger.debug("拖拽手势已合并为一条撤销记录")
        self._notify()
        return True

    # ── 撤销 / 重做 ───────────────────────────────────

    def undo(self) -> Optional[SessionSnapshot]:
        """
        恢复到上一快照并返回它。撤销栈为空时返回 None。
        拖拽进行中调用时，撤销的是这次拖拽。
        """
        self._flush_gesture()
        if not self._undo_stack:
            return None
        previous = self._undo_stack.pop()
        self._redo_stack.append(self.snapshot())
        self._restore(previous)
        self._flags.has_changes = True
        self._flags.has_been_modified = True
        logger.debug(f"撤销 (undo={len(self._undo_stack)}, redo={len(self._redo_stack)})")
        self._notify()
        return previous.model_copy(deep=True)

    def redo(self) -> Optional[SessionSnapshot]:
        """
        重新应用最近撤销的快照并返回它。重做栈为空时返回 None。
        拖拽进行中调用时，拖拽先成为新的历史分支，重做历史随之失效。
        """
        if self._flush_gesture():
            self._notify()
        if not self._redo_stack:
            return None
        following = self._redo_stack.pop()
        self._undo_stack.append(self.snapshot())
        self._restore(following)
        self._flags.has_changes = True
        self._flags.has_been_modified = True
        logger.debug(f"重做 (undo={len(self._undo_stack)}, redo={len(self._redo_stack)})")
        self._notify()
        return following.model_copy(deep=True)

    # ── 初始化 / 保存 / 重置 ──────────────────────────

    def apply_seed(self, snapshot: SessionSnapshot):
        """
        载入种子数据（由 SessionInitializer 调用）。
        不视为用户修改：has_changes 与 has_been_modified 保持不变为 False。
        """
        self._widgets = _detach(snapshot.widgets)
        self._layout = geometry.normalize_layout(snapshot.layout, self._widgets)
        self._flags.is_initialized = True
        self._flags.has_changes = False
        self._notify()

    def load_snapshot(self, snapshot: SessionSnapshot):
        """载入已保存的快照，清空历史。"""
        self._undo_stack.clear()
        self._redo_stack.clear()
        self._gesture_origin = None
        self.apply_seed(snapshot)
        logger.info(f"已载入快照 ({len(self._widgets)} 个组件)")

    def mark_saved(self):
        """由宿主在确认保存成功后调用。"""
        self._flags.has_changes = False
        self._notify()

    def reset_session(self):
        """恢复到初始空状态，包括历史与所有标志。"""
        self._widgets = ()
        self._layout = empty_layout()
        self._flags = SessionFlags()
        self._undo_stack = []
        self._redo_stack = []
        self._gesture_origin = None
        logger.info("会话已重置")
        self._notify()
