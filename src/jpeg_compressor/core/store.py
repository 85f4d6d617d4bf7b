"""条目状态存储：条目 id 到 Item 的有序映射。"""

from __future__ import annotations

import dataclasses
import logging
import threading
from typing import Callable, Dict, Iterable, List, Optional

from jpeg_compressor.core.models import Item, StoreChange, StoreSnapshot

LOGGER = logging.getLogger(__name__)

StoreObserver = Callable[[StoreChange], None]


class ItemStateStore:
    """线程安全的内存存储。

    所有修改都以整体替换不可变 Item 的方式在锁内完成，
    其他线程读取快照时只会看到修改前或修改后的完整状态。
    观察者在锁外、按注册顺序被调用。
    """

    def __init__(self) -> None:
        self._items: Dict[str, Item] = {}
        self._version = 0
        self._lock = threading.Lock()
        self._observers: List[StoreObserver] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        with self._lock:
            return item_id in self._items

    @property
    def version(self) -> int:
        return self._version

    def get(self, item_id: str) -> Optional[Item]:
        with self._lock:
            return self._items.get(item_id)

    def snapshot(self) -> StoreSnapshot:
        """按提交顺序返回快照。"""

        with self._lock:
            return self._snapshot_locked()

    def display_snapshot(self) -> tuple[Item, ...]:
        """按展示顺序返回条目：最新一次提交在前，同一次提交内保持提交顺序。"""

        items = self.snapshot().items
        return tuple(sorted(items, key=lambda item: (-item.batch, item.sequence)))

    def subscribe(self, observer: StoreObserver) -> Callable[[], None]:
        """注册观察者，返回取消注册的函数。"""

        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def append(self, items: Iterable[Item]) -> tuple[str, ...]:
        """追加一组新条目，整组作为一次修改。"""

        new_items = list(items)
        if not new_items:
            return ()
        with self._lock:
            for item in new_items:
                if item.id in self._items:
                    raise ValueError(f"重复的条目 id: {item.id}")
            for item in new_items:
                self._items[item.id] = item
            change = self._commit_locked("added", tuple(item.id for item in new_items))
        self._notify(change)
        return change.item_ids

    def update(self, item_id: str, **changes: object) -> Optional[Item]:
        """按 id 原地更新字段；条目不存在时不做任何事并返回 None。"""

        with self._lock:
            current = self._items.get(item_id)
            if current is None:
                LOGGER.debug("忽略对已移除条目的更新：%s", item_id)
                return None
            updated = dataclasses.replace(current, **changes)
            self._items[item_id] = updated
            change = self._commit_locked("updated", (item_id,))
        self._notify(change)
        return updated

    def remove(self, item_id: str) -> Optional[Item]:
        """移除条目并返回被移除的 Item。"""

        with self._lock:
            removed = self._items.pop(item_id, None)
            if removed is None:
                return None
            change = self._commit_locked("removed", (item_id,))
        self._notify(change)
        return removed

    def clear(self) -> tuple[Item, ...]:
        """移除全部条目，返回被移除的条目。"""

        with self._lock:
            removed = tuple(self._items.values())
            if not removed:
                return ()
            self._items.clear()
            change = self._commit_locked("cleared", tuple(item.id for item in removed))
        self._notify(change)
        return removed

    def _snapshot_locked(self) -> StoreSnapshot:
        return StoreSnapshot(version=self._version, items=tuple(self._items.values()))

    def _commit_locked(self, kind: str, item_ids: tuple[str, ...]) -> StoreChange:
        self._version += 1
        return StoreChange(kind=kind, item_ids=item_ids, snapshot=self._snapshot_locked())

    def _notify(self, change: StoreChange) -> None:
        for observer in list(self._observers):
            try:
                observer(change)
            except Exception:  # noqa: BLE001
                LOGGER.exception("存储观察者处理 %s 通知时出错", change.kind)
