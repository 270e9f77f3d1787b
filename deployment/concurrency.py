"""
ConcurrencyRegistry - fleet-wide throttling of same-named tasks.
ConcurrencyRegistry：同名任务在整个集群范围内的并发限流。

Every task named e.g. "deploy" shares one slot, no matter which node owns
it. A slot holds a `maximum` (0 = unlimited) and a `current` counter of
instances in the running state.

所有同名任务（例如 "deploy"）共享一个槽位，与任务归属哪个节点无关。
槽位包含 `maximum`（0 表示不限制）和 `current`（当前处于 running 的实例数）。

The registry is owned by the Process and handed by reference to each Task;
it is created empty, filled while the task set is assembled and dropped
together with the Process.
注册表由 Process 持有，并以引用方式传给每个 Task；
任务集组装时创建，运行期间读写，随 Process 一起释放。
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel

from deployment.errors import InvalidArgument

logger = logging.getLogger(__name__)


class ConcurrencySlot(BaseModel):
    """Limit and counter for one task name. 单个任务名的上限与计数。"""
    maximum: int = 0   # 0 = 不限制
    current: int = 0   # 当前 running 实例数，永不小于 0


def _key(task_or_name: Any) -> str:
    """Tasks are keyed by their name; plain values are stringified."""
    return str(getattr(task_or_name, "name", task_or_name))


def _to_int(value: Any, what: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f"{what} should be an integer number, got: {value!r}") from None


class ConcurrencyRegistry:
    """
    Mapping from task name to its ConcurrencySlot.
    任务名 -> ConcurrencySlot 的映射。
    """

    def __init__(self) -> None:
        self._slots: dict[str, ConcurrencySlot] = {}

    def slot(self, task_or_name: Any) -> ConcurrencySlot:
        """Return the slot for a name, creating an empty one on first use."""
        key = _key(task_or_name)
        if key not in self._slots:
            self._slots[key] = ConcurrencySlot()
        return self._slots[key]

    # ------------------------------------------------------------------
    # Maximum
    # 并发上限
    # ------------------------------------------------------------------

    def maximum(self, task_or_name: Any) -> int:
        return self.slot(task_or_name).maximum

    def set_maximum(self, task_or_name: Any, value: Any) -> int:
        slot = self.slot(task_or_name)
        slot.maximum = _to_int(value, "Maximum concurrency")
        logger.debug("[Concurrency] %s: maximum set to %d", _key(task_or_name), slot.maximum)
        return slot.maximum

    def is_limited(self, task_or_name: Any) -> bool:
        return self.maximum(task_or_name) > 0

    # ------------------------------------------------------------------
    # Current counter
    # 当前计数
    # ------------------------------------------------------------------

    def current(self, task_or_name: Any) -> int:
        return self.slot(task_or_name).current

    def set_current(self, task_or_name: Any, value: Any) -> int:
        slot = self.slot(task_or_name)
        slot.current = max(0, _to_int(value, "Current concurrency"))
        return slot.current

    def increase(self, task_or_name: Any) -> int:
        slot = self.slot(task_or_name)
        slot.current += 1
        return slot.current

    def decrease(self, task_or_name: Any) -> int:
        # floor at zero: histories may leave running more often than they entered it
        slot = self.slot(task_or_name)
        slot.current = max(0, slot.current - 1)
        return slot.current

    def reset(self, task_or_name: Any) -> int:
        slot = self.slot(task_or_name)
        slot.current = 0
        return slot.current

    def available(self, task_or_name: Any) -> bool:
        """
        True if another instance of this name may enter running.
        当该任务名还能再启动一个实例时返回 True（未设上限时恒为 True）。
        """
        slot = self.slot(task_or_name)
        if slot.maximum <= 0:
            return True
        return slot.current < slot.maximum

    # ------------------------------------------------------------------
    # Merging
    # 合并
    # ------------------------------------------------------------------

    def merge(self, other: ConcurrencyRegistry) -> None:
        """
        Fold another registry into this one.
        将另一个注册表合并进来。

        A limit from `other` is taken only where this registry has none;
        counters keep the larger of the two values.
        仅当本注册表未设置上限时才采用 `other` 的上限；计数取两者较大值。
        """
        if other is self:
            return
        for key, theirs in other._slots.items():
            ours = self.slot(key)
            if ours.maximum <= 0 and theirs.maximum > 0:
                ours.maximum = theirs.maximum
            ours.current = max(ours.current, theirs.current)

    def names(self) -> list[str]:
        return list(self._slots)

    def __contains__(self, task_or_name: Any) -> bool:
        return _key(task_or_name) in self._slots

    def __repr__(self) -> str:
        parts = [f"{k}={s.current}/{s.maximum}" for k, s in self._slots.items() if s.maximum > 0]
        return f"ConcurrencyRegistry[{', '.join(parts)}]"
