"""
Task - a single deployment action with mirrored dependency edges.
Task：单个部署动作，带有双向镜像的依赖边。

A Task knows:
  - backward_dependencies: tasks that must finish before it may run
  - forward_dependencies:  tasks that wait for it
  - its own status, its node and an opaque data payload

Task 包含：
  - backward_dependencies：运行前必须完成的任务（前置依赖）
  - forward_dependencies： 依赖本任务的任务（后继任务）
  - 自身状态、所属节点以及不透明的数据载荷

Readiness is memoized per task and invalidated by `reset()`, which walks
the forward edges so that every dependent recomputes on its next query.
就绪性按任务缓存，由 `reset()` 失效；reset 会沿前向边传播，
保证所有下游任务在下次查询时重新计算。
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterable

from deployment.concurrency import ConcurrencyRegistry
from deployment.errors import InvalidArgument, InvalidStatus
from schema import DEPENDENCY_CHANGING_STATUSES, TaskStatus

if TYPE_CHECKING:
    from deployment.node import Node

logger = logging.getLogger(__name__)


def _reset_tasks(tasks: Iterable[Task]) -> None:
    """
    Clear the memoized readiness of `tasks` and of everything downstream.
    清除 `tasks` 及其全部下游任务的就绪缓存。

    Visited tasks are tracked, so a cyclic graph (rejected later by the
    pre-flight loop check) cannot make this walk forever.
    记录已访问任务，即使图中有环（稍后由预检拒绝）也不会无限遍历。
    """
    seen: set[Task] = set()
    stack = list(tasks)
    while stack:
        task = stack.pop()
        if task in seen:
            continue
        seen.add(task)
        task._dependencies_are_ready = None
        task._dependencies_have_failed = None
        stack.extend(task.forward_dependencies)


class Task:
    """
    A named unit of work owned by one node.
    属于某个节点的、具名的工作单元。
    """

    def __init__(
        self,
        name: Any,
        node: Node,
        data: Any = None,
        concurrency: ConcurrencyRegistry | None = None,
    ):
        self._name = str(name)
        self._node: Node | None = None
        self._status = TaskStatus.PENDING
        self.backward_dependencies: set[Task] = set()   # 前置依赖
        self.forward_dependencies: set[Task] = set()    # 后继任务
        # Tri-state memo: None = unknown, True / False = computed
        # 三态缓存：None 表示未知，True / False 为已计算结果
        self._dependencies_are_ready: bool | None = None
        self._dependencies_have_failed: bool | None = None
        self.data = data
        self.node = node
        self.concurrency = concurrency if concurrency is not None else node.concurrency

    # ------------------------------------------------------------------
    # Attributes
    # 基本属性
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @name.setter
    def name(self, value: Any) -> None:
        self._name = str(value)

    @property
    def node(self) -> Node:
        return self._node

    @node.setter
    def node(self, value: Node) -> None:
        from deployment.node import Node

        if not isinstance(value, Node):
            raise InvalidArgument(f"{self}: Not a node used instead of the task node")
        self._node = value

    @property
    def status(self) -> TaskStatus:
        return self._status

    @status.setter
    def status(self, value: TaskStatus | str) -> None:
        self.set_status(value)

    def set_status(self, value: TaskStatus | str) -> TaskStatus:
        """
        Validate and apply a new status.
        校验并应用新状态。

        The shared concurrency counter is adjusted before the change; a
        finishing status (successful / failed / skipped) then resets every
        forward dependent so they re-evaluate their readiness.
        变更前先调整共享并发计数；若进入终态（成功/失败/跳过），
        则级联 reset 所有后继任务，使其重新评估就绪性。
        """
        try:
            new_status = TaskStatus(value)
        except ValueError:
            raise InvalidStatus(f"{self}: Invalid task status: {value}") from None

        self._status_changes_concurrency(self._status, new_status)
        self._status = new_status
        if new_status in DEPENDENCY_CHANGING_STATUSES:
            _reset_tasks([self])
        else:
            self._dependencies_are_ready = None
            self._dependencies_have_failed = None
        return new_status

    def set_status_pending(self) -> TaskStatus:
        return self.set_status(TaskStatus.PENDING)

    def set_status_running(self) -> TaskStatus:
        return self.set_status(TaskStatus.RUNNING)

    def set_status_successful(self) -> TaskStatus:
        return self.set_status(TaskStatus.SUCCESSFUL)

    def set_status_failed(self) -> TaskStatus:
        return self.set_status(TaskStatus.FAILED)

    def set_status_skipped(self) -> TaskStatus:
        return self.set_status(TaskStatus.SKIPPED)

    # ------------------------------------------------------------------
    # Memoization
    # 缓存失效
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """
        Forget the memoized readiness of this task and of all its dependents.
        清除本任务及其所有后继任务的就绪缓存。
        """
        _reset_tasks([self])

    def reset_forward(self) -> None:
        """Reset only the tasks downstream of this one. 仅重置下游任务。"""
        _reset_tasks(self.forward_dependencies)

    # ------------------------------------------------------------------
    # Dependency edges
    # 依赖边（始终成对维护）
    # ------------------------------------------------------------------

    def _check_task(self, task: Any) -> None:
        if not isinstance(task, Task):
            raise InvalidArgument(f"{self}: Dependency should be a task, got: {task!r}")

    def add_backward_dependency(self, task: Task) -> Task:
        """
        `task` must finish before this task may run.
        添加前置依赖：`task` 完成后本任务才能运行。
        """
        self._check_task(task)
        self.backward_dependencies.add(task)
        task.forward_dependencies.add(self)
        self.reset()
        return task

    def add_forward_dependency(self, task: Task) -> Task:
        """
        `task` waits for this task.
        添加后继任务：`task` 需要等待本任务完成。
        """
        self._check_task(task)
        self.forward_dependencies.add(task)
        task.backward_dependencies.add(self)
        self.reset()
        return task

    requires = add_backward_dependency
    after = add_backward_dependency
    is_required = add_forward_dependency
    before = add_forward_dependency

    def remove_backward_dependency(self, task: Task) -> Task:
        self._check_task(task)
        self.backward_dependencies.discard(task)
        task.forward_dependencies.discard(self)
        self.reset()
        task.reset()
        return task

    def remove_forward_dependency(self, task: Task) -> Task:
        self._check_task(task)
        self.forward_dependencies.discard(task)
        task.backward_dependencies.discard(self)
        self.reset()
        task.reset()
        return task

    def has_backward_dependency(self, task: Task) -> bool:
        self._check_task(task)
        return task in self.backward_dependencies and self in task.forward_dependencies

    def has_forward_dependency(self, task: Task) -> bool:
        self._check_task(task)
        return task in self.forward_dependencies and self in task.backward_dependencies

    def any_backward_dependencies(self) -> bool:
        return bool(self.backward_dependencies)

    def any_forward_dependencies(self) -> bool:
        return bool(self.forward_dependencies)

    def backward_dependency_names(self) -> list[str]:
        return sorted(str(task) for task in self.backward_dependencies)

    def forward_dependency_names(self) -> list[str]:
        return sorted(str(task) for task in self.forward_dependencies)

    # ------------------------------------------------------------------
    # Readiness
    # 就绪性判断
    # ------------------------------------------------------------------

    def dependencies_are_ready(self) -> bool:
        """
        True if every backward dependency is successful or skipped.
        所有前置依赖均为成功或跳过时返回 True。缓存直到 reset。
        """
        if self._dependencies_are_ready is not None:
            return self._dependencies_are_ready
        if self._dependencies_have_failed:
            return False
        ready = all(task.successful() or task.skipped() for task in self.backward_dependencies)
        if ready:
            logger.debug("[Task] %s: All dependencies are ready", self)
        self._dependencies_are_ready = ready
        return ready

    def dependencies_have_failed(self) -> bool:
        """
        True if any backward dependency has failed, directly or through its
        own dependencies. Failure propagates forward only.
        任一前置依赖失败（直接失败或其自身依赖失败）时返回 True。
        失败只向下游传播。缓存直到 reset。
        """
        if self._dependencies_have_failed is not None:
            return self._dependencies_have_failed
        # provisional value, only read again if the task sits on a cycle
        self._dependencies_have_failed = False
        failed = [task for task in self.backward_dependencies if task.failed()]
        if failed:
            logger.debug(
                "[Task] %s: Found failed dependencies: %s",
                self, ", ".join(sorted(task.name for task in failed)),
            )
        self._dependencies_have_failed = bool(failed)
        return self._dependencies_have_failed

    def pending(self) -> bool:
        return self._status == TaskStatus.PENDING

    def running(self) -> bool:
        return self._status == TaskStatus.RUNNING

    def successful(self) -> bool:
        return self._status == TaskStatus.SUCCESSFUL

    def skipped(self) -> bool:
        return self._status == TaskStatus.SKIPPED

    def failed(self) -> bool:
        """Failed itself, or blocked by a failed dependency. 自身失败或被失败依赖阻断。"""
        return self._status == TaskStatus.FAILED or self.dependencies_have_failed()

    def finished(self) -> bool:
        """The task will not run again in this deployment. 本次部署中该任务不会再运行。"""
        return self.failed() or self.successful() or self.skipped()

    def ready(self) -> bool:
        """
        Pending, dependencies met, none failed, and a concurrency slot free.
        处于 pending、依赖已满足且无失败、并且有可用并发槽位。
        """
        return (
            self.pending()
            and not self.dependencies_have_failed()
            and self.dependencies_are_ready()
            and self.concurrency_available()
        )

    # ------------------------------------------------------------------
    # Concurrency
    # 并发限制（按任务名在所有节点间共享）
    # ------------------------------------------------------------------

    @property
    def maximum_concurrency(self) -> int:
        return self.concurrency.maximum(self)

    @maximum_concurrency.setter
    def maximum_concurrency(self, value: Any) -> None:
        self.concurrency.set_maximum(self, value)

    @property
    def current_concurrency(self) -> int:
        return self.concurrency.current(self)

    @current_concurrency.setter
    def current_concurrency(self, value: Any) -> None:
        self.concurrency.set_current(self, value)

    def current_concurrency_increase(self) -> int:
        return self.concurrency.increase(self)

    def current_concurrency_decrease(self) -> int:
        return self.concurrency.decrease(self)

    def current_concurrency_reset(self) -> int:
        return self.concurrency.reset(self)

    def maximum_concurrency_is_set(self) -> bool:
        return self.concurrency.is_limited(self)

    def concurrency_available(self) -> bool:
        return self.concurrency.available(self)

    def _status_changes_concurrency(self, old: TaskStatus, new: TaskStatus) -> None:
        if not self.maximum_concurrency_is_set() or old == new:
            return
        if new == TaskStatus.RUNNING:
            self.current_concurrency_increase()
            logger.info("[Task] %s: Increasing concurrency to: %d", self, self.current_concurrency)
        elif old == TaskStatus.RUNNING:
            self.current_concurrency_decrease()
            logger.info("[Task] %s: Decreasing concurrency to: %d", self, self.current_concurrency)

    # ------------------------------------------------------------------
    # Dispatch
    # 派发
    # ------------------------------------------------------------------

    def run(self) -> None:
        """
        Mark the task running and hand it to its node.
        No waiting and no retry: completion is observed later by node.poll().
        将任务标记为 running 并交给所属节点执行。
        不等待也不重试：完成情况由之后的 node.poll() 观察。
        """
        logger.info("[Task] %s: Run on node: %s", self, self.node)
        self.set_status(TaskStatus.RUNNING)
        self.node.run(self)

    # ------------------------------------------------------------------
    # Display helpers
    # 展示辅助方法
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        node_name = getattr(self._node, "name", "?")
        return f"Task[{node_name}/{self._name}]"

    def __repr__(self) -> str:
        message = (
            f"{self} Status: {self._status.value} "
            f"DepsReady: {self.dependencies_are_ready()} DepsFailed: {self.dependencies_have_failed()}"
        )
        if self.backward_dependencies:
            message += f" After: {', '.join(self.backward_dependency_names())}"
        if self.forward_dependencies:
            message += f" Before: {', '.join(self.forward_dependency_names())}"
        return message
