"""
Graph - the set of tasks owned by one node.
Graph：单个节点拥有的任务集合。

The Graph holds:
  - tasks: dict of task name -> Task (insertion order = iteration order)
  - node:  the owning Node

Graph 包含：
  - tasks：任务名 -> Task 的字典（插入顺序即迭代顺序）
  - node： 所属节点

Key operations:
  - ready_task():         first-fit lookup of the next runnable task
  - add_dependency():     wire two tasks, same node or cross-node
  - tasks_are_*():        aggregate status with sticky memoization

核心操作：
  - ready_task():     按插入顺序找出第一个可运行的任务（first-fit，非优先级）
  - add_dependency(): 连接两个任务，可同节点也可跨节点
  - tasks_are_*():    带粘性缓存的聚合状态查询
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterator

from deployment.errors import InvalidArgument, NoSuchTask
from deployment.task import Task

if TYPE_CHECKING:
    from deployment.node import Node

logger = logging.getLogger(__name__)


class Graph:
    """
    Tasks of one node, with aggregate readiness queries.
    单个节点的任务集合，提供聚合状态查询。

    Aggregate memoization is deliberately asymmetric: a True result of
    tasks_are_finished / tasks_are_successful / tasks_have_failed is latched
    until reset(), a False result is never stored. Task status changes do
    not notify the Graph, so a False must be recomputed on every query; the
    True observations are terminal and stay valid. Caching False as well
    would change behavior.

    聚合缓存是刻意不对称的：tasks_are_finished / tasks_are_successful /
    tasks_have_failed 的 True 结果会被锁存直到 reset()，False 结果从不缓存。
    任务状态变化不会通知 Graph，所以 False 必须每次重新计算；
    True 属于终态观察，始终有效。若把 False 也缓存将改变行为。
    """

    def __init__(self, node: Node):
        self._node: Node | None = None
        self.node = node
        self.tasks: dict[str, Task] = {}
        self._tasks_are_finished = False
        self._tasks_are_successful = False
        self._tasks_have_failed = False

    @property
    def node(self) -> Node:
        return self._node

    @node.setter
    def node(self, value: Node) -> None:
        from deployment.node import Node

        if not isinstance(value, Node):
            raise InvalidArgument(f"{self}: Not a node used instead of the graph node")
        self._node = value

    @property
    def name(self) -> str:
        return self._node.name

    def reset(self) -> None:
        """Drop the latched aggregate results. 清除锁存的聚合结果。"""
        self._tasks_are_finished = False
        self._tasks_are_successful = False
        self._tasks_have_failed = False

    @staticmethod
    def _key(task_or_name: Any) -> str:
        if isinstance(task_or_name, Task):
            return task_or_name.name
        return str(task_or_name)

    # ------------------------------------------------------------------
    # Task collection
    # 任务增删查
    # ------------------------------------------------------------------

    def get_task(self, task_or_name: Any) -> Task | None:
        """Return the task with this name, or None. Never raises. 按名称查找任务，不存在返回 None。"""
        return self.tasks.get(self._key(task_or_name))

    def has_task(self, task_or_name: Any) -> bool:
        return self._key(task_or_name) in self.tasks

    def add_task(self, task: Task) -> Task:
        """
        Add a Task of this node. Returns the existing task if the name is taken.
        添加属于本节点的任务；若同名任务已存在，则返回已有任务而不重复添加。
        """
        if not isinstance(task, Task):
            raise InvalidArgument(f"{self}: Graph can add only tasks, got: {task!r}")
        existing = self.get_task(task)
        if existing is not None:
            return existing
        if task.node is not self._node:
            raise InvalidArgument(f"{self}: Graph cannot add tasks not for this node: {task}")
        concurrency = self._node.concurrency
        if task.concurrency is not concurrency:
            concurrency.merge(task.concurrency)
            task.concurrency = concurrency
        self.tasks[task.name] = task
        self.reset()
        return task

    def add_new_task(self, name: Any, data: Any = None) -> Task:
        """Create a task on this node and add it. 在本节点上新建任务并加入图中。"""
        existing = self.get_task(name)
        if existing is not None:
            return existing
        return self.add_task(Task(name, self._node, data))

    def remove_task(self, task_or_name: Any, unwire: bool = False) -> Task | None:
        """
        Remove a task by name.
        按名称移除任务。

        By default the dependency edges of the removed task are left in
        place, so other tasks may still reference it. Pass `unwire=True` to
        detach the task from all of its dependencies and dependents first.
        默认不拆除被移除任务的依赖边，其他任务可能仍引用它；
        传入 `unwire=True` 会先断开它与所有前置/后继任务的连接。
        """
        task = self.get_task(task_or_name)
        if task is None:
            return None
        if unwire:
            for other in list(task.backward_dependencies):
                task.remove_backward_dependency(other)
            for other in list(task.forward_dependencies):
                task.remove_forward_dependency(other)
        elif task.backward_dependencies or task.forward_dependencies:
            logger.warning(
                "[Graph] %s: Removed %s still has dependency edges: after=%s before=%s",
                self, task, task.backward_dependency_names(), task.forward_dependency_names(),
            )
        del self.tasks[task.name]
        self.reset()
        return task

    def add_dependency(self, task_from: Any, task_to: Any) -> Task:
        """
        Make `task_to` depend on `task_from`.
        让 `task_to` 依赖 `task_from`。

        Names are looked up in this Graph only; tasks of other nodes must be
        passed as Task objects.
        名称只在本图内查找；跨节点依赖必须直接传入 Task 对象。
        """
        task_from = self._resolve(task_from)
        task_to = self._resolve(task_to)
        return task_to.add_backward_dependency(task_from)

    def _resolve(self, task_or_name: Any) -> Task:
        if isinstance(task_or_name, Task):
            return task_or_name
        task = self.get_task(task_or_name)
        if task is None:
            raise NoSuchTask(f"{self}: There is no such task in the graph: {task_or_name}")
        return task

    def task_names(self) -> list[str]:
        return list(self.tasks)

    def __iter__(self) -> Iterator[Task]:
        return iter(list(self.tasks.values()))

    def __len__(self) -> int:
        return len(self.tasks)

    def __contains__(self, task_or_name: Any) -> bool:
        return self.has_task(task_or_name)

    def __getitem__(self, task_or_name: Any) -> Task:
        return self._resolve(task_or_name)

    # ------------------------------------------------------------------
    # Scheduling queries
    # 调度查询
    # ------------------------------------------------------------------

    def ready_task(self) -> Task | None:
        """
        First task, in insertion order, that is ready to run.
        按插入顺序返回第一个可运行的任务；没有则返回 None。
        """
        for task in self.tasks.values():
            if task.ready():
                return task
        return None

    def tasks_are_finished(self) -> bool:
        if self._tasks_are_finished:
            return True
        finished = all(task.finished() for task in self.tasks.values())
        if finished:
            logger.debug("[Graph] %s: All tasks are finished", self)
            self._tasks_are_finished = True
        return finished

    def tasks_are_successful(self) -> bool:
        if self._tasks_are_successful:
            return True
        if self._tasks_have_failed:
            return False
        successful = all(task.successful() for task in self.tasks.values())
        if successful:
            logger.debug("[Graph] %s: All tasks are successful", self)
            self._tasks_are_successful = True
        return successful

    def tasks_have_failed(self) -> bool:
        if self._tasks_have_failed:
            return True
        failed = [task for task in self.tasks.values() if task.failed()]
        if failed:
            logger.debug("[Graph] %s: Found failed tasks: %s", self, ", ".join(t.name for t in failed))
            self._tasks_have_failed = True
        return bool(failed)

    # ------------------------------------------------------------------
    # Counters (plain scans, uncached)
    # 计数（直接扫描，不缓存）
    # ------------------------------------------------------------------

    def tasks_total_count(self) -> int:
        return len(self.tasks)

    def tasks_finished_count(self) -> int:
        return sum(1 for task in self.tasks.values() if task.finished())

    def tasks_failed_count(self) -> int:
        return sum(1 for task in self.tasks.values() if task.failed())

    def tasks_successful_count(self) -> int:
        return sum(1 for task in self.tasks.values() if task.successful())

    def tasks_pending_count(self) -> int:
        return sum(1 for task in self.tasks.values() if task.pending())

    # ------------------------------------------------------------------
    # Display helpers
    # 展示辅助方法
    # ------------------------------------------------------------------

    def summary(self) -> str:
        """
        One-line summary for logging, e.g. Graph[node1: 3 tasks: 2 successful, 1 pending]
        生成单行状态摘要，用于日志输出。
        """
        status_counts: dict[str, int] = {}
        for task in self.tasks.values():
            status_counts[task.status.value] = status_counts.get(task.status.value, 0) + 1
        parts = [f"{v} {k}" for k, v in status_counts.items()]
        return f"Graph[{self.name}: {len(self.tasks)} tasks: {', '.join(parts)}]"

    def __str__(self) -> str:
        return f"Graph[{getattr(self._node, 'name', '?')}]"

    def __repr__(self) -> str:
        return (
            f"{self} Tasks: {len(self.tasks)} Finished: {self.tasks_are_finished()} "
            f"Failed: {self.tasks_have_failed()} Successful: {self.tasks_are_successful()}"
        )
