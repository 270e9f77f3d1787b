"""
Node - an execution target owning one Graph of tasks.
Node：执行目标，拥有一个任务图（Graph）。

The Node keeps its own status (independent of its tasks), the task it is
currently running, and a reference to a NodeExecutor: the capability that
actually starts work somewhere (`dispatch`) and later observes completion
(`poll`). The scheduler only ever talks to that capability.

Node 维护自身状态（与任务状态相互独立）、当前正在运行的任务，
以及一个 NodeExecutor 引用：真正在外部启动工作（`dispatch`）
并在之后观察完成情况（`poll`）的能力接口。调度器只与该接口交互。
"""

from __future__ import annotations

import logging
from typing import Any, Iterator, Protocol, runtime_checkable

from deployment.concurrency import ConcurrencyRegistry
from deployment.errors import InvalidArgument, InvalidStatus, NotImplementedByNode
from deployment.graph import Graph
from deployment.task import Task
from schema import NODE_FINISHED_STATUSES, NodeStatus

logger = logging.getLogger(__name__)


@runtime_checkable
class NodeExecutor(Protocol):
    """
    The run/poll capability a concrete execution backend implements.
    具体执行后端需要实现的 run/poll 能力接口。

    dispatch(node, task):
        Begin external work for `task`; typically records it as
        `node.task` and moves the node to BUSY.
        为 `task` 启动外部工作；通常将其记录为 `node.task` 并把节点置为 BUSY。
    poll(node):
        Called once per tick, also when idle. On completion, set the
        task's terminal status and return the node to ONLINE.
        每个 tick 调用一次（空闲时也会调用）。完成后设置任务终态，并把节点恢复为 ONLINE。
    """

    def dispatch(self, node: Node, task: Task) -> None: ...

    def poll(self, node: Node) -> None: ...


class Node:
    """
    A deployment target: status, current task, a Graph and an executor.
    部署目标：状态、当前任务、任务图和执行器。
    """

    def __init__(
        self,
        name: Any,
        id: Any = None,
        critical: bool = False,
        executor: NodeExecutor | None = None,
    ):
        self._name = str(name)
        self.id = id if id is not None else self._name
        self._status = NodeStatus.ONLINE
        self._task: Task | None = None
        self.critical = critical
        self.executor = executor
        self.concurrency = ConcurrencyRegistry()
        self._graph: Graph | None = None
        self.create_new_graph()

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
    def status(self) -> NodeStatus:
        return self._status

    @status.setter
    def status(self, value: NodeStatus | str) -> None:
        self.set_status(value)

    def set_status(self, value: NodeStatus | str) -> NodeStatus:
        try:
            self._status = NodeStatus(value)
        except ValueError:
            raise InvalidStatus(f"{self}: Invalid node status: {value}") from None
        return self._status

    def set_status_online(self) -> NodeStatus:
        return self.set_status(NodeStatus.ONLINE)

    def set_status_busy(self) -> NodeStatus:
        return self.set_status(NodeStatus.BUSY)

    def set_status_offline(self) -> NodeStatus:
        return self.set_status(NodeStatus.OFFLINE)

    def set_status_failed(self) -> NodeStatus:
        return self.set_status(NodeStatus.FAILED)

    def set_status_successful(self) -> NodeStatus:
        return self.set_status(NodeStatus.SUCCESSFUL)

    def set_status_skipped(self) -> NodeStatus:
        return self.set_status(NodeStatus.SKIPPED)

    @property
    def task(self) -> Task | None:
        """The task currently dispatched on this node. 当前派发到本节点的任务。"""
        return self._task

    @task.setter
    def task(self, value: Task | None) -> None:
        if value is not None:
            if not isinstance(value, Task):
                raise InvalidArgument(f"{self}: Task should be a task object or None")
            if self._graph.get_task(value) is not value:
                raise InvalidArgument(f"{self}: Task {value} is not found in the graph")
        self._task = value

    @property
    def graph(self) -> Graph:
        return self._graph

    @graph.setter
    def graph(self, value: Graph) -> None:
        if not isinstance(value, Graph):
            raise InvalidArgument(f"{self}: Graph should be a graph object")
        value.node = self
        self._graph = value

    def create_new_graph(self) -> Graph:
        self.graph = Graph(self)
        return self._graph

    # ------------------------------------------------------------------
    # Status checks
    # 状态判断（节点状态与任务聚合状态取“或”）
    # ------------------------------------------------------------------

    def online(self) -> bool:
        return self._status == NodeStatus.ONLINE

    def busy(self) -> bool:
        return self._status == NodeStatus.BUSY

    def offline(self) -> bool:
        return self._status == NodeStatus.OFFLINE

    def skipped(self) -> bool:
        return self._status == NodeStatus.SKIPPED

    def finished(self) -> bool:
        return self._status in NODE_FINISHED_STATUSES or self._graph.tasks_are_finished()

    def failed(self) -> bool:
        return self._status == NodeStatus.FAILED or self._graph.tasks_have_failed()

    def successful(self) -> bool:
        return self._status == NodeStatus.SUCCESSFUL or self._graph.tasks_are_successful()

    # ------------------------------------------------------------------
    # Execution contract
    # 执行契约
    # ------------------------------------------------------------------

    def run(self, task: Task) -> None:
        """
        Start `task` on this node through the executor.
        通过执行器在本节点上启动 `task`。
        """
        if not isinstance(task, Task) or self._graph.get_task(task) is not task:
            raise InvalidArgument(f"{self}: Node can run only tasks of its own graph, got: {task!r}")
        if self.executor is None:
            raise NotImplementedByNode(f"{self}: No executor is set and run() is not implemented")
        logger.debug("[Node] %s: Run task: %s", self, task)
        self.executor.dispatch(self, task)

    def poll(self) -> None:
        """
        Let the executor observe progress of the current task.
        由执行器观察当前任务的进展。
        """
        if self.executor is None:
            raise NotImplementedByNode(f"{self}: No executor is set and poll() is not implemented")
        self.executor.poll(self)

    # ------------------------------------------------------------------
    # Graph delegation
    # 图操作委托
    # ------------------------------------------------------------------

    def get_task(self, task_or_name: Any) -> Task | None:
        return self._graph.get_task(task_or_name)

    def has_task(self, task_or_name: Any) -> bool:
        return self._graph.has_task(task_or_name)

    def add_task(self, task: Task) -> Task:
        return self._graph.add_task(task)

    def add_new_task(self, name: Any, data: Any = None) -> Task:
        return self._graph.add_new_task(name, data)

    def remove_task(self, task_or_name: Any, unwire: bool = False) -> Task | None:
        return self._graph.remove_task(task_or_name, unwire=unwire)

    def add_dependency(self, task_from: Any, task_to: Any) -> Task:
        return self._graph.add_dependency(task_from, task_to)

    def ready_task(self) -> Task | None:
        return self._graph.ready_task()

    def task_names(self) -> list[str]:
        return self._graph.task_names()

    def tasks_are_finished(self) -> bool:
        return self._graph.tasks_are_finished()

    def tasks_are_successful(self) -> bool:
        return self._graph.tasks_are_successful()

    def tasks_have_failed(self) -> bool:
        return self._graph.tasks_have_failed()

    def tasks_total_count(self) -> int:
        return self._graph.tasks_total_count()

    def tasks_finished_count(self) -> int:
        return self._graph.tasks_finished_count()

    def tasks_failed_count(self) -> int:
        return self._graph.tasks_failed_count()

    def tasks_successful_count(self) -> int:
        return self._graph.tasks_successful_count()

    def tasks_pending_count(self) -> int:
        return self._graph.tasks_pending_count()

    def __iter__(self) -> Iterator[Task]:
        return iter(self._graph)

    def __len__(self) -> int:
        return len(self._graph)

    def __contains__(self, task_or_name: Any) -> bool:
        return task_or_name in self._graph

    def __getitem__(self, task_or_name: Any) -> Task:
        return self._graph[task_or_name]

    # ------------------------------------------------------------------
    # Display helpers
    # 展示辅助方法
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        if str(self.id) == self._name:
            return f"Node[{self.id}]"
        return f"Node[{self.id}/{self._name}]"

    def __repr__(self) -> str:
        message = f"{self} Status: {self._status.value}"
        message += f" Tasks: {self.tasks_finished_count()}/{self.tasks_total_count()}"
        if self._task is not None:
            message += f" CurrentTask: {self._task.name}"
        return message
