"""
Process - drives a fleet of nodes to completion.
Process：驱动整个节点集群运行至结束。

The Process owns the ordered list of nodes and the shared concurrency
registry. One run is:

  1. Pre-flight: topological sort over the tasks of all nodes; a cycle
     raises LoopDetected before anything is dispatched
  2. Tick: check termination, then for every node in order
     poll() -> skip unless online -> ready_task() -> task.run()
  3. Repeat until a termination condition gives a RunResult

Process 持有有序的节点列表和共享的并发注册表。一次运行：

  1. 预检：对所有节点的任务做拓扑排序；若存在环，在派发任何任务前抛出 LoopDetected
  2. Tick：先检查终止条件，再按顺序处理每个节点：
     poll() -> 非 online 则跳过 -> ready_task() -> task.run()
  3. 重复直到某个终止条件产出 RunResult

There is no sleep and no deadline inside the loop: pacing belongs to the
executors' poll(), and a caller that wants to stop simply stops calling
tick().
循环内部没有 sleep 也没有超时：节奏由执行器的 poll() 控制，
调用方若要中止，只需停止调用 tick()。
"""

from __future__ import annotations

import logging
from typing import Any, Iterator

from deployment.concurrency import ConcurrencyRegistry
from deployment.errors import InvalidArgument, LoopDetected
from deployment.node import Node
from deployment.task import Task
from schema import RunOutcome, RunResult

logger = logging.getLogger(__name__)


class Process:
    """
    The top-level orchestrator over a set of nodes.
    节点集合之上的顶层编排器。
    """

    def __init__(self, *nodes: Node | list[Node], id: Any = None):
        self.id = id
        self.concurrency = ConcurrencyRegistry()
        self.ticks = 0
        self._nodes: list[Node] = []
        flat: list[Any] = []
        for item in nodes:
            if isinstance(item, (list, tuple)):
                flat.extend(item)
            else:
                flat.append(item)
        self.nodes = flat

    @property
    def nodes(self) -> list[Node]:
        return self._nodes

    @nodes.setter
    def nodes(self, value: list[Node]) -> None:
        if not isinstance(value, (list, tuple)):
            raise InvalidArgument(f"{self}: Nodes should be a list")
        if not all(isinstance(node, Node) for node in value):
            raise InvalidArgument(f"{self}: Nodes should contain only Node objects")
        self._nodes = list(value)
        self.bind_concurrency()

    def bind_concurrency(self) -> None:
        """
        Point every node and task at the process-owned registry.
        将所有节点和任务绑定到 Process 持有的并发注册表。

        Limits already set on a node's own registry are merged in, so tasks
        configured before the Process existed keep their limits.
        节点自身注册表上已设置的上限会被合并进来，
        因此在 Process 创建之前配置的任务上限不会丢失。
        """
        for node in self._nodes:
            self.concurrency.merge(node.concurrency)
            node.concurrency = self.concurrency
            for task in node:
                self.concurrency.merge(task.concurrency)
                task.concurrency = self.concurrency

    def set_maximum_concurrency(self, task_name: Any, value: Any) -> int:
        """Limit how many `task_name` tasks may run at once across all nodes."""
        return self.concurrency.set_maximum(task_name, value)

    # ------------------------------------------------------------------
    # Iteration
    # 遍历
    # ------------------------------------------------------------------

    def each_node(self) -> Iterator[Node]:
        return iter(self._nodes)

    __iter__ = each_node

    def each_task(self) -> Iterator[Task]:
        for node in self._nodes:
            yield from node

    # ------------------------------------------------------------------
    # Graph algorithms
    # 图算法
    # ------------------------------------------------------------------

    def topology_sort(self) -> list[Task]:
        """
        Depth-first topological sort of the tasks of all nodes.
        对所有节点的任务做深度优先拓扑排序。

        Walks forward-dependency edges with a permanent set (black) and the
        current path (gray). Reaching a task that is on the path again raises
        LoopDetected with that path. The result lists dependencies before
        their dependents; its main job here is proving the graph acyclic,
        the run loop itself dispatches by readiness.

        沿前向依赖边遍历：永久集合（黑）+ 当前路径（灰）。
        若再次遇到当前路径上的任务，则抛出 LoopDetected 并附带该路径。
        结果中依赖总在被依赖者之前；在本系统中它主要用于证明无环，
        运行循环本身按就绪性派发。
        """
        permanent: set[Task] = set()
        path: list[Task] = []
        on_path: set[Task] = set()
        finished: list[Task] = []

        for root in self.each_task():
            if root in permanent:
                continue
            path.append(root)
            on_path.add(root)
            stack = [iter(root.forward_dependencies)]
            while stack:
                following = next(stack[-1], None)
                if following is None:
                    stack.pop()
                    task = path.pop()
                    on_path.discard(task)
                    permanent.add(task)
                    finished.append(task)
                    continue
                if following in permanent:
                    continue
                if following in on_path:
                    loop = path[path.index(following):] + [following]
                    message = " -> ".join(str(task) for task in loop)
                    logger.warning("[Process] %s: Loop detected: %s", self, message)
                    raise LoopDetected(f"{self}: Loop detected: {message}", loop)
                path.append(following)
                on_path.add(following)
                stack.append(iter(following.forward_dependencies))

        finished.reverse()
        return finished

    def has_loop(self) -> bool:
        try:
            self.topology_sort()
        except LoopDetected:
            return True
        return False

    # ------------------------------------------------------------------
    # Run loop
    # 运行循环
    # ------------------------------------------------------------------

    def process_node(self, node: Node) -> Task | None:
        """
        Poll one node and dispatch its next ready task, if any.
        轮询单个节点，并派发其下一个就绪任务（若有）。
        """
        logger.debug("[Process] %s: Process node: %s", self, node)
        node.poll()
        if not node.online():
            return None
        task = node.ready_task()
        if task is None:
            return None
        task.run()
        return task

    def process_all_nodes(self) -> None:
        logger.debug("[Process] %s: Start processing all nodes", self)
        for node in self._nodes:
            self.process_node(node)

    def check_finished(self) -> RunResult | None:
        """
        Evaluate the termination conditions, in order.
        按顺序评估终止条件；未终止时返回 None。
        """
        if self.all_nodes_are_successful():
            logger.info("[Process] %s: All nodes are deployed successfully. Stopping the deployment process", self)
            return self._result(True, RunOutcome.SUCCEEDED, "All nodes are deployed successfully")

        failed_critical = self.failed_critical_nodes()
        if failed_critical:
            names = ", ".join(node.name for node in failed_critical)
            logger.info("[Process] %s: Critical nodes failed: %s. Stopping the deployment process", self, names)
            return self._result(False, RunOutcome.CRITICAL_NODES_FAILED, f"Critical nodes failed: {names}")

        if self.all_nodes_are_finished():
            failed = self.failed_nodes()
            if failed:
                names = ", ".join(node.name for node in failed)
                logger.info(
                    "[Process] %s: All nodes are finished and some have failed: %s. Stopping the deployment process",
                    self, names,
                )
                return self._result(False, RunOutcome.NODES_FAILED, f"Nodes failed: {names}")
            logger.info("[Process] %s: All nodes are finished. Stopping the deployment process", self)
            return self._result(True, RunOutcome.SUCCEEDED, "All nodes are finished")
        return None

    def tick(self) -> RunResult | None:
        """
        One termination check followed by one pass over all nodes.
        一次终止检查，随后对所有节点处理一轮。
        """
        result = self.check_finished()
        if result is not None:
            return result
        self.process_all_nodes()
        self.ticks += 1
        return None

    def run(self) -> RunResult:
        """
        Run the deployment until a termination condition is met.
        运行部署直到满足终止条件。

        Raises LoopDetected before any dispatch if the tasks form a cycle.
        若任务依赖成环，在任何派发之前抛出 LoopDetected。
        """
        logger.info("[Process] %s: Starting the deployment process", self)
        self.topology_sort()
        while True:
            result = self.tick()
            if result is not None:
                return result

    def _result(self, success: bool, outcome: RunOutcome, message: str) -> RunResult:
        return RunResult(
            success=success,
            outcome=outcome,
            process_id=None if self.id is None else str(self.id),
            failed_nodes=[node.name for node in self.failed_nodes()],
            failed_critical_nodes=[node.name for node in self.failed_critical_nodes()],
            ticks=self.ticks,
            message=message,
        )

    # ------------------------------------------------------------------
    # Node queries
    # 节点查询
    # ------------------------------------------------------------------

    def critical_nodes(self) -> list[Node]:
        return [node for node in self._nodes if node.critical]

    def failed_critical_nodes(self) -> list[Node]:
        return [node for node in self.critical_nodes() if node.failed()]

    def has_failed_critical_nodes(self) -> bool:
        return bool(self.failed_critical_nodes())

    def failed_nodes(self) -> list[Node]:
        return [node for node in self._nodes if node.failed()]

    def has_failed_nodes(self) -> bool:
        return bool(self.failed_nodes())

    def all_nodes_are_finished(self) -> bool:
        return all(node.finished() for node in self._nodes)

    def all_nodes_are_successful(self) -> bool:
        return all(node.successful() for node in self._nodes)

    # ------------------------------------------------------------------
    # Task counters
    # 任务计数（所有节点求和）
    # ------------------------------------------------------------------

    def tasks_total_count(self) -> int:
        return sum(node.tasks_total_count() for node in self._nodes)

    def tasks_finished_count(self) -> int:
        return sum(node.tasks_finished_count() for node in self._nodes)

    def tasks_failed_count(self) -> int:
        return sum(node.tasks_failed_count() for node in self._nodes)

    def tasks_successful_count(self) -> int:
        return sum(node.tasks_successful_count() for node in self._nodes)

    def tasks_pending_count(self) -> int:
        return sum(node.tasks_pending_count() for node in self._nodes)

    # ------------------------------------------------------------------
    # Display helpers
    # 展示辅助方法
    # ------------------------------------------------------------------

    def summary(self) -> str:
        """
        One-line summary for logging.
        生成单行状态摘要，如：Process[mini: 2/3 tasks finished, 0 failed, 1 nodes]
        """
        return (
            f"Process[{self.id}: {self.tasks_finished_count()}/{self.tasks_total_count()} tasks finished, "
            f"{self.tasks_failed_count()} failed, {len(self._nodes)} nodes]"
        )

    def __str__(self) -> str:
        return f"Process[{self.id}]"

    def __repr__(self) -> str:
        message = str(self)
        if self._nodes:
            message += (
                f" Tasks: {self.tasks_finished_count()}/{self.tasks_total_count()}"
                f" Nodes: {', '.join(node.name for node in self._nodes)}"
            )
        return message
