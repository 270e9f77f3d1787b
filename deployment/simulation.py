"""
SimulatedExecutor - an in-process stand-in for a real execution backend.
SimulatedExecutor：进程内模拟的执行后端。

Used by the CLI demo scenarios and the tests. `dispatch` records the task
on the node and marks it busy; `poll` counts down a number of polls and
then finishes the task with a scripted status (successful by default).
One executor may be shared by many nodes; it then also tracks how many
tasks of each name were in flight at the same time.

用于 CLI 演示场景和测试。`dispatch` 把任务记录到节点上并置为 busy；
`poll` 倒数若干次轮询后，以预设状态（默认成功）结束任务。
同一个执行器可被多个节点共享，此时还会统计每个任务名的最大同时运行数。
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from schema import NodeStatus, TaskStatus

if TYPE_CHECKING:
    from deployment.node import Node
    from deployment.task import Task

logger = logging.getLogger(__name__)


class SimulatedExecutor:
    """
    Finishes every dispatched task after `polls` polls.
    每个派发的任务在 `polls` 次轮询后结束。

    Args:
        polls:    polls needed before a task finishes (1 = on the next poll)
        outcomes: final status per task, keyed by "node/task" or by task name
        default:  final status for tasks not listed in `outcomes`
        polls:    任务结束前需要的轮询次数（1 表示下一次 poll 即结束）
        outcomes: 每个任务的最终状态，键为 "节点/任务" 或任务名
        default:  未在 `outcomes` 中列出的任务的最终状态
    """

    def __init__(
        self,
        polls: int = 1,
        outcomes: dict[str, TaskStatus | str] | None = None,
        default: TaskStatus | str = TaskStatus.SUCCESSFUL,
    ):
        self.polls = max(1, int(polls))
        self.outcomes = {key: TaskStatus(value) for key, value in (outcomes or {}).items()}
        self.default = TaskStatus(default)
        self.dispatched: list[Task] = []            # 按派发顺序记录的任务历史
        self.peak_running: dict[str, int] = {}      # 任务名 -> 观察到的最大同时运行数
        self._in_flight: dict[Node, Task] = {}
        self._remaining: dict[Node, int] = {}

    def outcome_for(self, task: Task) -> TaskStatus:
        key = f"{task.node.name}/{task.name}"
        if key in self.outcomes:
            return self.outcomes[key]
        return self.outcomes.get(task.name, self.default)

    def running_count(self, name: str) -> int:
        return sum(1 for task in self._in_flight.values() if task.name == name)

    def dispatch(self, node: Node, task: Task) -> None:
        logger.debug("[Simulated] %s: Run task: %s", node, task)
        node.task = task
        node.set_status(NodeStatus.BUSY)
        self._in_flight[node] = task
        self._remaining[node] = self.polls
        self.dispatched.append(task)
        running = self.running_count(task.name)
        if running > self.peak_running.get(task.name, 0):
            self.peak_running[task.name] = running

    def poll(self, node: Node) -> None:
        if not node.busy() or node.task is None:
            return
        self._remaining[node] = self._remaining.get(node, 1) - 1
        if self._remaining[node] > 0:
            return
        task = node.task
        status = self.outcome_for(task)
        logger.debug("[Simulated] %s: %s finished with: %s", node, task, status.value)
        task.set_status(status)
        self._in_flight.pop(node, None)
        self._remaining.pop(node, None)
        node.task = None
        node.set_status(NodeStatus.ONLINE)
