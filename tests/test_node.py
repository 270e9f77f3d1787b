"""
Node 测试：覆盖节点状态、当前任务校验、图委托、
与 NodeExecutor 能力接口的交互，以及 SimulatedExecutor 的行为。

运行方式:
    .venv/bin/python -m pytest tests/test_node.py -v
"""

from __future__ import annotations

import pytest

from deployment.errors import InvalidArgument, InvalidStatus, NoSuchTask, NotImplementedByNode
from deployment.graph import Graph
from deployment.node import Node, NodeExecutor
from deployment.simulation import SimulatedExecutor
from deployment.task import Task
from schema import NodeStatus, TaskStatus


# ======================================================================
# 1. 状态
# ======================================================================


class TestNodeStatus:

    def test_defaults(self):
        node = Node("node1")
        assert node.status == NodeStatus.ONLINE
        assert node.online()
        assert node.id == "node1"
        assert node.critical is False
        assert node.task is None
        assert isinstance(node.graph, Graph)
        assert node.graph.node is node

    def test_string_status_is_coerced(self):
        node = Node("node1")
        node.status = "busy"
        assert node.busy()
        node.set_status_offline()
        assert node.offline()

    def test_invalid_status_raises(self):
        node = Node("node1")
        with pytest.raises(InvalidStatus):
            node.status = "sleeping"
        assert node.online()

    def test_finished_statuses(self):
        for setter in ("set_status_failed", "set_status_successful", "set_status_skipped"):
            node = Node("node1")
            node.add_new_task("task1")
            assert not node.finished()
            getattr(node, setter)()
            assert node.finished()

    def test_status_or_graph_aggregate(self):
        node = Node("node1")
        node.add_new_task("task1")
        assert not node.failed()
        node["task1"].set_status_failed()
        # 节点自身仍为 online，但任务聚合状态为失败
        assert node.online()
        assert node.failed()
        assert node.finished()
        assert not node.successful()

    def test_empty_node_is_successful(self):
        node = Node("node1")
        assert node.successful()
        assert node.finished()
        # 空节点长度为 0，不能用真值判断是否为 None
        assert len(node) == 0

    def test_explicit_successful_status(self):
        node = Node("node1")
        node.add_new_task("task1")
        node.set_status_successful()
        assert node.successful()


# ======================================================================
# 2. 当前任务与图
# ======================================================================


class TestCurrentTaskAndGraph:

    def test_task_must_belong_to_graph(self):
        node = Node("node1")
        task = node.add_new_task("task1")
        node.task = task
        assert node.task is task
        node.task = None
        assert node.task is None
        with pytest.raises(InvalidArgument):
            node.task = Node("node2").add_new_task("task1")
        with pytest.raises(InvalidArgument):
            node.task = "task1"

    def test_assigning_graph_reparents_it(self):
        first = Node("node1")
        second = Node("node2")
        graph = first.graph
        second.graph = graph
        assert graph.node is second
        with pytest.raises(InvalidArgument):
            second.graph = "graph"

    def test_create_new_graph_drops_tasks(self):
        node = Node("node1")
        node.add_new_task("task1")
        graph = node.create_new_graph()
        assert node.graph is graph
        assert len(node) == 0


# ======================================================================
# 3. 图委托
# ======================================================================


class TestGraphDelegation:

    def test_delegated_operations(self):
        node = Node("node1")
        a = node.add_new_task("a")
        b = node.add_task(Task("b", node))
        node.add_dependency("a", "b")
        assert node.has_task("a") and "b" in node
        assert node.get_task("b") is b
        assert node["a"] is a
        assert node.task_names() == ["a", "b"]
        assert list(node) == [a, b]
        assert node.ready_task() is a
        assert node.tasks_total_count() == 2
        assert node.tasks_pending_count() == 2
        a.set_status_successful()
        assert node.ready_task() is b
        assert node.tasks_successful_count() == 1
        assert node.tasks_finished_count() == 1
        assert node.tasks_failed_count() == 0
        assert not node.tasks_are_finished()
        assert not node.tasks_have_failed()
        assert node.remove_task("b", unwire=True) is b
        assert node.tasks_are_successful()

    def test_getitem_unknown_raises(self):
        with pytest.raises(NoSuchTask):
            Node("node1")["missing"]


# ======================================================================
# 4. 执行契约
# ======================================================================


class TestExecutionContract:

    def test_run_without_executor_raises(self):
        node = Node("node1")
        task = node.add_new_task("task1")
        with pytest.raises(NotImplementedByNode):
            node.run(task)
        with pytest.raises(NotImplementedError):
            node.poll()

    def test_run_rejects_foreign_tasks(self):
        node = Node("node1", executor=SimulatedExecutor())
        with pytest.raises(InvalidArgument):
            node.run(Node("node2").add_new_task("task1"))
        with pytest.raises(InvalidArgument):
            node.run("task1")

    def test_subclass_may_override_run_and_poll(self):
        class InlineNode(Node):
            def run(self, task):
                task.set_status_successful()

            def poll(self):
                pass

        node = InlineNode("node1")
        task = node.add_new_task("task1")
        task.run()
        assert task.successful()

    def test_simulated_executor_satisfies_protocol(self):
        assert isinstance(SimulatedExecutor(), NodeExecutor)


# ======================================================================
# 5. SimulatedExecutor
# ======================================================================


class TestSimulatedExecutor:

    def test_dispatch_then_poll_finishes_task(self):
        executor = SimulatedExecutor(polls=2)
        node = Node("node1", executor=executor)
        task = node.add_new_task("task1")
        task.run()
        assert node.busy()
        assert node.task is task
        node.poll()
        assert task.running()
        node.poll()
        assert task.successful()
        assert node.online()
        assert node.task is None
        assert executor.dispatched == [task]

    def test_poll_when_idle_is_harmless(self):
        node = Node("node1", executor=SimulatedExecutor())
        node.poll()
        assert node.online()

    def test_scripted_outcomes(self):
        executor = SimulatedExecutor(outcomes={"node1/a": "failed", "b": TaskStatus.SKIPPED})
        node = Node("node1", executor=executor)
        a = node.add_new_task("a")
        b = node.add_new_task("b")
        assert executor.outcome_for(a) == TaskStatus.FAILED
        assert executor.outcome_for(b) == TaskStatus.SKIPPED
        assert executor.outcome_for(Node("node2").add_new_task("a")) == TaskStatus.SUCCESSFUL

    def test_peak_running_per_name(self):
        executor = SimulatedExecutor(polls=3)
        tasks = []
        for number in range(1, 4):
            node = Node(f"node{number}", executor=executor)
            tasks.append(node.add_new_task("deploy"))
        for task in tasks:
            task.run()
        assert executor.running_count("deploy") == 3
        assert executor.peak_running["deploy"] == 3

    def test_str(self):
        assert str(Node("node1")) == "Node[node1]"
        assert str(Node("controller", id=1)) == "Node[1/controller]"
        assert "Status: online" in repr(Node("node1"))
