"""
Graph 测试：覆盖任务增删查、依赖连接、first-fit 就绪查找、
带粘性缓存的聚合状态以及计数。

运行方式:
    .venv/bin/python -m pytest tests/test_graph.py -v
"""

from __future__ import annotations

import logging

import pytest

from deployment.errors import InvalidArgument, NoSuchTask
from deployment.graph import Graph
from deployment.node import Node
from deployment.task import Task


def _graph(*names: str) -> Graph:
    node = Node("node1")
    for name in names:
        node.add_new_task(name)
    return node.graph


# ======================================================================
# 1. 任务集合
# ======================================================================


class TestTaskCollection:

    def test_add_new_task_keeps_insertion_order(self):
        graph = _graph("c", "a", "b")
        assert graph.task_names() == ["c", "a", "b"]
        assert [task.name for task in graph] == ["c", "a", "b"]
        assert len(graph) == 3

    def test_add_task_returns_existing_on_duplicate_name(self):
        graph = _graph("task1")
        existing = graph.get_task("task1")
        duplicate = Task("task1", graph.node)
        assert graph.add_task(duplicate) is existing
        assert graph.add_new_task("task1") is existing
        assert len(graph) == 1

    def test_add_task_rejects_non_tasks(self):
        graph = _graph()
        with pytest.raises(InvalidArgument):
            graph.add_task("task1")

    def test_add_task_rejects_task_of_another_node(self):
        graph = _graph()
        foreign = Task("task1", Node("node2"))
        with pytest.raises(InvalidArgument):
            graph.add_task(foreign)

    def test_get_task_never_raises(self):
        graph = _graph("task1")
        assert graph.get_task("missing") is None
        assert graph.get_task(graph["task1"]) is graph["task1"]
        assert graph.has_task("task1")
        assert "task1" in graph
        assert "missing" not in graph

    def test_getitem_raises_for_unknown_name(self):
        graph = _graph("task1")
        with pytest.raises(NoSuchTask):
            graph["missing"]
        # NoSuchTask 同时也是 LookupError
        with pytest.raises(LookupError):
            graph["missing"]

    def test_remove_task_keeps_edges_by_default(self, caplog):
        graph = _graph("a", "b")
        graph.add_dependency("a", "b")
        a = graph["a"]
        with caplog.at_level(logging.WARNING, logger="deployment.graph"):
            removed = graph.remove_task("a")
        assert removed is a
        assert not graph.has_task("a")
        # 默认保留悬挂的依赖边，并记录警告
        assert graph["b"].has_backward_dependency(a)
        assert "still has dependency edges" in caplog.text

    def test_remove_task_unwire_detaches(self):
        graph = _graph("a", "b", "c")
        graph.add_dependency("a", "b")
        graph.add_dependency("b", "c")
        b = graph.remove_task("b", unwire=True)
        assert not b.any_backward_dependencies()
        assert not b.any_forward_dependencies()
        assert graph["c"].ready()

    def test_remove_unknown_task_returns_none(self):
        assert _graph("a").remove_task("missing") is None


# ======================================================================
# 2. 依赖连接
# ======================================================================


class TestAddDependency:

    def test_add_dependency_by_name(self):
        graph = _graph("a", "b")
        graph.add_dependency("a", "b")
        assert graph["b"].has_backward_dependency(graph["a"])

    def test_add_dependency_unknown_name_raises(self):
        graph = _graph("a")
        with pytest.raises(NoSuchTask):
            graph.add_dependency("a", "missing")
        with pytest.raises(NoSuchTask):
            graph.add_dependency("missing", "a")

    def test_cross_node_dependency_with_task_objects(self):
        graph = _graph("nova")
        other = Node("controller")
        database = other.add_new_task("database")
        graph.add_dependency(database, "nova")
        assert graph["nova"].has_backward_dependency(database)
        assert database.has_forward_dependency(graph["nova"])


# ======================================================================
# 3. 就绪查找
# ======================================================================


class TestReadyTask:

    def test_first_fit_in_insertion_order(self):
        graph = _graph("b", "a")
        assert graph.ready_task() is graph["b"]

    def test_skips_tasks_with_unmet_dependencies(self):
        graph = _graph("b", "a")
        graph.add_dependency("a", "b")
        assert graph.ready_task() is graph["a"]

    def test_none_when_nothing_is_ready(self):
        graph = _graph("a", "b")
        graph.add_dependency("a", "b")
        graph["a"].set_status_running()
        assert graph.ready_task() is None

    def test_empty_graph_has_no_ready_task(self):
        assert _graph().ready_task() is None


# ======================================================================
# 4. 聚合状态
# ======================================================================


class TestAggregates:

    def test_empty_graph_is_finished_and_successful(self):
        graph = _graph()
        assert graph.tasks_are_finished()
        assert graph.tasks_are_successful()
        assert not graph.tasks_have_failed()

    def test_false_is_never_cached(self):
        graph = _graph("a")
        assert not graph.tasks_are_finished()
        graph["a"].set_status_successful()
        # 任务状态变化不会通知 Graph，但 False 不缓存，因此能看到新结果
        assert graph.tasks_are_finished()
        assert graph.tasks_are_successful()

    def test_true_is_latched_until_reset(self):
        graph = _graph("a")
        graph["a"].set_status_failed()
        assert graph.tasks_have_failed()
        graph["a"].set_status_pending()
        assert graph.tasks_have_failed()
        graph.reset()
        assert not graph.tasks_have_failed()

    def test_adding_a_task_resets_aggregates(self):
        graph = _graph("a")
        graph["a"].set_status_successful()
        assert graph.tasks_are_successful()
        graph.add_new_task("b")
        assert not graph.tasks_are_successful()
        assert not graph.tasks_are_finished()

    def test_failed_graph_is_not_successful(self):
        graph = _graph("a", "b")
        graph["a"].set_status_successful()
        graph["b"].set_status_failed()
        assert graph.tasks_have_failed()
        assert graph.tasks_are_finished()
        assert not graph.tasks_are_successful()

    def test_skipped_tasks_finish_but_do_not_succeed(self):
        graph = _graph("a")
        graph["a"].set_status_skipped()
        assert graph.tasks_are_finished()
        assert not graph.tasks_are_successful()


# ======================================================================
# 5. 计数与展示
# ======================================================================


class TestCountersAndDisplay:

    def test_counts(self):
        graph = _graph("a", "b", "c", "d")
        graph.add_dependency("c", "d")
        graph["a"].set_status_successful()
        graph["b"].set_status_running()
        graph["c"].set_status_failed()
        assert graph.tasks_total_count() == 4
        assert graph.tasks_successful_count() == 1
        # d 被失败的 c 阻断，同样算作失败和已结束
        assert graph.tasks_failed_count() == 2
        assert graph.tasks_finished_count() == 3
        assert graph.tasks_pending_count() == 1

    def test_summary_and_str(self):
        graph = _graph("a", "b")
        graph["a"].set_status_successful()
        assert str(graph) == "Graph[node1]"
        summary = graph.summary()
        assert summary.startswith("Graph[node1: 2 tasks:")
        assert "1 successful" in summary
        assert "1 pending" in summary
        assert "Finished: False" in repr(graph)
