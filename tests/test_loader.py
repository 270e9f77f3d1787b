"""
任务文件加载器测试：文件与字典输入、pydantic 校验、依赖连接、
未知引用的跳过，以及端到端运行。

运行方式:
    .venv/bin/python -m pytest tests/test_loader.py -v
"""

from __future__ import annotations

import json
import logging

import pytest
from pydantic import ValidationError

from deployment.loader import build_nodes, load_process, read_task_file
from deployment.simulation import SimulatedExecutor
from schema import RunOutcome


def _fuel_tasks() -> dict:
    """一个控制节点 + 两个计算节点的小型部署。"""
    return {
        "id": "fuel",
        "nodes": {"controller": {"critical": True}},
        "tasks": {
            "controller": [
                {"id": "netconfig", "data": {"type": "puppet"}},
                {"id": "database", "requires": [{"node_id": "controller", "name": "netconfig"}]},
            ],
            "compute-1": [
                {"id": "netconfig"},
                {
                    "id": "nova",
                    "requires": [
                        {"node_id": "compute-1", "name": "netconfig"},
                        {"node_id": "controller", "name": "database"},
                    ],
                    "maximum_concurrency": 1,
                },
            ],
            "compute-2": [
                {"id": "netconfig", "required_for": [{"node_id": "compute-2", "name": "nova"}]},
                {"id": "nova", "requires": [{"node_id": "controller", "name": "database"}]},
            ],
        },
    }


class TestReadTaskFile:

    def test_read_from_mapping(self):
        task_file = read_task_file(_fuel_tasks())
        assert task_file.id == "fuel"
        assert task_file.nodes["controller"].critical
        assert [record.id for record in task_file.tasks["controller"]] == ["netconfig", "database"]

    def test_read_from_path(self, tmp_path):
        path = tmp_path / "tasks.json"
        path.write_text(json.dumps(_fuel_tasks()), encoding="utf-8")
        task_file = read_task_file(path)
        assert set(task_file.tasks) == {"controller", "compute-1", "compute-2"}

    def test_bare_mapping_of_nodes(self):
        task_file = read_task_file({"node1": [{"id": "task1"}]})
        assert task_file.id is None
        assert task_file.tasks["node1"][0].id == "task1"

    def test_invalid_records_are_rejected(self):
        with pytest.raises(ValidationError):
            read_task_file({"tasks": {"node1": [{"data": 1}]}})
        with pytest.raises(ValidationError):
            read_task_file({"tasks": {"node1": [{"id": "a", "maximum_concurrency": -1}]}})


class TestBuildNodes:

    def test_tasks_and_dependencies_are_wired(self):
        nodes = build_nodes(read_task_file(_fuel_tasks()))
        controller = nodes["controller"]
        compute = nodes["compute-1"]
        assert controller.critical
        assert not compute.critical
        assert controller["netconfig"].data == {"type": "puppet"}
        assert controller["database"].has_backward_dependency(controller["netconfig"])
        assert compute["nova"].has_backward_dependency(controller["database"])
        assert compute["nova"].has_backward_dependency(compute["netconfig"])
        # required_for 方向同样生效
        assert nodes["compute-2"]["nova"].has_backward_dependency(nodes["compute-2"]["netconfig"])

    def test_unknown_references_are_skipped(self, caplog):
        raw = {
            "node1": [
                {
                    "id": "task1",
                    "requires": [
                        {"node_id": "node9", "name": "task1"},
                        {"node_id": "node1", "name": "missing"},
                    ],
                },
            ],
        }
        with caplog.at_level(logging.WARNING, logger="deployment.loader"):
            nodes = build_nodes(read_task_file(raw))
        assert not nodes["node1"]["task1"].any_backward_dependencies()
        assert "node9" in caplog.text
        assert "missing" in caplog.text

    def test_non_mapping_requirements_are_skipped(self, caplog):
        raw = {
            "node1": [
                {"id": "a"},
                {"id": "b", "requires": ["a", {"node_id": "node1", "name": "a"}]},
                {"id": "c", "required_for": [42]},
            ],
        }
        with caplog.at_level(logging.WARNING, logger="schema"):
            process = load_process(raw, executor_factory=lambda node_id: SimulatedExecutor())
        node = process.nodes[0]
        assert node["b"].backward_dependencies == {node["a"]}
        assert not node["c"].any_forward_dependencies()
        assert "not a mapping" in caplog.text
        assert process.run().success

    def test_nodes_without_tasks_are_created(self):
        nodes = build_nodes(read_task_file({"tasks": {}, "nodes": {"spare": {"name": "spare-node"}}}))
        assert nodes["spare"].name == "spare-node"
        assert nodes["spare"].id == "spare"
        assert len(nodes["spare"]) == 0


class TestLoadProcess:

    def test_end_to_end_run(self):
        executor = SimulatedExecutor()
        process = load_process(_fuel_tasks(), executor_factory=lambda node_id: executor)
        assert process.id == "fuel"
        assert process.concurrency.maximum("nova") == 1
        result = process.run()
        assert result.success
        names = [str(task) for task in executor.dispatched]
        assert names.index("Task[controller/database]") < names.index("Task[compute-1/nova]")
        assert executor.peak_running["nova"] == 1

    def test_critical_failure_from_file(self):
        executor = SimulatedExecutor(outcomes={"controller/netconfig": "failed"})
        process = load_process(_fuel_tasks(), executor_factory=lambda node_id: executor)
        result = process.run()
        assert result.outcome == RunOutcome.CRITICAL_NODES_FAILED
        assert result.failed_critical_nodes == ["controller"]
