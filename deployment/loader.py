"""
Task file loader - builds nodes and a Process from a JSON task file.
任务文件加载器：从 JSON 任务文件构建节点和 Process。

File format (validated with schema.TaskFile):
文件格式（使用 schema.TaskFile 校验）：

    {
      "id": "fuel",
      "nodes": {"controller": {"critical": true}},
      "tasks": {
        "controller": [
          {"id": "netconfig", "data": {...}},
          {"id": "database", "requires": [{"node_id": "controller", "name": "netconfig"}]}
        ],
        "compute-1": [
          {"id": "nova", "requires": [{"node_id": "controller", "name": "database"}],
           "maximum_concurrency": 2}
        ]
      }
    }

A bare mapping of node id -> task list (without "tasks") is accepted too.
也接受省略 "tasks" 的写法：直接以节点 ID -> 任务列表作为顶层映射。

Tasks are created only with add_new_task() and wired only with
add_dependency(). A requirement pointing at an unknown node or task is
logged and skipped.
任务只通过 add_new_task() 创建，依赖只通过 add_dependency() 连接。
引用了不存在的节点或任务的依赖会记录警告并跳过。
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable

from deployment.node import Node, NodeExecutor
from deployment.process import Process
from deployment.task import Task
from schema import DependencyRef, TaskFile

logger = logging.getLogger(__name__)

ExecutorFactory = Callable[[str], NodeExecutor | None]


def read_task_file(source: str | Path | dict[str, Any]) -> TaskFile:
    """
    Parse and validate a task file from a path or an already-loaded mapping.
    从文件路径或已加载的字典解析并校验任务文件。
    """
    if isinstance(source, dict):
        raw = source
    else:
        with open(source, "r", encoding="utf-8") as f:
            raw = json.load(f)
    if "tasks" not in raw:
        raw = {"tasks": raw}
    return TaskFile.model_validate(raw)


def _lookup(nodes: dict[str, Node], ref: DependencyRef, owner: Task) -> Task | None:
    node = nodes.get(ref.node_id)
    if node is None:
        logger.warning("[Loader] %s: Node %s is not found, skipping dependency on %s", owner, ref.node_id, ref.name)
        return None
    task = node.get_task(ref.name)
    if task is None:
        logger.warning("[Loader] %s: Task %s is not found on node: %s", owner, ref.name, node)
    return task


def build_nodes(task_file: TaskFile, executor_factory: ExecutorFactory | None = None) -> dict[str, Node]:
    """
    Create one Node per node id, add its tasks, then wire all dependencies.
    为每个节点 ID 创建 Node，添加其任务，然后连接所有依赖。
    """
    node_ids = list(task_file.tasks)
    for node_id in task_file.nodes:
        if node_id not in task_file.tasks:
            node_ids.append(node_id)

    nodes: dict[str, Node] = {}
    for node_id in node_ids:
        options = task_file.nodes.get(node_id)
        nodes[node_id] = Node(
            options.name if options and options.name else node_id,
            id=node_id,
            critical=bool(options and options.critical),
            executor=executor_factory(node_id) if executor_factory else None,
        )

    # First pass: tasks, so that cross-node references can be resolved
    # 第一遍：先创建全部任务，保证跨节点引用可以解析
    for node_id, records in task_file.tasks.items():
        for record in records:
            nodes[node_id].add_new_task(record.id, record.data)

    # Second pass: dependencies
    # 第二遍：连接依赖
    for node_id, records in task_file.tasks.items():
        node = nodes[node_id]
        for record in records:
            task = node.get_task(record.id)
            for ref in record.requires:
                required = _lookup(nodes, ref, task)
                if required is not None:
                    node.add_dependency(required, task)
            for ref in record.required_for:
                required_by = _lookup(nodes, ref, task)
                if required_by is not None:
                    required_by.node.add_dependency(task, required_by)

    logger.info("[Loader] Loaded %d nodes, %d tasks", len(nodes), sum(len(n) for n in nodes.values()))
    return nodes


def load_process(
    source: str | Path | dict[str, Any],
    executor_factory: ExecutorFactory | None = None,
) -> Process:
    """
    Build a ready-to-run Process from a task file.
    从任务文件构建可直接运行的 Process。
    """
    task_file = read_task_file(source)
    nodes = build_nodes(task_file, executor_factory)
    process = Process(list(nodes.values()), id=task_file.id)
    for records in task_file.tasks.values():
        for record in records:
            if record.maximum_concurrency:
                process.set_maximum_concurrency(record.id, record.maximum_concurrency)
    return process
