"""
Pydantic data models for the deployment scheduler.
Defines the status enums shared by tasks and nodes, the run report
returned by Process.run(), and the task-file records read by the loader.
部署调度器的 Pydantic 数据模型。
定义了任务/节点共用的状态枚举、Process.run() 返回的运行报告，
以及任务文件加载器读取的记录结构。
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


# ======================================================================
# Statuses
# 状态枚举
# ======================================================================

class TaskStatus(str, Enum):
    """
    Task lifecycle states.
    任务生命周期状态。

        PENDING -> RUNNING -> SUCCESSFUL
                           -> FAILED
        SKIPPED is set by an operator, never by the scheduler itself.
        SKIPPED 由操作者手动设置，调度器自身不会设置。
    """
    PENDING = "pending"         # 尚未运行
    RUNNING = "running"         # 已派发，等待 poll 观察到结果
    SUCCESSFUL = "successful"   # 成功（终态）
    FAILED = "failed"           # 失败（终态）
    SKIPPED = "skipped"         # 跳过（终态，视同依赖已满足）


# Statuses after which a task will not run again in this deployment
# 任务进入这些状态后，本次部署中不会再运行
TASK_FINISHED_STATUSES = frozenset({TaskStatus.SUCCESSFUL, TaskStatus.FAILED, TaskStatus.SKIPPED})

# Setting one of these can change the readiness of the forward dependents
# 设置这些状态会影响前向依赖任务的就绪性，需要级联 reset
DEPENDENCY_CHANGING_STATUSES = TASK_FINISHED_STATUSES


class NodeStatus(str, Enum):
    """
    Node states, independent of the node's tasks.
    节点自身状态，与其任务状态相互独立。
    """
    ONLINE = "online"           # 空闲，可接收新任务
    BUSY = "busy"               # 正在运行一个任务
    OFFLINE = "offline"         # 离线，不接收任务
    FAILED = "failed"           # 节点失败（终态）
    SUCCESSFUL = "successful"   # 节点成功（终态）
    SKIPPED = "skipped"         # 节点被跳过（终态）


NODE_FINISHED_STATUSES = frozenset({NodeStatus.FAILED, NodeStatus.SUCCESSFUL, NodeStatus.SKIPPED})


# ======================================================================
# Run report
# 运行报告
# ======================================================================

class RunOutcome(str, Enum):
    """
    Why a Process run stopped.
    Process 运行结束的原因。
    """
    SUCCEEDED = "succeeded"                           # 全部节点成功，或全部结束且无失败
    CRITICAL_NODES_FAILED = "critical_nodes_failed"   # 关键节点失败，立即终止
    NODES_FAILED = "nodes_failed"                     # 全部节点结束，但有普通节点失败
    LOOP_DETECTED = "loop_detected"                   # 预检发现依赖环，未派发任何任务


class RunResult(BaseModel):
    """
    The user-visible result of one Process run.
    一次 Process 运行对用户可见的结果。
    """
    success: bool
    outcome: RunOutcome
    process_id: str | None = None
    failed_nodes: list[str] = Field(default_factory=list, description="Names of all failed nodes")
    failed_critical_nodes: list[str] = Field(default_factory=list, description="Names of failed critical nodes")
    loop: list[str] = Field(default_factory=list, description="Tasks on the detected cycle, as Task[node/name]")
    ticks: int = Field(default=0, description="Number of completed passes over the nodes")
    message: str = ""

    @classmethod
    def from_loop(cls, error: Exception, process_id: str | None = None) -> RunResult:
        """
        Build the report for a run rejected by the pre-flight loop check.
        为预检阶段发现依赖环而被拒绝的运行构造报告。
        """
        path = [str(task) for task in getattr(error, "path", [])]
        return cls(
            success=False,
            outcome=RunOutcome.LOOP_DETECTED,
            process_id=process_id,
            loop=path,
            message=str(error),
        )


# ======================================================================
# Task file records
# 任务文件记录（供 loader 使用）
# ======================================================================

class DependencyRef(BaseModel):
    """
    A reference to a task on some node.
    对某个节点上某个任务的引用。
    """
    node_id: str
    name: str


class TaskRecord(BaseModel):
    """
    One task entry of a node in the task file.
    任务文件中某个节点下的一条任务记录。
    """
    id: str = Field(description="Task name, unique on its node")
    data: Any = None
    requires: list[DependencyRef] = Field(default_factory=list, description="Tasks that must finish first")
    required_for: list[DependencyRef] = Field(default_factory=list, description="Tasks that wait for this one")
    maximum_concurrency: int | None = Field(default=None, ge=0)

    @field_validator("requires", "required_for", mode="before")
    @classmethod
    def _drop_non_mappings(cls, value: Any) -> Any:
        """Requirement entries that are not mappings are logged and skipped. 非字典形式的依赖条目记录警告后跳过。"""
        if not isinstance(value, list):
            return value
        kept = []
        for entry in value:
            if isinstance(entry, (dict, DependencyRef)):
                kept.append(entry)
            else:
                logger.warning("[TaskFile] Requirement is not a mapping, skipping: %r", entry)
        return kept


class NodeOptions(BaseModel):
    """Per-node options of the task file. 任务文件中的节点级选项。"""
    name: str | None = None
    critical: bool = False


class TaskFile(BaseModel):
    """
    The whole task file: tasks per node id, plus optional node options.
    完整任务文件：按节点 ID 分组的任务列表，以及可选的节点选项。
    """
    id: str | None = None
    tasks: dict[str, list[TaskRecord]] = Field(default_factory=dict)
    nodes: dict[str, NodeOptions] = Field(default_factory=dict)
