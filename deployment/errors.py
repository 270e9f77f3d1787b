"""
Deployment errors - the exceptions raised by the scheduling core.
部署错误：调度核心抛出的异常类型。

All of these signal a broken contract (bad argument, unknown task, cyclic
graph, missing run/poll implementation) and are never retried internally.
A task that *fails* is normal data flowing through the status model and is
never raised as an exception.

以下异常都表示调用契约被破坏（参数非法、任务不存在、依赖成环、未实现 run/poll），
核心内部从不重试。任务执行失败属于正常的状态数据，不会以异常形式抛出。
"""

from __future__ import annotations


class DeploymentError(Exception):
    """Base class for every error of the deployment core. 部署核心所有异常的基类。"""


class InvalidArgument(DeploymentError, ValueError):
    """
    A value failed a type or membership precondition.
    传入的值不满足类型或归属前置条件（例如依赖目标不是 Task）。
    """


class InvalidStatus(InvalidArgument):
    """
    A task or node status is not one of the allowed values.
    任务或节点状态不在允许的取值集合中。
    """


class NoSuchTask(DeploymentError, LookupError):
    """
    A task was requested by name but the graph has no such task.
    按名称请求任务，但图中不存在该任务。
    """


class LoopDetected(DeploymentError):
    """
    The global forward-dependency graph contains a cycle.
    全局前向依赖图中存在环。

    `path` holds the tasks of the current DFS path, ending with the task
    that was reached a second time.
    `path` 保存 DFS 当前路径上的任务，最后一个元素为被再次访问到的任务。
    """

    def __init__(self, message: str, path: list | None = None):
        super().__init__(message)
        self.path = list(path or [])


class NotImplementedByNode(DeploymentError, NotImplementedError):
    """
    The abstract run/poll contract was called without a concrete collaborator.
    调用了抽象的 run/poll 契约，但没有接入具体的执行实现。
    """
