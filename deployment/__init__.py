"""
Deployment module - dependency-driven scheduling of tasks across a fleet of nodes.
Deployment 模块：在节点集群上按依赖关系调度部署任务。

Components:
  - task.py:        Task with mirrored dependency edges and memoized readiness
  - graph.py:       Graph, the tasks owned by one node
  - node.py:        Node and the NodeExecutor run/poll capability
  - process.py:     Process, the pre-flight loop check and the run loop
  - concurrency.py: per-task-name concurrency registry shared by a Process
  - simulation.py:  SimulatedExecutor, an in-process execution backend
  - loader.py:      JSON task-file loader
  - render.py:      Rich tree and DOT diagnostics

模块组成：
  - task.py:        任务，双向镜像依赖边 + 就绪性缓存
  - graph.py:       单个节点拥有的任务图
  - node.py:        节点及 NodeExecutor 运行/轮询能力接口
  - process.py:     Process，预检环检测与运行循环
  - concurrency.py: Process 共享的按任务名并发注册表
  - simulation.py:  SimulatedExecutor，进程内模拟执行后端
  - loader.py:      JSON 任务文件加载器
  - render.py:      Rich 树形与 DOT 诊断输出
"""

from deployment.errors import (           # 异常层次
    DeploymentError,
    InvalidArgument,
    InvalidStatus,
    LoopDetected,
    NoSuchTask,
    NotImplementedByNode,
)
from deployment.concurrency import ConcurrencyRegistry, ConcurrencySlot  # 并发注册表
from deployment.task import Task          # 任务
from deployment.graph import Graph        # 任务图
from deployment.node import Node, NodeExecutor  # 节点与执行能力接口
from deployment.process import Process    # 顶层编排器
from deployment.simulation import SimulatedExecutor  # 模拟执行器
from deployment.loader import load_process, read_task_file  # 任务文件加载
