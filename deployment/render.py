"""
Read-only diagnostics for a Process: a Rich tree and a Graphviz DOT export.
Process 的只读诊断视图：Rich 树形展示与 Graphviz DOT 导出。

Both views use only public read-only queries (nodes, tasks, statuses,
dependency sets, names) and never change scheduler state beyond the
readiness memoization those queries fill in.
两种视图都只使用公开的只读查询（节点、任务、状态、依赖集合、名称），
除了查询本身填充的就绪缓存外，不会改变调度器状态。
"""

from __future__ import annotations

from rich.markup import escape
from rich.tree import Tree

from deployment.node import Node
from deployment.process import Process
from deployment.task import Task
from schema import TaskStatus

# Task status -> Rich style
# 任务状态 -> Rich 样式映射（用于树形可视化中的颜色标注）
_STATUS_STYLES = {
    "pending": "dim",            # 等待中：暗色
    "running": "bold blue",      # 运行中：粗体蓝色
    "successful": "green",       # 成功：绿色
    "failed": "red",             # 失败：红色
    "skipped": "magenta",        # 跳过：洋红色
}

# Task status -> DOT fill colour
# 任务状态 -> DOT 填充色
_DOT_COLORS = {
    "pending": "white",
    "running": "blue",
    "successful": "green",
    "failed": "red",
    "skipped": "purple",
}


def task_style(task: Task) -> str:
    """
    Rich style of a task: blocked by a failed dependency -> orange,
    pending with all dependencies met -> yellow, otherwise by status.
    任务样式：被失败依赖阻断 -> 橙色；pending 且依赖已满足 -> 黄色；其余按状态着色。
    """
    if task.dependencies_have_failed() and task.status != TaskStatus.FAILED:
        return "dark_orange"
    if task.pending() and task.dependencies_are_ready():
        return "yellow"
    return _STATUS_STYLES.get(task.status.value, "white")


def task_color(task: Task) -> str:
    if task.dependencies_have_failed() and task.status != TaskStatus.FAILED:
        return "orange"
    if task.pending() and task.dependencies_are_ready():
        return "yellow"
    return _DOT_COLORS.get(task.status.value, "white")


# ======================================================================
# Rich tree
# Rich 树形展示
# ======================================================================

def build_process_tree(process: Process) -> Tree:
    """
    Build a Rich Tree: Process > Nodes > Tasks.
    构建 Rich Tree，展示层级结构：Process > Nodes > Tasks。
    每个任务旁显示当前状态和前置依赖，颜色编码方便快速识别。
    """
    tree = Tree(f"[bold]{escape(str(process))}[/bold] [dim]{escape(process.summary())}[/dim]")
    for node in process.each_node():
        branch = tree.add(_node_label(node))
        for task in node:
            style = task_style(task)
            label = f"[{style}]{escape(task.name)}[/{style}] [dim]({task.status.value})[/dim]"
            if task.backward_dependencies:
                label += f" [dim]after: {escape(', '.join(task.backward_dependency_names()))}[/dim]"
            if task.maximum_concurrency_is_set():
                label += f" [cyan]{task.current_concurrency}/{task.maximum_concurrency}[/cyan]"
            branch.add(label)
    return tree


def _node_label(node: Node) -> str:
    label = f"[cyan]{escape(str(node))}[/cyan] ({node.status.value})"
    if node.critical:
        label += " [bold red]critical[/bold red]"
    label += f" [dim]{node.tasks_finished_count()}/{node.tasks_total_count()} finished[/dim]"
    if node.task is not None:
        label += f" [yellow]running {escape(node.task.name)}[/yellow]"
    return label


# ======================================================================
# DOT export
# DOT 导出
# ======================================================================

def _dot_id(task: Task, node_filter: Node | None) -> str:
    if node_filter is not None:
        return task.name
    return f"{task.node.name}_{task.name}"


def _quote(value: str) -> str:
    return '"' + value.replace('"', '\\"') + '"'


def to_dot(process: Process, node: Node | None = None) -> str:
    """
    Render the task graph as Graphviz DOT text.
    将任务图渲染为 Graphviz DOT 文本。

    With `node` given, only that node's tasks and the edges between them are
    drawn and tasks are labelled by bare name.
    传入 `node` 时只绘制该节点的任务及其之间的边，任务以短名称标注。
    """
    name = str(node.name if node is not None else (process.id or "graph"))
    lines = [f"digraph {_quote(name)} {{", "  node [style=\"filled, solid\"];"]
    drawn: set[Task] = set()
    for task in process.each_task():
        if node is not None and task.node is not node:
            continue
        drawn.add(task)
        lines.append(f"  {_quote(_dot_id(task, node))} [fillcolor={task_color(task)}];")
    for task in process.each_task():
        if task not in drawn:
            continue
        for dependency in sorted(task.backward_dependencies, key=str):
            if dependency not in drawn:
                continue
            lines.append(f"  {_quote(_dot_id(dependency, node))} -> {_quote(_dot_id(task, node))};")
    lines.append("}")
    return "\n".join(lines)
