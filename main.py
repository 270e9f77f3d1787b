"""
Fleet Deployment - CLI entry point.
集群部署调度器：命令行入口。

Builds one of the bundled demo deployments (or loads a JSON task file),
runs it with the SimulatedExecutor and prints the run report with a rich
console UI: an optional task tree before and after the run, and an
optional Graphviz DOT export.
构建内置的演示部署（或加载 JSON 任务文件），使用 SimulatedExecutor 运行，
并通过 Rich 控制台 UI 输出运行报告：可选的运行前后任务树，以及可选的 DOT 导出。

Usage / 用法:
    python main.py mini               # 单节点三任务链
    python main.py loop               # 三任务成环，预检拒绝
    python main.py concurrency        # 多节点共享 "deploy" 并发上限
    python main.py critical           # 关键节点失败，立即终止
    python main.py scale              # 多节点长链 + 跨节点依赖
    python main.py file tasks.json    # 从任务文件加载
    options: -v / --verbose, --tree, --dot
"""

from __future__ import annotations

import logging
import sys

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

import config
from deployment.errors import DeploymentError, LoopDetected
from deployment.loader import load_process
from deployment.node import Node
from deployment.process import Process
from deployment.render import build_process_tree, to_dot
from deployment.simulation import SimulatedExecutor
from schema import RunResult, TaskStatus

console = Console()

logger = logging.getLogger(__name__)


# ======================================================================
# Demo scenarios
# 演示场景
# ======================================================================

def build_mini(executor: SimulatedExecutor) -> Process:
    """
    One node, a chain of three tasks: task1 -> task2 -> task3.
    单节点，三任务链：task1 -> task2 -> task3。
    """
    node1 = Node("node1", executor=executor)
    for name in ("task1", "task2", "task3"):
        node1.add_new_task(name)
    node1["task1"].before(node1["task2"])
    node1["task2"].before(node1["task3"])
    return Process(node1, id="mini")


def build_loop(executor: SimulatedExecutor) -> Process:
    """
    Three tasks depending on each other in a ring; rejected before any dispatch.
    三个任务首尾相连成环；在任何派发之前即被预检拒绝。
    """
    node1 = Node("node1", executor=executor)
    task1 = node1.add_new_task("task1")
    task2 = node1.add_new_task("task2")
    task3 = node1.add_new_task("task3")
    task2.after(task1)
    task3.after(task2)
    task1.after(task3)
    return Process(node1, id="loop")


def build_concurrency(executor: SimulatedExecutor) -> Process:
    """
    N nodes with deploy -> final; "deploy" is limited fleet-wide.
    N 个节点，每个节点 deploy -> final；"deploy" 在整个集群范围内限流。
    """
    nodes = []
    for number in range(1, config.DEMO_NODE_COUNT + 1):
        node = Node(f"node{number}", executor=executor)
        node.add_new_task("deploy")
        node.add_new_task("final")
        node.add_dependency("deploy", "final")
        nodes.append(node)
    process = Process(nodes, id="concurrency")
    process.set_maximum_concurrency("deploy", config.DEMO_CONCURRENCY)
    process.set_maximum_concurrency("final", 1)
    return process


def build_critical(executor: SimulatedExecutor) -> Process:
    """
    A critical controller whose database task fails while computes are still busy.
    关键节点 controller 的 database 任务失败，此时 compute 节点仍在运行。
    """
    executor.outcomes["controller/database"] = TaskStatus.FAILED
    controller = Node("controller", critical=True, executor=executor)
    controller.add_new_task("netconfig")
    controller.add_new_task("database")
    controller.add_dependency("netconfig", "database")
    computes = []
    for number in range(1, 3):
        compute = Node(f"compute-{number}", executor=SimulatedExecutor(polls=executor.polls * 5))
        compute.add_new_task("netconfig")
        compute.add_new_task("nova")
        compute.add_dependency("netconfig", "nova")
        computes.append(compute)
    return Process(controller, *computes, id="critical")


def build_scale(executor: SimulatedExecutor) -> Process:
    """
    N nodes with a chain of M tasks each; every node after the first waits for
    the middle task of the first node before its own first task.
    N 个节点，各自一条 M 个任务的链；除第一个节点外，
    每个节点的第一个任务都要等待第一个节点的中间任务完成。
    """
    nodes = [Node(f"node{number}", executor=executor) for number in range(1, max(1, config.DEMO_NODE_COUNT) + 1)]
    count = max(1, config.DEMO_TASK_COUNT)
    for node in nodes:
        previous = None
        for number in range(1, count + 1):
            task = node.add_new_task(f"task{number}")
            if previous is not None:
                node.add_dependency(previous, task)
            previous = task
    middle = nodes[0][f"task{max(1, count // 2)}"]
    for node in nodes[1:]:
        node["task1"].after(middle)
    return Process(nodes, id="scale")


SCENARIOS = {
    "mini": build_mini,
    "loop": build_loop,
    "concurrency": build_concurrency,
    "critical": build_critical,
    "scale": build_scale,
}


# ======================================================================
# Report
# 运行报告展示
# ======================================================================

def print_result(process: Process, result: RunResult) -> None:
    """
    Print the run report as a rich panel plus a per-node table.
    以 Rich 面板输出运行报告，并附带每个节点的统计表。
    """
    style = "green" if result.success else "red"
    verdict = "SUCCESS" if result.success else "FAILURE"
    content = f"Verdict: [{style}]{verdict}[/{style}]  |  Outcome: {result.outcome.value}  |  Ticks: {result.ticks}\n\n"
    content += escape(result.message)
    if result.failed_critical_nodes:
        content += f"\n\nFailed critical nodes: {', '.join(result.failed_critical_nodes)}"
    if result.failed_nodes:
        content += f"\nFailed nodes: {', '.join(result.failed_nodes)}"
    if result.loop:
        content += f"\n\nLoop: {escape(' -> '.join(result.loop))}"
    console.print(Panel(content, title=f"[bold]{escape(str(process))}[/bold]", border_style=style))

    table = Table(title="Nodes", border_style="cyan")
    table.add_column("Node", style="cyan")
    table.add_column("Status", style="white")
    table.add_column("Critical", style="dim")
    table.add_column("Finished", justify="right")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Pending", justify="right", style="dim")
    for node in process.each_node():
        table.add_row(
            escape(str(node)),
            node.status.value,
            "yes" if node.critical else "-",
            f"{node.tasks_finished_count()}/{node.tasks_total_count()}",
            str(node.tasks_failed_count()),
            str(node.tasks_pending_count()),
        )
    console.print(table)


def run_process(process: Process, show_tree: bool = False, show_dot: bool = False) -> RunResult:
    """
    Run a process and print the result; a detected loop becomes a failed report.
    运行 Process 并打印结果；检测到的依赖环会转换为失败报告。
    """
    if show_tree:
        console.print(Panel(build_process_tree(process), title="[bold magenta]Before[/bold magenta]", border_style="magenta"))
    try:
        result = process.run()
    except LoopDetected as exc:
        result = RunResult.from_loop(exc, None if process.id is None else str(process.id))
    if show_tree:
        console.print(Panel(build_process_tree(process), title="[bold magenta]After[/bold magenta]", border_style="magenta"))
    if show_dot:
        console.print(to_dot(process), markup=False, highlight=False)
    print_result(process, result)
    return result


# ======================================================================
# Main
# 主函数
# ======================================================================

def setup_logging(verbose: bool = False) -> None:
    """
    Configure logging with rich handler.
    使用 Rich 处理器配置日志系统。
    verbose=True 时启用 DEBUG 级别，否则使用配置中的 LOG_LEVEL。
    """
    level = logging.DEBUG if verbose else getattr(logging, config.LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
    )


def build_process(args: list[str], executor: SimulatedExecutor) -> Process | None:
    """
    Pick the scenario named by the first positional argument.
    根据第一个位置参数选择场景；未知场景返回 None。
    """
    scenario = args[0] if args else "mini"
    if scenario == "file":
        path = args[1] if len(args) > 1 else config.TASKS_FILE
        if not path:
            console.print("[red]A task file path is required: python main.py file <path>[/red]")
            return None
        return load_process(path, executor_factory=lambda node_id: executor)
    builder = SCENARIOS.get(scenario)
    if builder is None:
        console.print(f"[red]Unknown scenario: {escape(scenario)}[/red] (choose from: {', '.join(SCENARIOS)}, file)")
        return None
    return builder(executor)


def main() -> None:
    """
    程序入口：解析命令行参数，构建场景并运行。
    - 位置参数：场景名（默认 mini），file 场景需要额外的文件路径
    - -v / --verbose：启用调试日志
    - --tree：运行前后打印任务树
    - --dot：打印 Graphviz DOT 导出
    退出码：成功为 0，否则为 1。
    """
    verbose = "--verbose" in sys.argv or "-v" in sys.argv
    show_tree = "--tree" in sys.argv
    show_dot = "--dot" in sys.argv
    setup_logging(verbose)

    # 过滤掉以 - 开头的选项参数，保留位置参数
    args = [a for a in sys.argv[1:] if not a.startswith("-")]
    executor = SimulatedExecutor(polls=config.SIMULATED_POLLS)
    try:
        process = build_process(args, executor)
    except (DeploymentError, OSError, ValueError) as exc:
        console.print(f"\n[red]Error: {escape(str(exc))}[/red]")
        logger.debug("Failed to build the deployment", exc_info=True)
        sys.exit(1)
    if process is None:
        sys.exit(1)

    result = run_process(process, show_tree=show_tree, show_dot=show_dot)
    sys.exit(0 if result.success else 1)


if __name__ == "__main__":
    main()
