"""
Configuration module for the fleet deployment scheduler.
Loads settings from environment variables or .env file.
集群部署调度器配置模块。
从环境变量或 .env 文件加载所有配置项。
"""

import os
from dotenv import load_dotenv

load_dotenv()  # 自动读取项目根目录的 .env 文件（若存在），优先级低于系统环境变量

# --- Logging ---
# --- 日志 ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()  # 默认日志级别；命令行 -v 会强制为 DEBUG

# --- Demo Scenarios ---
# --- 演示场景参数 ---
DEMO_NODE_COUNT = int(os.getenv("DEMO_NODE_COUNT", "5"))    # concurrency / scale 场景中的节点数
DEMO_TASK_COUNT = int(os.getenv("DEMO_TASK_COUNT", "10"))   # scale 场景中每个节点的任务数
DEMO_CONCURRENCY = int(os.getenv("DEMO_CONCURRENCY", "2"))  # concurrency 场景中 "deploy" 任务的全局并发上限

# --- Simulated Execution ---
# --- 模拟执行 ---
SIMULATED_POLLS = int(os.getenv("SIMULATED_POLLS", "2"))  # 模拟任务完成前需要的 poll 次数（1 = 下一次 poll 即完成）

# --- Task File ---
# --- 任务文件 ---
TASKS_FILE = os.getenv("TASKS_FILE", "")  # `python main.py file` 未给出路径时使用的默认任务文件
