"""
分片执行模块

  - plan():                 分片规划（纯函数）
  - ExecutionCoordinator:   线程池并行执行分片，fail-fast 关闭
"""
from snapshot_ci.addons.shards.coordinator import ExecutionCoordinator
from snapshot_ci.addons.shards.planner import plan

__all__ = [
    "ExecutionCoordinator",
    "plan",
]
