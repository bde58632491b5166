"""
ShardPlanner - 分片规划

有录制凭据时按配置数量并行分片；
没有凭据时（如 fork 仓库的 PR）退化为单分片，至少保证跑一遍校验。
"""
from typing import List

from snapshot_ci.core.errors import InvalidConfigError
from snapshot_ci.core.models import ShardPlan


def plan(total_shards_configured: int, has_execution_credential: bool) -> List[ShardPlan]:
    """生成分片计划（纯函数）

    Raises:
        InvalidConfigError: total_shards_configured < 1 或不是整数
    """
    if isinstance(total_shards_configured, bool) or not isinstance(total_shards_configured, int):
        raise InvalidConfigError(f"分片数必须是整数: {total_shards_configured!r}")
    if total_shards_configured < 1:
        raise InvalidConfigError(f"分片数必须 >= 1: {total_shards_configured}")

    if not has_execution_credential:
        return [ShardPlan(shard_index=0, total_shards=1, enable_parallel=False)]

    return [
        ShardPlan(shard_index=i, total_shards=total_shards_configured, enable_parallel=True)
        for i in range(total_shards_configured)
    ]
