"""
分片执行相关的数据类
"""
from dataclasses import dataclass, field

from snapshot_ci.core.schema import RunStatus
from snapshot_ci.lib.bundle import SnapshotBundle


@dataclass(frozen=True)
class ShardPlan:
    """单个分片的执行计划"""
    shard_index: int
    total_shards: int
    enable_parallel: bool

    def __post_init__(self) -> None:
        if not 0 <= self.shard_index < self.total_shards:
            raise ValueError(
                f"shard_index 越界: {self.shard_index} (total={self.total_shards})"
            )
        if not self.enable_parallel and self.total_shards != 1:
            raise ValueError("enable_parallel=False 时 total_shards 必须为 1")

    @property
    def label(self) -> str:
        return f"{self.shard_index + 1}/{self.total_shards}"


@dataclass(frozen=True)
class ShardResult:
    """单个分片的执行结果，产出后不可变"""
    shard_index: int
    status: RunStatus
    output_bundle: SnapshotBundle = field(default_factory=SnapshotBundle)

    @property
    def failed(self) -> bool:
        return self.status == RunStatus.FAILURE


@dataclass(frozen=True)
class AggregateResult:
    """所有分片合并后的结果"""
    overall_status: RunStatus
    merged_bundle: SnapshotBundle
    diff_bundle: SnapshotBundle

    @property
    def failed(self) -> bool:
        return self.overall_status == RunStatus.FAILURE
