"""
ArtifactAggregator - 合并各分片产出

- 按分片序号升序合并；内容不同的路径冲突时序号大的分片覆盖（并告警）
- 任一分片失败则整体失败；空输入视为成功
- 路径中任一目录名包含 diff 标记的文件归为失败证据
"""
import logging
from pathlib import PurePosixPath
from typing import Iterable, List, Sequence

from snapshot_ci.core.models import AggregateResult, ShardResult
from snapshot_ci.core.schema import RunStatus
from snapshot_ci.lib.bundle import DIFF_MARKER, SnapshotBundle, is_diff_path

logger = logging.getLogger("snapshot_ci")


class ArtifactAggregator:

    def __init__(self, diff_marker: str = DIFF_MARKER):
        self.diff_marker = diff_marker

    def merge(self, results: Iterable[ShardResult]) -> AggregateResult:
        ordered: List[ShardResult] = sorted(results, key=lambda r: r.shard_index)

        merged = SnapshotBundle()
        owner = {}
        for result in ordered:
            for path, data in result.output_bundle.items():
                # 各分片都带着同一份基线，内容相同不算冲突
                if path in owner and merged.get(path) != data:
                    logger.warning(
                        f"  -> [WARN] 路径冲突 {path}: 分片 {owner[path] + 1} 被分片 "
                        f"{result.shard_index + 1} 覆盖"
                    )
                merged.add(path, data, overwrite=True)
                owner[path] = result.shard_index

        diff = merged.select(lambda p: is_diff_path(p, self.diff_marker))
        status = RunStatus.combine(r.status for r in ordered)
        return AggregateResult(overall_status=status, merged_bundle=merged, diff_bundle=diff)


def flatten_diff(diff_bundle: SnapshotBundle, suffixes: Sequence[str] = (".png",)) -> SnapshotBundle:
    """把 diff 图片平铺到根目录（按文件名），同名时后者覆盖并告警"""
    flat = SnapshotBundle()
    wanted = tuple(s.lower() for s in suffixes)
    for path, data in diff_bundle.items():
        name = PurePosixPath(path).name
        if wanted and not name.lower().endswith(wanted):
            continue
        if name in flat:
            logger.warning(f"  -> [WARN] diff 文件重名，保留最后一个: {path}")
        flat.add(name, data, overwrite=True)
    return flat
