"""
分片结果落盘

布局:
    {shards_dir}/shard-{i}/result.json
    {shards_dir}/shard-{i}/bundle/...

e2e 与 combine 拆成不同 job 时，combine 通过这里读回所有分片结果。
"""
import json
import logging
import shutil
from pathlib import Path
from typing import Dict

from snapshot_ci.core.models import ShardResult
from snapshot_ci.core.schema import RunStatus
from snapshot_ci.lib.bundle import SnapshotBundle

logger = logging.getLogger("snapshot_ci")

RESULT_FILENAME = "result.json"
BUNDLE_DIRNAME = "bundle"


def shard_dir(shards_dir: Path, shard_index: int) -> Path:
    return shards_dir / f"shard-{shard_index}"


def write_shard_result(shards_dir: Path, result: ShardResult) -> Path:
    """写出单个分片结果，返回分片目录"""
    target = shard_dir(shards_dir, result.shard_index)
    if target.exists():
        shutil.rmtree(target)
    result.output_bundle.write_to(target / BUNDLE_DIRNAME)
    (target / RESULT_FILENAME).write_text(
        json.dumps({
            "shard_index": result.shard_index,
            "status": result.status.value,
            "files": len(result.output_bundle),
        }, indent=2),
        encoding="utf-8",
    )
    return target


def read_shard_results(shards_dir: Path) -> Dict[int, ShardResult]:
    """读回所有分片结果，key 为分片序号；损坏的结果文件跳过并告警"""
    results: Dict[int, ShardResult] = {}
    if not shards_dir.is_dir():
        return results

    for result_file in sorted(shards_dir.glob(f"shard-*/{RESULT_FILENAME}")):
        try:
            data = json.loads(result_file.read_text(encoding="utf-8"))
            index = int(data["shard_index"])
            status = RunStatus(data["status"])
        except (json.JSONDecodeError, IOError, KeyError, ValueError) as e:
            logger.warning(f"  -> [WARN] 无法解析分片结果 {result_file}: {e}")
            continue
        bundle = SnapshotBundle.from_dir(result_file.parent / BUNDLE_DIRNAME)
        results[index] = ShardResult(shard_index=index, status=status, output_bundle=bundle)

    return results
