"""
Combine Stage - 合并分片产出、发布失败证据
"""
from typing import Dict, List

from snapshot_ci.addons.combine.aggregator import ArtifactAggregator, flatten_diff
from snapshot_ci.addons.shards import plan
from snapshot_ci.core.config import CombineConfig
from snapshot_ci.core.errors import ArtifactUploadFailureError
from snapshot_ci.core.interface import BaseStage, RunContext, hookimpl
from snapshot_ci.core.models import ShardResult
from snapshot_ci.core.schema import RunStatus
from snapshot_ci.core.utils import logger
from snapshot_ci.lib.bundle import SnapshotBundle
from snapshot_ci.lib.shard_store import read_shard_results


class CombineStage(BaseStage):
    module_dir = "combine"

    @hookimpl
    def combine(self, context: RunContext) -> None:
        ctx = context
        cfg: CombineConfig = self.get_config(ctx)
        logger.info("\n>>> [Combine] 合并分片产出...")

        results = self._collect(ctx)
        aggregate = ArtifactAggregator(cfg.diff_marker).merge(results)
        ctx.aggregate = aggregate

        ctx.state.overall_status = aggregate.overall_status.value
        ctx.state.merged_files = len(aggregate.merged_bundle)
        ctx.state.diff_files = len(aggregate.diff_bundle)
        logger.info(
            f"  -> 合并完成: {len(aggregate.merged_bundle)} 个文件，"
            f"{len(aggregate.diff_bundle)} 个 diff 文件，整体状态 {aggregate.overall_status.value}"
        )

        if aggregate.failed:
            self._publish_errors(ctx, cfg, aggregate.diff_bundle)
        self.log(ctx, "combine", aggregate.overall_status.value)

    def _collect(self, ctx: RunContext) -> List[ShardResult]:
        """收集所有计划内分片的结果；缺失的分片（崩溃或未上报）按失败处理"""
        found: Dict[int, ShardResult] = {r.shard_index: r for r in ctx.shard_results}
        if not found:
            found = read_shard_results(ctx.shards_dir)

        plans = plan(ctx.config.shards.total_shards, ctx.trigger.has_execution_credential)
        results: List[ShardResult] = []
        for p in plans:
            result = found.get(p.shard_index)
            if result is None:
                logger.warning(f"  -> [WARN] 分片 {p.label} 没有结果，按失败处理")
                result = ShardResult(p.shard_index, RunStatus.FAILURE, SnapshotBundle())
            results.append(result)
        ctx.shard_results = results
        return results

    def _publish_errors(self, ctx: RunContext, cfg: CombineConfig, diff_bundle: SnapshotBundle) -> None:
        """把 diff 图片平铺后发布为 error-snapshots 产物"""
        errors_dir = flatten_diff(diff_bundle, cfg.image_suffixes).write_to(
            ctx.work_dir / "errors", clean=True
        )
        try:
            url = ctx.publisher.upload(cfg.error_artifact_name, errors_dir, cfg.error_retention_days)
        except ArtifactUploadFailureError as e:
            logger.warning(f"  -> [WARN] {e}，已忽略")
            return
        ctx.state.error_artifact_url = url
        logger.info(f"  -> 失败截图已发布: {url}")
