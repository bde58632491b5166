"""
Shards Stage - 分片规划与并行执行
"""
from typing import Optional

from snapshot_ci.addons.shards.coordinator import ExecutionCoordinator
from snapshot_ci.addons.shards.planner import plan
from snapshot_ci.core.config import ShardsConfig
from snapshot_ci.core.errors import ArtifactUploadFailureError
from snapshot_ci.core.interface import BaseStage, RunContext, hookimpl
from snapshot_ci.core.models import ShardResult
from snapshot_ci.core.utils import logger
from snapshot_ci.lib.cache import Baseline, is_miss
from snapshot_ci.lib.shard_store import BUNDLE_DIRNAME, shard_dir, write_shard_result


class ShardsStage(BaseStage):
    module_dir = "shards"

    @hookimpl
    def e2e(self, context: RunContext) -> None:
        """规划分片并执行，结果落盘后逐个发布为产物"""
        ctx = context
        cfg: ShardsConfig = self.get_config(ctx)
        logger.info("\n>>> [Shards] 开始执行分片测试...")

        plans = plan(cfg.total_shards, ctx.trigger.has_execution_credential)
        if not plans[0].enable_parallel:
            logger.info("  -> 未检测到录制凭据，退化为单分片执行")

        if ctx.shard_filter is not None:
            plans = [p for p in plans if p.shard_index == ctx.shard_filter]
            if not plans:
                logger.info(f"  -> 分片 {ctx.shard_filter} 不在计划内，跳过")
                self.log(ctx, "e2e", "skipped")
                return

        ctx.state.total_shards = plans[0].total_shards
        ctx.state.parallel = plans[0].enable_parallel

        coordinator = ExecutionCoordinator(ctx.runner, ctx.work_dir / "runs", cfg.max_workers)
        results = coordinator.execute_all(plans, self._seed_baseline(ctx))

        for result in results:
            write_shard_result(ctx.shards_dir, result)
            self._publish(ctx, cfg, result)

        ctx.shard_results = results
        failed = [r.shard_index + 1 for r in results if r.failed]
        if failed:
            logger.info(f"  -> 分片执行完成，失败分片: {failed}")
        else:
            logger.info(f"  -> {len(results)} 个分片全部通过")
        self.log(ctx, "e2e", f"{len(results)}")

    def _publish(self, ctx: RunContext, cfg: ShardsConfig, result: ShardResult) -> None:
        """发布单个分片的快照目录（无论成败都发布，产物按序号命名避免覆盖）"""
        name = f"{cfg.artifact_prefix}{result.shard_index + 1}"
        path = shard_dir(ctx.shards_dir, result.shard_index) / BUNDLE_DIRNAME
        try:
            url = ctx.publisher.upload(name, path, cfg.artifact_retention_days)
        except ArtifactUploadFailureError as e:
            logger.warning(f"  -> [WARN] {e}，已忽略")
            return
        ctx.state.shard_artifact_urls[name] = url

    @staticmethod
    def _seed_baseline(ctx: RunContext) -> Optional[Baseline]:
        """分片看到的基线不含覆盖率文件，避免把上一次提交的覆盖率当作本次产出"""
        if ctx.baseline is None or is_miss(ctx.baseline):
            return ctx.baseline
        return ctx.baseline.without(ctx.config.coverage.file)
