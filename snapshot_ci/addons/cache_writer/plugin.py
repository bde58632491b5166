"""
CacheWriter Stage - 成功的 push 把合并后的快照写回缓存

新 key 由 head 提交派生，与本次 restore 用的 key 不同，
后续基于该提交的运行会把它当作基线。
"""
from snapshot_ci.core.interface import BaseStage, RunContext, hookimpl
from snapshot_ci.core.schema import RunStatus
from snapshot_ci.core.trigger import TriggerContext
from snapshot_ci.core.utils import logger
from snapshot_ci.lib.bundle import SnapshotBundle
from snapshot_ci.lib.cache import BlobCache


def should_save(ctx: TriggerContext, overall_status: RunStatus) -> bool:
    return ctx.is_push and overall_status != RunStatus.FAILURE


class CacheWriter:

    def __init__(self, cache: BlobCache):
        self._cache = cache

    def maybe_save(self, ctx: TriggerContext, overall_status: RunStatus, merged_bundle: SnapshotBundle) -> bool:
        """满足条件时保存，返回是否实际写入；任何情况下都不抛异常"""
        if not should_save(ctx, overall_status):
            return False
        key = self._cache.derive_key(ctx.head_commit)
        return self._cache.save(key, merged_bundle)


class CacheWriterStage(BaseStage):
    module_dir = "cache_writer"

    @hookimpl
    def combine(self, context: RunContext) -> None:
        ctx = context
        if ctx.aggregate is None:
            return
        if not should_save(ctx.trigger, ctx.aggregate.overall_status):
            logger.info("  -> [CacheWriter] 非 push 或存在失败分片，跳过缓存写入")
            return

        logger.info("\n>>> [CacheWriter] 保存新的基线快照...")
        cache = ctx.cache
        # 覆盖率属于本次运行，不进入基线
        merged = ctx.aggregate.merged_bundle.without(ctx.config.coverage.file)
        if CacheWriter(cache).maybe_save(ctx.trigger, ctx.aggregate.overall_status, merged):
            ctx.state.saved_key = str(cache.derive_key(ctx.trigger.head_commit))
        self.log(ctx, "combine", ctx.state.saved_key or "not-saved")
