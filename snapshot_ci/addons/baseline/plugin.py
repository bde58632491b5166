"""
Baseline Stage - 基线快照恢复与重建

cache 阶段: 按目标提交恢复基线；未命中时切到目标提交重新生成并尽力写回缓存
e2e 阶段:   独立 job 运行时重新从缓存恢复（只读，不重建）
"""
import subprocess
from typing import List

from snapshot_ci.core.config import BaselineConfig
from snapshot_ci.core.errors import RegenerationFailureError
from snapshot_ci.core.interface import BaseStage, RunContext, hookimpl
from snapshot_ci.core.utils import logger
from snapshot_ci.lib.bundle import SnapshotBundle
from snapshot_ci.lib.cache import MISS, Baseline, CacheKey, is_miss


class BaselineStage(BaseStage):
    module_dir = "baseline"

    @hookimpl
    def cache(self, context: RunContext) -> None:
        """恢复基线，未命中时重建"""
        ctx = context
        cfg: BaselineConfig = self.get_config(ctx)
        logger.info("\n>>> [Baseline] 正在恢复基线快照...")

        cache = ctx.cache
        key = cache.derive_key(ctx.trigger.base_commit)
        ctx.state.restore_key = str(key)

        baseline = cache.restore(key)
        ctx.state.cache_hit = not is_miss(baseline)

        if is_miss(baseline) and cfg.regenerate:
            baseline = self._regenerate(ctx, cfg, key)

        ctx.baseline = baseline
        self.log(ctx, "cache", "hit" if ctx.state.cache_hit else "miss")

    @hookimpl
    def e2e(self, context: RunContext) -> None:
        """同进程内已有基线则复用，否则按 restore key 只读恢复"""
        ctx = context
        if ctx.baseline is not None:
            return

        cache = ctx.cache
        key = cache.derive_key(ctx.trigger.base_commit)
        ctx.state.restore_key = str(key)
        ctx.baseline = cache.restore(key)
        if is_miss(ctx.baseline):
            logger.info("  -> 无可用基线，所有对比将视为新增快照")

    # ── 重建 ─────────────────────────────────────────────

    def _regenerate(self, ctx: RunContext, cfg: BaselineConfig, key: CacheKey) -> Baseline:
        """切到目标提交跑一遍单分片生成基线；失败时降级为 MISS"""
        target = ctx.trigger.base_commit
        logger.info(f"  -> 在目标提交 {target} 上重新生成基线...")

        checked_out = False
        try:
            if cfg.checkout_command:
                self._run(ctx, cfg, self._format(cfg.checkout_command, target))
                checked_out = True
            if cfg.install_command:
                self._run(ctx, cfg, cfg.install_command)

            work_dir = ctx.work_dir / "regenerate"
            outcome = ctx.runner.run(0, 1, None, work_dir, parallel=False, commit=target)
            if outcome.exit_status != 0:
                raise RegenerationFailureError(f"基线生成失败 (exit={outcome.exit_status})")
            if outcome.output_path is None:
                raise RegenerationFailureError("执行器未产出快照目录")
            bundle = SnapshotBundle.from_dir(outcome.output_path).without(ctx.config.coverage.file)
        except (RegenerationFailureError, subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as e:
            logger.warning(f"  -> [WARN] 基线重建失败: {e}，将在无基线的情况下继续")
            return MISS
        finally:
            if checked_out:
                self._restore_checkout(ctx, cfg)

        ctx.state.regenerated = True
        logger.info(f"  -> 基线已生成 ({len(bundle)} 个文件)")
        ctx.cache.save(key, bundle)
        return bundle

    def _restore_checkout(self, ctx: RunContext, cfg: BaselineConfig) -> None:
        """切回 head 提交（尽力而为）"""
        try:
            self._run(ctx, cfg, self._format(cfg.checkout_command, ctx.trigger.head_commit))
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as e:
            logger.warning(f"  -> [WARN] 切回 {ctx.trigger.head_commit} 失败: {e}")

    @staticmethod
    def _format(command: List[str], commit: str) -> List[str]:
        return [part.replace("{commit}", commit) for part in command]

    @staticmethod
    def _run(ctx: RunContext, cfg: BaselineConfig, command: List[str]) -> None:
        ctx.cmd.run(command, cwd=ctx.project_root, timeout=cfg.timeout, check=True)
