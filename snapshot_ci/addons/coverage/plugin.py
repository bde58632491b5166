"""
Coverage Stage - 覆盖率上传

仅在分片通过、且为 PR 或默认分支 push 时上传；
上传失败只记录，不影响整体结果。
"""
import tempfile
from pathlib import Path

from snapshot_ci.core.config import CoverageConfig
from snapshot_ci.core.errors import CoverageUploadFailureError
from snapshot_ci.core.interface import BaseStage, RunContext, hookimpl
from snapshot_ci.core.models import ShardResult
from snapshot_ci.core.ports import ICoverageUploader
from snapshot_ci.core.utils import logger


def upload_coverage(
    uploader: ICoverageUploader,
    file_path: Path,
    flags: list,
    name: str,
) -> bool:
    """尽力上传覆盖率，返回是否成功"""
    try:
        uploader.upload_coverage(file_path, flags, name)
    except CoverageUploadFailureError as e:
        logger.warning(f"  -> [WARN] {e}，已忽略")
        return False
    logger.info(f"  -> 覆盖率已上传: {file_path.name} (flags={','.join(flags)})")
    return True


class CoverageStage(BaseStage):
    module_dir = "coverage"

    @hookimpl
    def e2e(self, context: RunContext) -> None:
        ctx = context
        cfg: CoverageConfig = self.get_config(ctx)
        if not cfg.enabled or not ctx.shard_results:
            return
        if not self._should_upload(ctx):
            logger.info("  -> [Coverage] 非 PR 且非默认分支，跳过覆盖率上传")
            return

        logger.info("\n>>> [Coverage] 上传覆盖率...")
        for result in ctx.shard_results:
            self._upload_shard(ctx, cfg, result)

    def _should_upload(self, ctx: RunContext) -> bool:
        default_ref = f"refs/heads/{ctx.config.cache.default_branch}"
        return ctx.trigger.is_pull_request or ctx.trigger.ref == default_ref

    def _upload_shard(self, ctx: RunContext, cfg: CoverageConfig, result: ShardResult) -> None:
        if result.failed:
            logger.info(f"  -> 分片 {result.shard_index + 1} 未通过，跳过覆盖率上传")
            return
        data = result.output_bundle.get(cfg.file)
        if data is None:
            logger.info(f"  -> 分片 {result.shard_index + 1} 未产出覆盖率文件 {cfg.file}")
            return

        ctx.work_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix="coverage-", dir=ctx.work_dir) as tmp:
            file_path = Path(tmp) / Path(cfg.file).name
            file_path.write_bytes(data)
            ok = upload_coverage(ctx.coverage, file_path, cfg.flags, cfg.name)
        self.log(ctx, "e2e", f"shard-{result.shard_index}:{'uploaded' if ok else 'failed'}")
