"""
Notify Stage - 失败通知与运行摘要
"""
from pathlib import Path
from typing import Optional

from snapshot_ci.core.config import NotifyConfig
from snapshot_ci.core.interface import BaseStage, RunContext, hookimpl
from snapshot_ci.core.schema import RunStatus
from snapshot_ci.core.utils import logger
from snapshot_ci.lib.bundle import SnapshotBundle
from snapshot_ci.lib.ui import print_error, print_shard_table, print_success


class NotificationEmitter:
    """失败时输出一条 `::error` 工作流命令，指向失败截图产物"""

    def __init__(
        self,
        title: str = "Visual tests failed",
        message: str = "You can view images that failed by downloading the error-snapshots artifact: {url}",
        summary_path: Optional[Path] = None,
    ):
        self.title = title
        self.message = message
        self.summary_path = summary_path

    def format(self, diff_bundle: SnapshotBundle, artifact_location: Optional[str]) -> str:
        url = artifact_location or "(artifact unavailable)"
        text = self.message.replace("{url}", url).replace("{count}", str(len(diff_bundle)))
        return f"::error title={self.title}::{text}"

    def notify(
        self,
        overall_status: RunStatus,
        diff_bundle: SnapshotBundle,
        artifact_location: Optional[str],
    ) -> bool:
        """失败时发出通知，返回是否发出；从不抛异常"""
        if overall_status != RunStatus.FAILURE:
            return False
        try:
            line = self.format(diff_bundle, artifact_location)
            logger.error(line)
            if self.summary_path is not None:
                with self.summary_path.open("a", encoding="utf-8") as f:
                    f.write(f"\n## {self.title}\n\n{len(diff_bundle)} diff file(s): {artifact_location or '-'}\n")
        except Exception as e:
            logger.warning(f"  -> [WARN] 通知发送失败: {e}")
        return True


class NotifyStage(BaseStage):
    module_dir = "notify"

    @hookimpl
    def combine(self, context: RunContext) -> None:
        ctx = context
        if ctx.aggregate is None:
            return
        cfg: NotifyConfig = self.get_config(ctx)

        self._print_summary(ctx)

        emitter = NotificationEmitter(
            title=cfg.title,
            message=cfg.message,
            summary_path=ctx.step_summary if cfg.step_summary else None,
        )
        ctx.state.notified = emitter.notify(
            ctx.aggregate.overall_status,
            ctx.aggregate.diff_bundle,
            ctx.state.error_artifact_url,
        )
        self.log(ctx, "combine", "notified" if ctx.state.notified else "quiet")

    def _print_summary(self, ctx: RunContext) -> None:
        print_shard_table(ctx.shard_results, ctx.config.combine.diff_marker)
        if ctx.aggregate.failed:
            print_error(f"视觉回归测试失败，diff 文件 {len(ctx.aggregate.diff_bundle)} 个")
        else:
            print_success("所有分片通过")
