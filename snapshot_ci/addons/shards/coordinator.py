"""
ExecutionCoordinator - 分片执行协调

- 每个分片独立执行：独立工作目录、独立的基线副本，分片之间无共享可变状态
- fail-fast 关闭：单个分片失败或崩溃不影响其它分片
- 无论成功失败都收集产出（失败证据正是下游需要的）
- execute_all() 等待所有分片完成后才返回（barrier）
"""
import logging
import shutil
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, List, Optional

from snapshot_ci.core.models import ShardPlan, ShardResult
from snapshot_ci.core.ports import ITestRunner
from snapshot_ci.core.schema import RunStatus
from snapshot_ci.lib.bundle import SnapshotBundle
from snapshot_ci.lib.cache import Baseline, is_miss

logger = logging.getLogger("snapshot_ci")


class ExecutionCoordinator:
    """驱动外部测试执行器完成各分片"""

    def __init__(self, runner: ITestRunner, work_root: Path, max_workers: Optional[int] = None):
        self._runner = runner
        self._work_root = work_root
        self._max_workers = max_workers

    def _prepare_work_dir(self, plan: ShardPlan, baseline: Optional[Baseline]) -> Optional[Path]:
        """创建分片工作目录，写入私有基线副本，返回基线路径（无基线时为 None）"""
        work_dir = self._work_root / f"shard-{plan.shard_index}"
        if work_dir.exists():
            shutil.rmtree(work_dir)
        work_dir.mkdir(parents=True)

        if baseline is None or is_miss(baseline):
            return None
        return baseline.write_to(work_dir / "baseline")

    def execute(self, plan: ShardPlan, baseline: Optional[Baseline]) -> ShardResult:
        """执行单个分片；执行器的任何异常都转为失败结果，不向外抛出

        无基线时所有对比都视为新增快照，而不是失败。
        """
        work_dir = self._work_root / f"shard-{plan.shard_index}"
        try:
            baseline_path = self._prepare_work_dir(plan, baseline)
            outcome = self._runner.run(
                plan.shard_index,
                plan.total_shards,
                baseline_path,
                work_dir,
                parallel=plan.enable_parallel,
            )
        except Exception as e:
            logger.error(f"  -> [Shard {plan.label}] 执行器异常: {e}")
            return ShardResult(plan.shard_index, RunStatus.FAILURE, SnapshotBundle())

        output = SnapshotBundle()
        if outcome.output_path is not None:
            try:
                output = SnapshotBundle.from_dir(outcome.output_path)
            except (OSError, ValueError) as e:
                logger.error(f"  -> [Shard {plan.label}] 读取产出失败: {e}")
                return ShardResult(plan.shard_index, RunStatus.FAILURE, SnapshotBundle())

        status = RunStatus.SUCCESS if outcome.exit_status == 0 else RunStatus.FAILURE
        if status == RunStatus.FAILURE:
            logger.warning(
                f"  -> [Shard {plan.label}] 失败 (exit={outcome.exit_status})，已收集 {len(output)} 个产出文件"
            )
        else:
            logger.info(f"  -> [Shard {plan.label}] 通过，产出 {len(output)} 个文件")
        return ShardResult(plan.shard_index, status, output)

    def execute_all(self, plans: List[ShardPlan], baseline: Optional[Baseline]) -> List[ShardResult]:
        """并行执行所有分片，全部完成后按分片序号返回"""
        if not plans:
            return []

        workers = self._max_workers or len(plans)
        results: Dict[int, ShardResult] = {}

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="shard") as executor:
            futures = {executor.submit(self.execute, p, baseline): p for p in plans}
            for future in as_completed(futures):
                p = futures[future]
                try:
                    results[p.shard_index] = future.result()
                except Exception as e:
                    # execute() 已兜底，这里只防线程本身异常
                    logger.error(f"  -> [Shard {p.label}] 崩溃: {e}")
                    results[p.shard_index] = ShardResult(p.shard_index, RunStatus.FAILURE, SnapshotBundle())

        return [results[i] for i in sorted(results)]
