"""
snapshot-ci 调度入口

三个阶段对应 CI 中的三个 job:
  cache   - 恢复 / 重建基线快照
  e2e     - 分片并行执行视觉回归测试
  combine - 合并产出、写回缓存、失败通知
run 在同一进程内依次执行三个阶段。
"""
import argparse
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from snapshot_ci.core.adapters import (
    CommandTestRunner,
    DirectoryArtifactPublisher,
    DirectoryBlobStore,
    HttpCoverageUploader,
    SubprocessRunner,
)
from snapshot_ci.core.config import PipelineConfig, build_config
from snapshot_ci.core.errors import InvalidConfigError
from snapshot_ci.core.interface import BaseStage, RunContext
from snapshot_ci.core.schema import EnvKey, RunStatus
from snapshot_ci.core.state import RunState
from snapshot_ci.core.trigger import TriggerContext
from snapshot_ci.core.utils import logger, setup_logger

# 阶段导入
from snapshot_ci.addons.baseline.plugin import BaselineStage
from snapshot_ci.addons.shards.plugin import ShardsStage
from snapshot_ci.addons.shards import plan
from snapshot_ci.addons.coverage.plugin import CoverageStage
from snapshot_ci.addons.combine.plugin import CombineStage
from snapshot_ci.addons.cache_writer.plugin import CacheWriterStage
from snapshot_ci.addons.notify.plugin import NotifyStage


# ============================================================
# 全局常量
# ============================================================
PACKAGE_ROOT = Path(__file__).resolve().parent
DEFAULT_WORK_DIR = Path(".snapshot-ci")
PHASES = ["cache", "e2e", "combine"]
ACTIONS = PHASES + ["run"]

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INVALID_CONFIG = 2


def create_pipeline() -> List[BaseStage]:
    """
    定义阶段执行顺序（硬编码，显式声明）

    顺序说明：
    1. baseline     - 恢复 / 重建基线 → 产出 baseline
    2. shards       - 分片执行 → 产出 shard_results（依赖 baseline）
    3. coverage     - 覆盖率上传（依赖 shard_results）
    4. combine      - 合并产出 → 产出 aggregate
    5. cache_writer - 成功的 push 写回缓存（依赖 aggregate）
    6. notify       - 失败通知（依赖 aggregate 与失败证据产物地址）

    每个阶段只实现自己关心的 cache / e2e / combine 钩子。
    """
    return [
        BaselineStage(),
        ShardsStage(),
        CoverageStage(),
        CombineStage(),
        CacheWriterStage(),
        NotifyStage(),
    ]


def load_manifests(package_root: Path) -> Dict[str, Dict[str, Any]]:
    """
    预加载所有模块的 manifest.yaml，统一作为配置默认值。

    扫描目录:
        1. addons/*/manifest.yaml  - 阶段配置
        2. lib/*/manifest.yaml     - 库配置

    返回字典 key 为模块目录名，如 "shards"、"cache"。
    """
    manifests: Dict[str, Dict[str, Any]] = {}

    for parent_dir in (package_root / "addons", package_root / "lib"):
        if not parent_dir.exists():
            continue
        for module_dir in sorted(parent_dir.iterdir()):
            if not module_dir.is_dir():
                continue
            manifest_file = module_dir / "manifest.yaml"
            if manifest_file.exists():
                with open(manifest_file, "r", encoding="utf-8") as f:
                    manifests[module_dir.name] = yaml.safe_load(f) or {}
                logger.debug(f"  -> [Manifest] 已加载: {manifest_file.relative_to(package_root)}")

    return manifests


def load_overrides(config_file: Optional[Path]) -> Dict[str, Dict[str, Any]]:
    """读取用户配置文件（按模块覆盖 manifest）"""
    if config_file is None:
        return {}
    if not config_file.exists():
        raise InvalidConfigError(f"配置文件不存在: {config_file}")
    with open(config_file, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise InvalidConfigError(f"配置文件顶层必须是映射: {config_file}")
    return data


def _resolve(work_dir: Path, value: str) -> Path:
    path = Path(value)
    return path if path.is_absolute() else work_dir / path


def create_context(
    work_dir: Path,
    environ: Optional[Mapping[str, str]] = None,
    config: Optional[PipelineConfig] = None,
    project_root: Optional[Path] = None,
    debug: bool = False,
    load_state: bool = False,
    shard_filter: Optional[int] = None,
) -> RunContext:
    """
    创建运行上下文

    Args:
        work_dir:     工作目录（缓存、分片结果、状态文件）
        environ:      环境变量，默认 os.environ；只在这里读取一次
        config:       已校验的配置，默认从 manifest 加载
        load_state:   是否加载前序阶段持久化的状态（用于拆分 job 的 e2e/combine）
        shard_filter: 只执行指定分片
    """
    env = os.environ if environ is None else environ
    config = config or build_config(load_manifests(PACKAGE_ROOT))
    project_root = project_root or Path.cwd()

    trigger = TriggerContext.from_env(env, default_branch=config.cache.default_branch)
    # 分片数在任何阶段执行前校验
    plan(config.shards.total_shards, trigger.has_execution_credential)
    cmd = SubprocessRunner()

    summary = env.get(EnvKey.STEP_SUMMARY.value)
    token = env.get(config.coverage.token_env) or None

    return RunContext(
        project_root=project_root,
        work_dir=work_dir,
        trigger=trigger,
        config=config,
        cmd=cmd,
        store=DirectoryBlobStore(_resolve(work_dir, config.cache.store_dir)),
        runner=CommandTestRunner(cmd, config.shards.test_command, project_root, commit=trigger.head_commit),
        publisher=DirectoryArtifactPublisher(
            _resolve(work_dir, config.combine.artifact_dir), config.combine.artifact_base_url
        ),
        coverage=HttpCoverageUploader(
            config.coverage.endpoint, token, commit=trigger.head_commit, timeout=config.coverage.timeout
        ),
        state=RunState.load(work_dir) if load_state else RunState(),
        debug=debug,
        shard_filter=shard_filter,
        step_summary=Path(summary) if summary else None,
    )


def execute(
    action: str,
    context: RunContext,
    until: Optional[str] = None,
    only: Optional[str] = None,
) -> RunStatus:
    """
    执行阶段 Pipeline

    Args:
        action:  cache / e2e / combine / run
        context: 运行上下文
        until:   执行到指定阶段为止（包含）
        only:    只执行指定阶段（跳过依赖，危险模式）

    Returns:
        当前已知的整体状态
    """
    pipeline = create_pipeline()
    phases = PHASES if action == "run" else [action]

    # --only: 只执行单个阶段
    if only:
        stage = next((s for s in pipeline if s.name == only), None)
        if not stage:
            logger.error(f"未知阶段: {only}")
            sys.exit(EXIT_INVALID_CONFIG)
        pipeline = [stage]

    reached = False
    for phase in phases:
        logger.info(f"\n>>> 开始执行阶段: [{phase.upper()}]")
        for stage in pipeline:
            method = getattr(stage, phase, None)
            if method:
                logger.debug(f"  -> {stage.name}.{phase}()")
                method(context)

            # --until: 执行到指定阶段停止
            if until and stage.name == until:
                logger.info(f"  -> 已到达目标阶段 [{until}]，停止")
                reached = True
                break

        # 每个阶段结束后持久化状态，供后续 job 使用
        try:
            context.state.save(context.work_dir)
        except OSError as e:
            logger.error(f"  -> 运行状态持久化失败: {e}")

        if reached:
            break

    return context.overall_status()


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="视觉快照缓存与分片 E2E 调度器")
    parser.add_argument("action", choices=ACTIONS, help="执行阶段")
    parser.add_argument("--debug", action="store_true", help="调试模式")
    parser.add_argument("--work-dir", type=Path, default=DEFAULT_WORK_DIR, help="工作目录")
    parser.add_argument("--config", type=Path, help="覆盖 manifest 的 YAML 配置文件")
    parser.add_argument("--shard", type=int, help="只执行指定分片（从 0 开始）")
    parser.add_argument("--until", type=str, help="执行到指定阶段为止")
    parser.add_argument("--only", type=str, help="只执行指定阶段（危险模式）")
    parser.add_argument("--log-file", type=Path, help="详细日志文件")
    args = parser.parse_args(argv)

    # 初始化日志（必须在所有其他操作之前）
    setup_logger(args.log_file, debug=args.debug)

    try:
        config = build_config(load_manifests(PACKAGE_ROOT), load_overrides(args.config))
        # e2e / combine 单独运行时需要加载前序阶段持久化的状态
        context = create_context(
            work_dir=args.work_dir,
            config=config,
            debug=args.debug,
            load_state=args.action in ("e2e", "combine"),
            shard_filter=args.shard,
        )
        status = execute(args.action, context, until=args.until, only=args.only)
    except InvalidConfigError as e:
        logger.error(f"::error title=Invalid configuration::{e}")
        sys.exit(EXIT_INVALID_CONFIG)

    sys.exit(EXIT_FAILURE if status == RunStatus.FAILURE else EXIT_OK)


if __name__ == "__main__":
    main()
