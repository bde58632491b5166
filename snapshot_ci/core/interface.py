"""
核心接口定义
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import pluggy
from pydantic import BaseModel

from snapshot_ci.core.config import PipelineConfig
from snapshot_ci.core.models import AggregateResult, ShardResult
from snapshot_ci.core.ports import (
    IArtifactPublisher,
    IBlobStore,
    ICommandRunner,
    ICoverageUploader,
    ITestRunner,
)
from snapshot_ci.core.schema import RunStatus
from snapshot_ci.core.state import RunState
from snapshot_ci.core.trigger import TriggerContext
from snapshot_ci.lib.cache import Baseline, BlobCache


hookspec = pluggy.HookspecMarker("snapshot_ci")
hookimpl = pluggy.HookimplMarker("snapshot_ci")


@dataclass
class RunContext:
    """
    运行上下文 - 组合根

    所有阶段都通过这个上下文获取输入、执行操作、存储产出。
    触发信息与配置在创建时一次性注入，阶段不直接读取环境变量。
    """

    # === 基础路径（main.py 注入，不可变）===
    project_root: Path   # 被测项目目录
    work_dir: Path       # 快照、分片结果与状态文件的落盘目录

    # === 不可变输入 ===
    trigger: TriggerContext
    config: PipelineConfig

    # === 注入的服务 ===
    cmd: ICommandRunner
    store: IBlobStore
    runner: ITestRunner
    publisher: IArtifactPublisher
    coverage: ICoverageUploader

    # === 跨阶段持久化的状态 ===
    state: RunState = field(default_factory=RunState)

    # === 运行时参数 ===
    debug: bool = False
    shard_filter: Optional[int] = None   # 只执行指定分片（对应 CI matrix 的一个容器）
    step_summary: Optional[Path] = None  # GITHUB_STEP_SUMMARY 指向的文件

    # === 进程内产出（不持久化）===
    baseline: Optional[Baseline] = None
    shard_results: List[ShardResult] = field(default_factory=lambda: [])
    aggregate: Optional[AggregateResult] = None

    # === 执行追踪（用于调试和测试）===
    execution_log: List[str] = field(default_factory=lambda: [])

    @property
    def cache(self) -> BlobCache:
        cfg = self.config.cache
        return BlobCache(
            self.store,
            platform=cfg.platform or self.trigger.platform,
            namespace=cfg.namespace,
        )

    @property
    def shards_dir(self) -> Path:
        return self.work_dir / "shards"

    def overall_status(self) -> RunStatus:
        """当前已知的整体状态：优先取合并结果，其次取已执行分片"""
        if self.aggregate is not None:
            return self.aggregate.overall_status
        return RunStatus.combine(r.status for r in self.shard_results)


class BaseStage:
    """阶段基类

    子类必须声明 module_dir 类属性（= 所在目录名），
    name 属性由基类统一从 module_dir 派生，子类无需覆盖。
    每个阶段按需实现 cache / e2e / combine 三个钩子。
    """

    # 子类必须声明，值 = 阶段所在目录名
    module_dir: str

    @property
    def name(self) -> str:
        """阶段唯一标识 = 所在目录名，由 module_dir 派生"""
        return self.module_dir

    def log(self, context: RunContext, action: str, message: str = "") -> None:
        """记录执行日志"""
        log_entry = f"{self.name}:{action}"
        if message:
            log_entry += f":{message}"
        context.execution_log.append(log_entry)

    def get_config(self, context: RunContext) -> BaseModel:
        """获取当前阶段的配置段"""
        return getattr(context.config, self.name)

    @hookspec
    def cache(self, context: RunContext) -> None:
        """基线缓存阶段钩子"""
        ...

    @hookspec
    def e2e(self, context: RunContext) -> None:
        """分片执行阶段钩子"""
        ...

    @hookspec
    def combine(self, context: RunContext) -> None:
        """合并与收尾阶段钩子"""
        ...
