"""
配置 Schema 定义

为各阶段的 manifest.yaml 提供 Pydantic 类型验证。
在任何分片执行前即可发现配置错误，而不是在运行中途才报错。
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from snapshot_ci.core.errors import InvalidConfigError


class CacheConfig(BaseModel):
    """快照缓存（lib/cache/manifest.yaml）"""
    namespace: str = "snapshots"
    store_dir: str = ".snapshot-cache"   # 相对 work_dir，或绝对路径
    platform: Optional[str] = None       # 为空时使用 RUNNER_OS
    default_branch: str = "develop"      # 新分支 push 时的回退基线


class BaselineConfig(BaseModel):
    """基线快照（addons/baseline/manifest.yaml）"""
    regenerate: bool = True
    checkout_command: List[str] = ["git", "checkout", "--force", "{commit}"]
    install_command: Optional[List[str]] = None
    timeout: Optional[int] = None


class ShardsConfig(BaseModel):
    """分片执行（addons/shards/manifest.yaml）

    total_shards 的合法性由 ShardPlanner 校验，这里只约束类型。
    """
    total_shards: int = 4
    max_workers: Optional[int] = None
    test_command: List[str] = ["npx", "cypress", "run"]
    artifact_prefix: str = "snapshots-"
    artifact_retention_days: int = 1

    @field_validator("test_command")
    @classmethod
    def command_not_empty(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("test_command 不能为空")
        return v


class CoverageConfig(BaseModel):
    """覆盖率上传（addons/coverage/manifest.yaml）"""
    enabled: bool = True
    endpoint: Optional[str] = None
    token_env: str = "CODECOV_TOKEN"
    file: str = "coverage/cypress/lcov.info"
    flags: List[str] = ["e2e"]
    name: str = "snapshot-ci"
    timeout: int = 30


class CombineConfig(BaseModel):
    """产物合并（addons/combine/manifest.yaml）"""
    diff_marker: str = "__diff_output__"
    image_suffixes: List[str] = [".png"]
    artifact_dir: str = "artifacts"      # 相对 work_dir，或绝对路径
    artifact_base_url: Optional[str] = None
    error_artifact_name: str = "error-snapshots"
    error_retention_days: int = 10


class NotifyConfig(BaseModel):
    """失败通知（addons/notify/manifest.yaml）"""
    title: str = "Visual tests failed"
    message: str = (
        "You can view images that failed by downloading "
        "the error-snapshots artifact: {url}"
    )
    step_summary: bool = True


class PipelineConfig(BaseModel):
    """所有阶段配置的顶层结构，key = 模块目录名"""
    cache: CacheConfig = Field(default_factory=CacheConfig)
    baseline: BaselineConfig = Field(default_factory=BaselineConfig)
    shards: ShardsConfig = Field(default_factory=ShardsConfig)
    coverage: CoverageConfig = Field(default_factory=CoverageConfig)
    combine: CombineConfig = Field(default_factory=CombineConfig)
    notify: NotifyConfig = Field(default_factory=NotifyConfig)


def build_config(
    manifests: Dict[str, Dict[str, Any]],
    overrides: Optional[Dict[str, Dict[str, Any]]] = None,
) -> PipelineConfig:
    """
    合并 manifest 与用户覆盖配置并校验。

    Args:
        manifests: load_manifests() 的结果，key 为模块目录名
        overrides: 用户配置文件内容，按模块逐项覆盖

    Raises:
        InvalidConfigError: 配置不符合 schema
    """
    known = set(PipelineConfig.model_fields)
    merged: Dict[str, Dict[str, Any]] = {}
    for source in (manifests, overrides or {}):
        for section, values in source.items():
            if section not in known:
                continue
            if not isinstance(values, dict):
                raise InvalidConfigError(f"配置段 [{section}] 必须是映射")
            merged.setdefault(section, {}).update(values)

    try:
        return PipelineConfig.model_validate(merged)
    except ValidationError as e:
        raise InvalidConfigError(f"配置校验失败:\n{e}") from e
