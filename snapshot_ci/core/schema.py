"""
Schema & 类型定义

集中管理:
- EventClass: 触发事件类型
- RunStatus:  分片 / 整体执行状态
- EnvKey:     读取的环境变量名枚举（避免魔法字符串）
"""
from enum import Enum


class EventClass(str, Enum):
    """触发事件类型，值与 GITHUB_EVENT_NAME 一致"""
    PUSH = "push"
    PULL_REQUEST = "pull_request"
    MERGE_GROUP = "merge_group"


class RunStatus(str, Enum):
    """执行状态"""
    SUCCESS = "success"
    FAILURE = "failure"

    @classmethod
    def combine(cls, statuses) -> "RunStatus":
        """任一失败即失败；空集合视为成功"""
        return cls.FAILURE if any(s == cls.FAILURE for s in statuses) else cls.SUCCESS


# ============================================================
# 环境变量名枚举
# ============================================================
class EnvKey(str, Enum):
    """
    CI 平台注入的环境变量名。

    注意：只有 TriggerContext.from_env() 读取这些变量，
    其余组件一律通过 RunContext 获取触发信息。
    """
    EVENT_NAME = "GITHUB_EVENT_NAME"
    EVENT_PATH = "GITHUB_EVENT_PATH"
    SHA = "GITHUB_SHA"
    REF = "GITHUB_REF"
    RUNNER_OS = "RUNNER_OS"
    STEP_SUMMARY = "GITHUB_STEP_SUMMARY"

    # 分片录制凭据（fork 仓库中不可用）
    RECORD_KEY = "CYPRESS_RECORD_KEY"


# 传给外部测试执行器的环境变量
class RunnerEnv(str, Enum):
    SHARD_INDEX = "SNAPSHOT_CI_SHARD_INDEX"
    SHARD_TOTAL = "SNAPSHOT_CI_SHARD_TOTAL"
    BASELINE_DIR = "SNAPSHOT_CI_BASELINE_DIR"
    OUTPUT_DIR = "SNAPSHOT_CI_OUTPUT_DIR"
    RECORD = "SNAPSHOT_CI_RECORD"
    PARALLEL = "SNAPSHOT_CI_PARALLEL"
    COMMIT = "SNAPSHOT_CI_COMMIT"
