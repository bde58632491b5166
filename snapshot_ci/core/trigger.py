"""
TriggerContext - 触发上下文

每次运行只从环境变量解析一次，之后作为不可变值注入各组件。
"""
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from snapshot_ci.core.errors import InvalidConfigError
from snapshot_ci.core.schema import EnvKey, EventClass


# push 新分支时 github.event.before 为全零
NULL_COMMIT = "0" * 40


@dataclass(frozen=True)
class TriggerContext:
    """
    event_class:               触发事件类型
    head_commit:               本次运行结束后成为新基线的提交
    base_commit:               对比基线所在的提交（决定 restore key）
    has_execution_credential:  是否持有分片录制凭据
    """
    event_class: EventClass
    head_commit: str
    base_commit: str
    has_execution_credential: bool
    ref: str = ""
    platform: str = "Linux"

    @property
    def is_push(self) -> bool:
        return self.event_class == EventClass.PUSH

    @property
    def is_pull_request(self) -> bool:
        return self.event_class == EventClass.PULL_REQUEST

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str],
        default_branch: str = "develop",
        credential_key: str = EnvKey.RECORD_KEY.value,
    ) -> "TriggerContext":
        """
        从 CI 环境变量解析触发上下文。

        基线提交的选择:
          - pull_request: pull_request.base.sha
          - merge_group:  merge_group.base_sha
          - push:         event.before；新分支（before 全零）时回退到默认分支
        """
        event_name = environ.get(EnvKey.EVENT_NAME.value, "")
        try:
            event_class = EventClass(event_name)
        except ValueError:
            raise InvalidConfigError(f"不支持的触发事件: {event_name!r}") from None

        payload = _load_event_payload(environ.get(EnvKey.EVENT_PATH.value))
        sha = environ.get(EnvKey.SHA.value, "")

        base_commit = (
            ((payload.get("pull_request") or {}).get("base") or {}).get("sha")
            or (payload.get("merge_group") or {}).get("base_sha")
        )
        if not base_commit:
            before = payload.get("before") or ""
            base_commit = default_branch if before in ("", NULL_COMMIT) else before

        if event_class == EventClass.PUSH:
            head_commit = payload.get("after") or sha
        else:
            head_commit = sha

        if not head_commit:
            raise InvalidConfigError(f"无法确定 head commit（缺少 {EnvKey.SHA.value}）")

        return cls(
            event_class=event_class,
            head_commit=head_commit,
            base_commit=base_commit,
            has_execution_credential=bool(environ.get(credential_key, "").strip()),
            ref=environ.get(EnvKey.REF.value, ""),
            platform=environ.get(EnvKey.RUNNER_OS.value, "") or "Linux",
        )


def _load_event_payload(event_path: Optional[str]) -> Dict[str, Any]:
    """读取 GITHUB_EVENT_PATH 指向的事件 JSON，不存在或损坏时返回空字典"""
    if not event_path:
        return {}
    path = Path(event_path)
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, IOError):
        return {}
    return data if isinstance(data, dict) else {}
