"""
RunState - 阶段间共享的运行状态

支持持久化到 JSON 文件，实现跨进程共享（cache → e2e → combine），
对应 CI 中拆分为多个 job 的场景。
"""
import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional


STATE_FILENAME = ".run-state.json"


@dataclass
class RunState:
    """
    各阶段产出的强类型容器。

    只记录可序列化的摘要信息；快照包本身落在 work_dir 下，
    由 BlobCache 和 shard_store 负责。
    """

    # ==================== baseline ====================
    restore_key: Optional[str] = None
    cache_hit: bool = False
    regenerated: bool = False

    # ==================== shards ====================
    total_shards: Optional[int] = None
    parallel: bool = False
    shard_artifact_urls: Dict[str, str] = field(default_factory=dict)

    # ==================== combine ====================
    overall_status: Optional[str] = None
    merged_files: int = 0
    diff_files: int = 0
    error_artifact_url: Optional[str] = None

    # ==================== cache_writer ====================
    saved_key: Optional[str] = None

    # ==================== notify ====================
    notified: bool = False

    def save(self, work_dir: Path) -> None:
        """
        保存状态到 JSON 文件。

        Args:
            work_dir: 工作目录，文件将保存为 {work_dir}/.run-state.json
        """
        work_dir.mkdir(parents=True, exist_ok=True)
        data: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            data[f.name] = str(value) if isinstance(value, Path) else value
        (work_dir / STATE_FILENAME).write_text(
            json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8"
        )

    @classmethod
    def load(cls, work_dir: Path) -> "RunState":
        """
        从 JSON 文件加载状态。

        Returns:
            加载的 RunState 实例，如果文件不存在或损坏则返回空实例
        """
        file_path = work_dir / STATE_FILENAME
        if not file_path.exists():
            return cls()

        try:
            data = json.loads(file_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, IOError):
            return cls()

        known = {f.name for f in fields(cls)}
        # 忽略未知字段（兼容旧版本状态文件）
        return cls(**{k: v for k, v in data.items() if k in known})
