"""
测试用 Mock 实现

为各个端口提供测试替身，用于在单元测试中隔离外部依赖
（subprocess、缓存后端、测试执行器、产物存储、HTTP）。
"""
import re
import subprocess
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from snapshot_ci.core.errors import (
    ArtifactUploadFailureError,
    CoverageUploadFailureError,
    SaveFailureError,
)
from snapshot_ci.core.ports import (
    CommandResult,
    IArtifactPublisher,
    IBlobStore,
    ICommandRunner,
    ICoverageUploader,
    ITestRunner,
    RunnerOutcome,
)
from snapshot_ci.core.schema import EventClass, RunnerEnv
from snapshot_ci.core.trigger import TriggerContext
from snapshot_ci.lib.bundle import SnapshotBundle


@dataclass
class CallRecord:
    """记录一次调用"""
    cmd: str
    cwd: Optional[Path] = None
    kwargs: Dict[str, Any] = field(default_factory=dict)


class MockRunner(ICommandRunner):
    """
    模拟命令执行器

    - 记录所有调用，可在测试中断言
    - 支持通过 stub_results 预设特定命令的返回值（精确匹配 → 前缀匹配）
    - 默认返回 returncode=0 的成功结果
    """

    def __init__(self):
        self.calls: List[CallRecord] = []
        self.realtime_calls: List[CallRecord] = []
        self.stub_results: Dict[str, CommandResult] = {}

    def _find_stub(self, cmd_str: str) -> Optional[CommandResult]:
        if cmd_str in self.stub_results:
            return self.stub_results[cmd_str]
        for pattern, result in self.stub_results.items():
            if cmd_str.startswith(pattern):
                return result
        return None

    def run(
        self,
        cmd: List[str] | str,
        cwd: Optional[Path] = None,
        timeout: Optional[int] = None,
        check: bool = True,
        shell: bool = False,
        capture_output: bool = True,
        env: Optional[Dict[str, str]] = None,
    ) -> CommandResult:
        cmd_str = cmd if isinstance(cmd, str) else " ".join(cmd)
        self.calls.append(CallRecord(
            cmd=cmd_str,
            cwd=cwd,
            kwargs={"timeout": timeout, "check": check, "env": env},
        ))

        result = self._find_stub(cmd_str) or CommandResult(0, "", "", cmd_str)
        if check and result.returncode != 0:
            raise subprocess.CalledProcessError(result.returncode, cmd, result.stdout, result.stderr)
        return result

    def run_realtime(
        self,
        cmd: List[str],
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        label: str = "",
    ) -> int:
        cmd_str = " ".join(cmd)
        self.realtime_calls.append(CallRecord(cmd=cmd_str, cwd=cwd, kwargs={"env": env, "label": label}))

        stub = self._find_stub(cmd_str)
        return stub.returncode if stub else 0

    # ===== 测试辅助方法 =====

    @property
    def all_commands(self) -> List[str]:
        return [c.cmd for c in self.calls + self.realtime_calls]

    def was_called_with_pattern(self, pattern: str) -> bool:
        """检查是否有调用匹配指定的正则表达式模式"""
        return any(re.search(pattern, c) for c in self.all_commands)


class OutputWritingRunner(MockRunner):
    """
    模拟真实的测试命令

    在 CommandTestRunner 给出的输出目录中原地写出文件（基线已预先复制进去），
    files 按分片序号预设要写出的文件。
    """

    def __init__(self, files: Optional[Dict[int, Dict[str, bytes]]] = None):
        super().__init__()
        self.files = files or {}

    def run_realtime(
        self,
        cmd: List[str],
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        label: str = "",
    ) -> int:
        env = env or {}
        shard = int(env.get(RunnerEnv.SHARD_INDEX.value, "0"))
        output_dir = Path(env[RunnerEnv.OUTPUT_DIR.value])
        SnapshotBundle(self.files.get(shard, {})).write_to(output_dir)
        return super().run_realtime(cmd, cwd, env, label)


class InMemoryBlobStore(IBlobStore):
    """内存中的缓存后端"""

    def __init__(self, entries: Optional[Dict[str, SnapshotBundle]] = None, fail_writes: bool = False):
        self.entries: Dict[str, SnapshotBundle] = dict(entries or {})
        self.fail_writes = fail_writes
        self.writes: List[str] = []

    def exists(self, key: str) -> bool:
        return key in self.entries

    def read(self, key: str) -> SnapshotBundle:
        return self.entries[key].copy()

    def write(self, key: str, bundle: SnapshotBundle) -> None:
        self.writes.append(key)
        if self.fail_writes:
            raise SaveFailureError(f"磁盘已满: {key}")
        self.entries[key] = bundle.copy()


class FakeTestRunner(ITestRunner):
    """
    模拟外部测试执行器

    - outputs:     按分片序号预设的产出文件
    - exit_codes:  按分片序号预设的退出码（默认 0）
    - crash:       这些分片直接抛异常
    - 线程安全地记录所有调用，并记录每次调用看到的基线文件
    """

    def __init__(
        self,
        outputs: Optional[Dict[int, Dict[str, bytes]]] = None,
        exit_codes: Optional[Dict[int, int]] = None,
        crash: Optional[Set[int]] = None,
    ):
        self.outputs = outputs or {}
        self.exit_codes = exit_codes or {}
        self.crash = crash or set()
        self.calls: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def run(
        self,
        shard_index: int,
        total_shards: int,
        baseline_path: Optional[Path],
        work_dir: Path,
        parallel: bool = False,
        commit: Optional[str] = None,
    ) -> RunnerOutcome:
        seen = SnapshotBundle.from_dir(baseline_path) if baseline_path else None
        with self._lock:
            self.calls.append({
                "shard_index": shard_index,
                "total_shards": total_shards,
                "baseline": seen,
                "work_dir": work_dir,
                "parallel": parallel,
                "commit": commit,
            })

        if shard_index in self.crash:
            raise RuntimeError(f"runner crashed on shard {shard_index}")

        output_dir = work_dir / "snapshots"
        SnapshotBundle(self.outputs.get(shard_index, {})).write_to(output_dir)
        return RunnerOutcome(self.exit_codes.get(shard_index, 0), output_dir)

    @property
    def shard_indices(self) -> List[int]:
        return sorted(c["shard_index"] for c in self.calls)


class MockPublisher(IArtifactPublisher):
    """记录所有产物上传"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.uploads: List[Dict[str, Any]] = []

    def upload(self, name: str, path: Path, retention_days: int) -> str:
        if self.fail:
            raise ArtifactUploadFailureError(f"upload {name} failed")
        self.uploads.append({
            "name": name,
            "files": SnapshotBundle.from_dir(path).paths,
            "retention_days": retention_days,
        })
        return f"https://artifacts.example/{name}"

    @property
    def names(self) -> List[str]:
        return [u["name"] for u in self.uploads]


class MockCoverageUploader(ICoverageUploader):
    """记录所有覆盖率上传"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.uploads: List[Dict[str, Any]] = []

    def upload_coverage(self, file_path: Path, flags: List[str], name: str) -> None:
        self.uploads.append({"content": file_path.read_bytes(), "flags": flags, "name": name})
        if self.fail:
            raise CoverageUploadFailureError("codecov unavailable")


HEAD = "a" * 40
BASE = "b" * 40


def make_trigger(
    event_class: EventClass = EventClass.PUSH,
    credential: bool = True,
    head: str = HEAD,
    base: str = BASE,
    ref: str = "refs/heads/develop",
) -> TriggerContext:
    """构造测试用 TriggerContext"""
    return TriggerContext(
        event_class=event_class,
        head_commit=head,
        base_commit=base,
        has_execution_credential=credential,
        ref=ref,
        platform="Linux",
    )
