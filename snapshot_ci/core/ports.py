"""
端口（接口）定义
所有与外部世界交互的能力都在这里声明：
命令执行、缓存后端、测试执行器、产物发布、覆盖率上传
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from snapshot_ci.lib.bundle import SnapshotBundle


@dataclass
class CommandResult:
    """命令执行结果"""
    returncode: int
    stdout: str
    stderr: str
    command: str


@dataclass
class RunnerOutcome:
    """外部测试执行器的一次调用结果"""
    exit_status: int
    output_path: Optional[Path]  # 执行器产出的快照目录，可能不存在


class ICommandRunner(ABC):
    """命令执行接口"""

    @abstractmethod
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
        """执行命令并返回结果"""
        ...

    @abstractmethod
    def run_realtime(
        self,
        cmd: List[str],
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        label: str = "",
    ) -> int:
        """实时输出的命令执行，返回 returncode"""
        ...


class IBlobStore(ABC):
    """缓存后端接口（按 key 存取整个快照包）"""

    @abstractmethod
    def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    def read(self, key: str) -> SnapshotBundle:
        """读取 key 对应的快照包，不存在时抛 KeyError"""
        ...

    @abstractmethod
    def write(self, key: str, bundle: SnapshotBundle) -> None:
        """写入快照包，失败时抛 SaveFailureError"""
        ...


class ITestRunner(ABC):
    """外部测试执行器接口

    契约: (shard_index, total_shards, baseline_path | None) -> (exit_status, output_path)
    commit 为空时使用执行器自身绑定的提交
    """

    @abstractmethod
    def run(
        self,
        shard_index: int,
        total_shards: int,
        baseline_path: Optional[Path],
        work_dir: Path,
        parallel: bool = False,
        commit: Optional[str] = None,
    ) -> RunnerOutcome:
        ...


class IArtifactPublisher(ABC):
    """产物发布接口"""

    @abstractmethod
    def upload(self, name: str, path: Path, retention_days: int) -> str:
        """上传目录并返回产物 URL，失败时抛 ArtifactUploadFailureError"""
        ...


class ICoverageUploader(ABC):
    """覆盖率上传接口"""

    @abstractmethod
    def upload_coverage(self, file_path: Path, flags: List[str], name: str) -> None:
        """上传覆盖率文件，失败时抛 CoverageUploadFailureError"""
        ...
