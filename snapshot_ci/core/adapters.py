"""
适配器 - 生产环境的接口实现
"""
import json
import os
import shutil
import subprocess
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional

import requests

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
from snapshot_ci.core.schema import RunnerEnv
from snapshot_ci.core.utils import logger
from snapshot_ci.lib.bundle import SnapshotBundle


def _merged_env(env: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
    if env is None:
        return None
    return {**os.environ, **env}


class SubprocessRunner(ICommandRunner):
    """生产环境命令执行器"""

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
        logger.debug(f"[CMD] {cmd_str}")

        result = subprocess.run(
            cmd,
            cwd=cwd,
            timeout=timeout,
            shell=shell,
            capture_output=capture_output,
            text=True,
            env=_merged_env(env),
        )

        if result.stdout:
            logger.debug(f"[STDOUT] {result.stdout.strip()}")
        if result.stderr:
            logger.debug(f"[STDERR] {result.stderr.strip()}")

        if check and result.returncode != 0:
            raise subprocess.CalledProcessError(
                result.returncode, cmd, result.stdout, result.stderr
            )

        return CommandResult(
            returncode=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
            command=cmd_str,
        )

    def run_realtime(
        self,
        cmd: List[str],
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        label: str = "",
    ) -> int:
        """实时输出的命令执行"""
        logger.debug(f"[CMD:REALTIME] {' '.join(cmd)}")
        prefix = f"[{label}] " if label else ""

        process = subprocess.Popen(
            cmd,
            cwd=cwd,
            env=_merged_env(env),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            bufsize=1,
        )

        if process.stdout:
            for line in process.stdout:
                line = line.rstrip()
                if line:
                    logger.info(f"     {prefix}{line}")

        return process.wait()


class DirectoryBlobStore(IBlobStore):
    """基于目录的缓存后端

    每个 key 对应 {root}/{key}/ 下的一棵文件树。
    写入先落到临时目录再整体 rename，读者不会看到写了一半的条目。
    """

    def __init__(self, root: Path):
        self.root = root

    def _entry(self, key: str) -> Path:
        if not key or "/" in key or key.startswith("."):
            raise KeyError(key)
        return self.root / key

    def exists(self, key: str) -> bool:
        return self._entry(key).is_dir()

    def read(self, key: str) -> SnapshotBundle:
        entry = self._entry(key)
        if not entry.is_dir():
            raise KeyError(key)
        return SnapshotBundle.from_dir(entry)

    def write(self, key: str, bundle: SnapshotBundle) -> None:
        entry = self._entry(key)
        staging = self.root / f".{key}.{uuid.uuid4().hex}.tmp"
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            bundle.write_to(staging)
            staging.rename(entry)
        except OSError as e:
            shutil.rmtree(staging, ignore_errors=True)
            raise SaveFailureError(f"写入 {entry} 失败: {e}") from e


class CommandTestRunner(ITestRunner):
    """通过外部命令执行测试分片

    执行前把基线复制到输出目录，执行器在原地更新快照，
    因此输出目录同时包含新快照、diff 图与覆盖率数据。
    """

    def __init__(
        self,
        cmd: ICommandRunner,
        command: List[str],
        project_root: Path,
        commit: str = "",
    ):
        self._cmd = cmd
        self._command = command
        self._project_root = project_root
        self._commit = commit

    def run(
        self,
        shard_index: int,
        total_shards: int,
        baseline_path: Optional[Path],
        work_dir: Path,
        parallel: bool = False,
        commit: Optional[str] = None,
    ) -> RunnerOutcome:
        output_dir = work_dir / "snapshots"
        if output_dir.exists():
            shutil.rmtree(output_dir)
        if baseline_path is not None and baseline_path.is_dir():
            shutil.copytree(baseline_path, output_dir)
        else:
            output_dir.mkdir(parents=True, exist_ok=True)

        env = {
            RunnerEnv.SHARD_INDEX.value: str(shard_index),
            RunnerEnv.SHARD_TOTAL.value: str(total_shards),
            RunnerEnv.OUTPUT_DIR.value: str(output_dir),
            RunnerEnv.RECORD.value: "1" if parallel else "0",
            RunnerEnv.PARALLEL.value: "1" if parallel else "0",
            RunnerEnv.COMMIT.value: commit or self._commit,
        }
        if baseline_path is not None:
            env[RunnerEnv.BASELINE_DIR.value] = str(baseline_path)

        exit_status = self._cmd.run_realtime(
            self._command,
            cwd=self._project_root,
            env=env,
            label=f"shard {shard_index + 1}/{total_shards}",
        )
        return RunnerOutcome(exit_status=exit_status, output_path=output_dir)


class DirectoryArtifactPublisher(IArtifactPublisher):
    """把产物复制到本地产物目录

    每个产物一个子目录，附带 retention.json 记录过期时间，
    由外部上传步骤（或定时清理）消费。
    """

    def __init__(self, root: Path, base_url: Optional[str] = None):
        self.root = root
        self.base_url = base_url.rstrip("/") if base_url else None

    def upload(self, name: str, path: Path, retention_days: int) -> str:
        target = self.root / name
        try:
            if target.exists():
                shutil.rmtree(target)
            target.parent.mkdir(parents=True, exist_ok=True)
            if path.is_dir():
                shutil.copytree(path, target)
            else:
                target.mkdir(parents=True)
            expires = datetime.now(timezone.utc) + timedelta(days=retention_days)
            (target / "retention.json").write_text(
                json.dumps({"name": name, "retention_days": retention_days,
                            "expires_at": expires.isoformat()}, indent=2),
                encoding="utf-8",
            )
        except OSError as e:
            raise ArtifactUploadFailureError(f"发布产物 {name} 失败: {e}") from e

        if self.base_url:
            return f"{self.base_url}/{name}"
        return target.resolve().as_uri()


class HttpCoverageUploader(ICoverageUploader):
    """通过 HTTP 上传覆盖率报告（Codecov 兼容的表单上传）"""

    def __init__(self, endpoint: Optional[str], token: Optional[str] = None,
                 commit: str = "", timeout: int = 30):
        self.endpoint = endpoint
        self.token = token
        self.commit = commit
        self.timeout = timeout

    def upload_coverage(self, file_path: Path, flags: List[str], name: str) -> None:
        if not self.endpoint:
            raise CoverageUploadFailureError("未配置覆盖率上传地址")
        if not file_path.is_file():
            raise CoverageUploadFailureError(f"覆盖率文件不存在: {file_path}")

        headers = {}
        if self.token:
            headers["Authorization"] = f"token {self.token}"
        params = {"flags": ",".join(flags), "name": name, "commit": self.commit}

        try:
            with open(file_path, "rb") as f:
                response = requests.post(
                    self.endpoint,
                    params=params,
                    headers=headers,
                    files={"file": (file_path.name, f, "text/plain")},
                    timeout=self.timeout,
                )
            response.raise_for_status()
        except (requests.RequestException, OSError) as e:
            raise CoverageUploadFailureError(f"覆盖率上传失败: {e}") from e
