"""
SnapshotBundle - 快照包

以相对路径为键的二进制文件树（截图、stats 文件等）。
包内路径唯一；路径统一为 POSIX 风格的相对路径。
"""
import shutil
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Tuple


DIFF_MARKER = "__diff_output__"


def normalize_path(path: str) -> str:
    """规范化包内路径，拒绝绝对路径和 `..`"""
    raw = str(path).replace("\\", "/")
    pure = PurePosixPath(raw)
    if not raw or pure.is_absolute():
        raise ValueError(f"非法的包内路径: {path!r}")
    parts = [p for p in pure.parts if p not in ("", ".")]
    if not parts or ".." in parts:
        raise ValueError(f"非法的包内路径: {path!r}")
    return "/".join(parts)


def is_diff_path(path: str, marker: str = DIFF_MARKER) -> bool:
    """文件所在的某一级目录名包含 marker（文件名本身不算）"""
    return any(marker in part for part in PurePosixPath(path).parts[:-1])


class SnapshotBundle:
    """有序的 `路径 -> 字节` 文件树"""

    def __init__(self, files: Optional[Mapping[str, bytes]] = None):
        self._files: Dict[str, bytes] = {}
        for path, data in (files or {}).items():
            self.add(path, data)

    # ── 构造与读写 ─────────────────────────────────────────

    @classmethod
    def from_dir(cls, root: Path) -> "SnapshotBundle":
        """从目录加载（目录不存在时返回空包）"""
        bundle = cls()
        if not root.is_dir():
            return bundle
        for file in sorted(root.rglob("*")):
            if file.is_file():
                bundle.add(file.relative_to(root).as_posix(), file.read_bytes())
        return bundle

    def write_to(self, root: Path, clean: bool = False) -> Path:
        """写出到目录

        Args:
            root:  目标根目录
            clean: 为 True 时先清空目标目录
        """
        if clean and root.exists():
            shutil.rmtree(root)
        root.mkdir(parents=True, exist_ok=True)
        for path, data in self.items():
            target = root / path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        return root

    def add(self, path: str, data: bytes, overwrite: bool = False) -> str:
        """加入一个文件，路径重复且 overwrite=False 时抛 ValueError"""
        key = normalize_path(path)
        if key in self._files and not overwrite:
            raise ValueError(f"包内路径重复: {key}")
        self._files[key] = bytes(data)
        return key

    def get(self, path: str) -> Optional[bytes]:
        return self._files.get(normalize_path(path))

    # ── 查询 ──────────────────────────────────────────────

    @property
    def paths(self) -> List[str]:
        """所有路径（排序后）"""
        return sorted(self._files)

    @property
    def total_size(self) -> int:
        return sum(len(d) for d in self._files.values())

    def items(self) -> Iterator[Tuple[str, bytes]]:
        for path in self.paths:
            yield path, self._files[path]

    def select(self, predicate: Callable[[str], bool]) -> "SnapshotBundle":
        """按路径筛选出子包"""
        return SnapshotBundle({p: d for p, d in self.items() if predicate(p)})

    def without(self, *paths: str) -> "SnapshotBundle":
        """去掉指定路径后的子包（不存在的路径忽略）"""
        dropped = {normalize_path(p) for p in paths}
        return self.select(lambda p: p not in dropped)

    def copy(self) -> "SnapshotBundle":
        return SnapshotBundle(self._files)

    def is_empty(self) -> bool:
        return not self._files

    def __contains__(self, path: object) -> bool:
        try:
            return normalize_path(str(path)) in self._files
        except ValueError:
            return False

    def __iter__(self) -> Iterator[str]:
        return iter(self.paths)

    def __len__(self) -> int:
        return len(self._files)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SnapshotBundle):
            return NotImplemented
        return self._files == other._files

    def __repr__(self) -> str:
        return f"SnapshotBundle({len(self)} files, {self.total_size} bytes)"
