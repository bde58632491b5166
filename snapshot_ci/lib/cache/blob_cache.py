"""
BlobCache - 按提交哈希寻址的快照缓存

- restore(): 未命中是正常结果（返回 MISS），从不抛异常
- save():    尽力而为，失败只记录日志，不影响整体运行结果
- key 只追加不覆盖：已存在的 key 再次写入会被忽略
"""
import logging
from dataclasses import dataclass
from typing import Union

from snapshot_ci.core.ports import IBlobStore
from snapshot_ci.lib.bundle import SnapshotBundle

logger = logging.getLogger("snapshot_ci")


class _Miss:
    """缓存未命中哨兵"""

    _instance = None

    def __new__(cls) -> "_Miss":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISS"


MISS = _Miss()

Baseline = Union[SnapshotBundle, _Miss]


def is_miss(value: object) -> bool:
    return value is MISS


@dataclass(frozen=True)
class CacheKey:
    """缓存键: {platform}-{namespace}-{commit_hash}"""
    platform: str
    namespace: str
    commit_hash: str

    def __str__(self) -> str:
        return f"{self.platform}-{self.namespace}-{self.commit_hash}"


class BlobCache:
    """快照缓存，后端由 IBlobStore 注入"""

    def __init__(self, store: IBlobStore, platform: str, namespace: str = "snapshots"):
        self._store = store
        self.platform = platform
        self.namespace = namespace

    def derive_key(self, commit_hash: str) -> CacheKey:
        return CacheKey(self.platform, self.namespace, commit_hash)

    def restore(self, key: CacheKey) -> Baseline:
        """按 key 恢复快照包，未命中返回 MISS"""
        name = str(key)
        try:
            if not self._store.exists(name):
                logger.info(f"  -> [Cache] 未命中: {name}")
                return MISS
            bundle = self._store.read(name)
        except KeyError:
            logger.info(f"  -> [Cache] 未命中: {name}")
            return MISS
        except OSError as e:
            logger.warning(f"  -> [WARN] 读取缓存失败 ({name}): {e}，按未命中处理")
            return MISS

        logger.info(f"  -> [Cache] 命中: {name} ({len(bundle)} 个文件)")
        return bundle

    def save(self, key: CacheKey, bundle: SnapshotBundle) -> bool:
        """
        尽力保存快照包。

        Returns:
            True 已写入，False 已存在或写入失败（均不抛异常）
        """
        name = str(key)
        try:
            if self._store.exists(name):
                logger.info(f"  -> [Cache] key 已存在，跳过写入: {name}")
                return False
            self._store.write(name, bundle)
        except Exception as e:
            logger.warning(f"  -> [WARN] 缓存写入失败 ({name}): {e}，已忽略")
            return False

        logger.info(f"  -> [Cache] 已保存: {name} ({len(bundle)} 个文件)")
        return True
