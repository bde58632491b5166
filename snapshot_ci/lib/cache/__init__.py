"""
快照缓存模块

  - BlobCache:  restore / save / derive_key
  - CacheKey:   {platform}-{namespace}-{commit_hash}
  - MISS:       未命中哨兵
"""
from snapshot_ci.lib.cache.blob_cache import (
    MISS,
    Baseline,
    BlobCache,
    CacheKey,
    is_miss,
)

__all__ = [
    "MISS",
    "Baseline",
    "BlobCache",
    "CacheKey",
    "is_miss",
]
