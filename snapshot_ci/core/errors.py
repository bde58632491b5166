"""
错误分类

- InvalidConfigError:          致命，任何分片执行前中止
- RegenerationFailureError:    基线重建失败，降级为无基线继续
- SaveFailureError:            缓存写入失败，记录后忽略
- CoverageUploadFailureError:  覆盖率上传失败，记录后忽略

缓存未命中不是错误（见 lib.cache.MISS），分片失败是数据（RunStatus.FAILURE），
两者都不通过异常表达。
"""


class SnapshotCIError(Exception):
    """所有 snapshot-ci 异常的基类"""


class InvalidConfigError(SnapshotCIError, ValueError):
    """配置非法（如分片数 < 1、未知触发事件）"""


class RegenerationFailureError(SnapshotCIError):
    """基线快照重建失败"""


class SaveFailureError(SnapshotCIError):
    """缓存持久化失败"""


class CoverageUploadFailureError(SnapshotCIError):
    """覆盖率上传失败"""


class ArtifactUploadFailureError(SnapshotCIError):
    """产物发布失败"""
