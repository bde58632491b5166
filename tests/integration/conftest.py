"""
集成测试专用 Fixtures

使用随包发布的 manifest 作为配置，所有外部端口替换为内存实现，
通过 main.execute() 跑完整的 cache → e2e → combine 流程。
"""
import pytest

from snapshot_ci.core.config import PipelineConfig, build_config
from snapshot_ci.main import PACKAGE_ROOT, load_manifests


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    """真实 manifest 配置，关闭 git checkout（测试中没有真实仓库）"""
    return build_config(load_manifests(PACKAGE_ROOT), {"baseline": {"checkout_command": []}})
