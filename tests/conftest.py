"""
Pytest 共享 Fixtures

提供可复用的测试上下文、mock 服务和临时文件系统。
"""
from pathlib import Path
from typing import Callable

import pytest

from snapshot_ci.core.config import PipelineConfig, build_config
from snapshot_ci.core.interface import RunContext
from snapshot_ci.core.trigger import TriggerContext
from tests.mocks import (
    FakeTestRunner,
    InMemoryBlobStore,
    MockCoverageUploader,
    MockPublisher,
    MockRunner,
    make_trigger,
)


@pytest.fixture
def mock_runner() -> MockRunner:
    """新建一个干净的 MockRunner"""
    return MockRunner()


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def fake_runner() -> FakeTestRunner:
    return FakeTestRunner()


@pytest.fixture
def publisher() -> MockPublisher:
    return MockPublisher()


@pytest.fixture
def coverage_uploader() -> MockCoverageUploader:
    return MockCoverageUploader()


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    """默认配置，关闭重建前的 git checkout，避免依赖真实仓库"""
    return build_config({"baseline": {"checkout_command": []}})


@pytest.fixture
def make_context(
    tmp_path: Path,
    mock_runner: MockRunner,
    blob_store: InMemoryBlobStore,
    fake_runner: FakeTestRunner,
    publisher: MockPublisher,
    coverage_uploader: MockCoverageUploader,
    pipeline_config: PipelineConfig,
) -> Callable[..., RunContext]:
    """
    构建测试用 RunContext 的工厂

    - 所有端口使用 Mock 替身
    - 使用 pytest tmp_path 作为 work_dir（避免污染真实文件系统）
    """
    def _make(trigger: TriggerContext = None, **overrides) -> RunContext:
        kwargs = dict(
            project_root=tmp_path / "project",
            work_dir=tmp_path / "work",
            trigger=trigger or make_trigger(),
            config=pipeline_config,
            cmd=mock_runner,
            store=blob_store,
            runner=fake_runner,
            publisher=publisher,
            coverage=coverage_uploader,
            debug=True,
        )
        kwargs.update(overrides)
        return RunContext(**kwargs)

    return _make


@pytest.fixture
def run_context(make_context) -> RunContext:
    """默认的 push 触发上下文"""
    return make_context()
