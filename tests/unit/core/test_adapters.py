"""
生产适配器测试（文件系统部分使用 tmp_path，HTTP 使用 mock）
"""
import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from snapshot_ci.core.adapters import (
    CommandTestRunner,
    DirectoryArtifactPublisher,
    DirectoryBlobStore,
    HttpCoverageUploader,
)
from snapshot_ci.core.errors import (
    ArtifactUploadFailureError,
    CoverageUploadFailureError,
    SaveFailureError,
)
from snapshot_ci.core.ports import CommandResult
from snapshot_ci.lib.bundle import SnapshotBundle


class TestDirectoryBlobStore:

    @pytest.mark.parametrize("key", ["", "../escape", ".hidden"])
    def test_invalid_key(self, tmp_path: Path, key):
        with pytest.raises(KeyError):
            DirectoryBlobStore(tmp_path).read(key)

    def test_write_failure_raises_save_failure(self, tmp_path: Path):
        blocker = tmp_path / "cache"
        blocker.write_text("not a directory")

        with pytest.raises(SaveFailureError):
            DirectoryBlobStore(blocker).write("k", SnapshotBundle({"x.png": b"1"}))


class TestCommandTestRunner:

    def test_passes_shard_parameters(self, tmp_path: Path, mock_runner):
        runner = CommandTestRunner(mock_runner, ["npx", "cypress", "run"], tmp_path, commit="abc")

        outcome = runner.run(1, 4, None, tmp_path / "work", parallel=True)

        call = mock_runner.realtime_calls[0]
        env = call.kwargs["env"]
        assert call.cmd == "npx cypress run"
        assert call.cwd == tmp_path
        assert call.kwargs["label"] == "shard 2/4"
        assert env["SNAPSHOT_CI_SHARD_INDEX"] == "1"
        assert env["SNAPSHOT_CI_SHARD_TOTAL"] == "4"
        assert env["SNAPSHOT_CI_PARALLEL"] == "1"
        assert env["SNAPSHOT_CI_COMMIT"] == "abc"
        assert "SNAPSHOT_CI_BASELINE_DIR" not in env
        assert outcome.exit_status == 0
        assert outcome.output_path == tmp_path / "work" / "snapshots"

    def test_commit_per_call_overrides_bound_commit(self, tmp_path: Path, mock_runner):
        """基线重建在目标提交上执行，导出的提交随调用变化"""
        runner = CommandTestRunner(mock_runner, ["run-tests"], tmp_path, commit="head")

        runner.run(0, 1, None, tmp_path / "regenerate", commit="base")
        runner.run(0, 4, None, tmp_path / "shard-0")

        commits = [c.kwargs["env"]["SNAPSHOT_CI_COMMIT"] for c in mock_runner.realtime_calls]
        assert commits == ["base", "head"]

    def test_seeds_output_with_baseline(self, tmp_path: Path, mock_runner):
        baseline = SnapshotBundle({"home.png": b"base"}).write_to(tmp_path / "baseline")
        runner = CommandTestRunner(mock_runner, ["run-tests"], tmp_path)

        outcome = runner.run(0, 1, baseline, tmp_path / "work")

        assert SnapshotBundle.from_dir(outcome.output_path).get("home.png") == b"base"
        assert mock_runner.realtime_calls[0].kwargs["env"]["SNAPSHOT_CI_BASELINE_DIR"] == str(baseline)

    def test_non_zero_exit(self, tmp_path: Path, mock_runner):
        mock_runner.stub_results["run-tests"] = CommandResult(1, "", "", "run-tests")
        runner = CommandTestRunner(mock_runner, ["run-tests"], tmp_path)

        assert runner.run(0, 1, None, tmp_path / "work").exit_status == 1


class TestDirectoryArtifactPublisher:

    def test_copies_directory_and_writes_retention(self, tmp_path: Path):
        source = SnapshotBundle({"x.png": b"1"}).write_to(tmp_path / "src")
        publisher = DirectoryArtifactPublisher(tmp_path / "artifacts", base_url="https://ci.example/runs/1/")

        url = publisher.upload("error-snapshots", source, 10)

        target = tmp_path / "artifacts" / "error-snapshots"
        assert url == "https://ci.example/runs/1/error-snapshots"
        assert (target / "x.png").read_bytes() == b"1"
        assert json.loads((target / "retention.json").read_text())["retention_days"] == 10

    def test_file_uri_without_base_url(self, tmp_path: Path):
        publisher = DirectoryArtifactPublisher(tmp_path / "artifacts")
        url = publisher.upload("snapshots-1", tmp_path / "missing", 1)
        assert url.startswith("file://")
        assert (tmp_path / "artifacts" / "snapshots-1").is_dir()

    def test_replaces_previous_upload(self, tmp_path: Path):
        publisher = DirectoryArtifactPublisher(tmp_path / "artifacts")
        publisher.upload("a", SnapshotBundle({"old.png": b"1"}).write_to(tmp_path / "v1"), 1)
        publisher.upload("a", SnapshotBundle({"new.png": b"2"}).write_to(tmp_path / "v2"), 1)

        assert not (tmp_path / "artifacts" / "a" / "old.png").exists()

    def test_failure(self, tmp_path: Path):
        blocker = tmp_path / "artifacts"
        blocker.write_text("file")
        with pytest.raises(ArtifactUploadFailureError):
            DirectoryArtifactPublisher(blocker).upload("a", tmp_path, 1)


class TestHttpCoverageUploader:

    @pytest.fixture
    def lcov(self, tmp_path: Path) -> Path:
        path = tmp_path / "lcov.info"
        path.write_text("TN:\nend_of_record\n")
        return path

    def test_posts_file(self, lcov: Path):
        uploader = HttpCoverageUploader("https://cov.example/upload", token="t0k", commit="abc")
        with patch("snapshot_ci.core.adapters.requests.post") as mock_post:
            uploader.upload_coverage(lcov, ["e2e", "shard"], "snapshot-ci")

        _, kwargs = mock_post.call_args
        assert mock_post.call_args[0][0] == "https://cov.example/upload"
        assert kwargs["params"] == {"flags": "e2e,shard", "name": "snapshot-ci", "commit": "abc"}
        assert kwargs["headers"] == {"Authorization": "token t0k"}
        assert "file" in kwargs["files"]

    def test_without_endpoint(self, lcov: Path):
        with pytest.raises(CoverageUploadFailureError):
            HttpCoverageUploader(None).upload_coverage(lcov, [], "x")

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(CoverageUploadFailureError):
            HttpCoverageUploader("https://cov.example").upload_coverage(tmp_path / "none", [], "x")

    def test_network_error(self, lcov: Path):
        with patch("snapshot_ci.core.adapters.requests.post", side_effect=requests.ConnectionError("down")):
            with pytest.raises(CoverageUploadFailureError):
                HttpCoverageUploader("https://cov.example").upload_coverage(lcov, [], "x")

    def test_http_error(self, lcov: Path):
        response = MagicMock()
        response.raise_for_status.side_effect = requests.HTTPError("500")
        with patch("snapshot_ci.core.adapters.requests.post", return_value=response):
            with pytest.raises(CoverageUploadFailureError):
                HttpCoverageUploader("https://cov.example").upload_coverage(lcov, [], "x")
