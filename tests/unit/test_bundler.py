"""
Unit Tests for the Project Bundler
==================================
"""

from pathlib import Path

import pytest

from src.core.orchestration.cancellation import never_cancelled
from src.core.orchestration.errors import CancellationError
from src.core.rendering.bundler import BundleError, DirectoryBundler
from tests.utils.helpers import ProgressRecorder, cancelled_token, create_project


class TestDirectoryBundler:
    """Test copying a project into a servable directory."""

    @pytest.fixture
    def bundler(self, tmp_path):
        return DirectoryBundler(tmp_path / "bundles")

    @pytest.fixture
    def project(self, tmp_path):
        return create_project(
            tmp_path / "project",
            {
                "index.html": "<html></html>",
                "src/main.js": "window.renderFrame = () => {};",
                "node_modules/lib/index.js": "ignored",
                ".git/HEAD": "ignored",
            },
            public={"logo.svg": "<svg></svg>"},
        )

    @pytest.mark.asyncio
    async def test_url_entry_point_skips_bundling(self, bundler):
        """Test url entry point skips bundling."""
        recorder = ProgressRecorder()

        result = await bundler.bundle("https://example.com/site", None, recorder, never_cancelled())

        assert result.servable_location == "https://example.com/site"
        assert result.entry_path == ""
        assert recorder.bundling == [1.0]
        assert result.cleanup() is None

    @pytest.mark.asyncio
    async def test_bundles_file_entry_point(self, bundler, project):
        """Test bundles file entry point."""
        recorder = ProgressRecorder()

        result = await bundler.bundle(
            str(project / "index.html"), None, recorder, never_cancelled()
        )

        out_dir = Path(result.servable_location)
        assert out_dir.is_dir()
        assert result.entry_path == "index.html"
        assert (out_dir / "index.html").read_text() == "<html></html>"
        assert (out_dir / "src" / "main.js").exists()
        assert not (out_dir / "node_modules").exists()
        assert not (out_dir / ".git").exists()
        assert (out_dir / "public" / "logo.svg").read_text() == "<svg></svg>"
        assert recorder.bundling[0] == 0.0
        assert recorder.bundling[-1] == 1.0
        assert recorder.done_in_ms is not None
        assert recorder.copied[-1] == len("<svg></svg>")

    @pytest.mark.asyncio
    async def test_directory_entry_point(self, bundler, project):
        """Test directory entry point."""
        result = await bundler.bundle(str(project), None, ProgressRecorder(), never_cancelled())
        assert result.entry_path == ""

    @pytest.mark.asyncio
    async def test_cleanup_removes_bundle(self, bundler, project):
        """Test cleanup removes bundle."""
        result = await bundler.bundle(str(project), None, ProgressRecorder(), never_cancelled())

        result.cleanup()

        assert list(bundler.temp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_missing_entry_point(self, bundler, tmp_path):
        """Test missing entry point."""
        with pytest.raises(BundleError, match="does not exist"):
            await bundler.bundle(str(tmp_path / "nope.html"), None, ProgressRecorder(), never_cancelled())

    @pytest.mark.asyncio
    async def test_missing_public_dir(self, bundler, project):
        """Test missing public dir."""
        with pytest.raises(BundleError, match="Public directory"):
            await bundler.bundle(str(project), "static", ProgressRecorder(), never_cancelled())

    @pytest.mark.asyncio
    async def test_cancellation_removes_partial_bundle(self, bundler, project):
        """Test cancellation removes partial bundle."""
        with pytest.raises(CancellationError) as exc_info:
            await bundler.bundle(str(project), None, ProgressRecorder(), cancelled_token())

        assert exc_info.value.stage == "bundle"
        assert list(bundler.temp_path.iterdir()) == []
