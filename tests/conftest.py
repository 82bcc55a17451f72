"""
Test Configuration
==================

Pytest configuration with fixtures for all test types.
Provides isolated settings, console sinks and fake collaborators.
"""

import io
import os

os.environ.setdefault("STILL_RENDER_ENVIRONMENT", "testing")

import pytest
from pathlib import Path
from typing import List

from src.config.settings import Settings
from src.core.orchestration.reporter import ConsoleProgressOutput
from src.models.schemas import CompositionConfig, ProgressMode
from tests.utils.mocks import FakeCollaborators


# Test settings override
class TestSettings(Settings):
    """Test-specific settings."""

    environment: str = "testing"
    debug: bool = True
    playwright_headless: bool = True
    log_level: str = "INFO"


@pytest.fixture
def test_settings(tmp_path: Path) -> TestSettings:
    """Settings writing outputs, logs and bundles under a temporary directory."""
    return TestSettings(
        output_dir=tmp_path / "out",
        storage_path=tmp_path / "storage",
        temp_path=tmp_path / "tmp",
    )


@pytest.fixture
def verbose_settings(tmp_path: Path) -> TestSettings:
    """Settings with verbose (DEBUG) output."""
    return TestSettings(
        output_dir=tmp_path / "out",
        storage_path=tmp_path / "storage",
        temp_path=tmp_path / "tmp",
        log_level="DEBUG",
    )


@pytest.fixture
def console_stream() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def console(console_stream: io.StringIO) -> ConsoleProgressOutput:
    """Append-mode console writing to an in-memory stream."""
    return ConsoleProgressOutput(ProgressMode.APPEND, stream=console_stream)


@pytest.fixture
def compositions() -> List[CompositionConfig]:
    return [CompositionConfig(id="MyComp", width=320, height=180, fps=30, duration_in_frames=60)]


@pytest.fixture
def fakes(tmp_path: Path, compositions: List[CompositionConfig]) -> FakeCollaborators:
    """Fake browser, bundler, server, resolver and renderer sharing one call log."""
    bundle_dir = tmp_path / "bundle"
    bundle_dir.mkdir()
    return FakeCollaborators(compositions, bundle_dir)
