"""
Test Helpers
============

Helper functions for common testing operations.
"""

from pathlib import Path
from typing import Dict, List, Optional

from src.core.orchestration.cancellation import CancelController, CancellationToken


def create_project(root: Path, files: Dict[str, str], public: Optional[Dict[str, str]] = None) -> Path:
    """Write a small project tree (and optional public dir) under ``root``."""
    root.mkdir(parents=True, exist_ok=True)
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    for relative, content in (public or {}).items():
        path = root / "public" / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


class ProgressRecorder:
    """Collects bundle progress callbacks."""

    def __init__(self):
        self.bundling: List[float] = []
        self.copied: List[int] = []
        self.done_in_ms: Optional[int] = None

    def __call__(self, bundling, copying) -> None:
        self.bundling.append(bundling.progress)
        self.copied.append(copying.bytes_copied)
        if bundling.done_in_ms is not None:
            self.done_in_ms = bundling.done_in_ms


def cancelled_token(reason: str = "stop") -> CancellationToken:
    """A token that is already cancelled."""
    controller = CancelController()
    controller.cancel(reason)
    return controller.token
