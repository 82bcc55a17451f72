"""
Progress Aggregate
==================

Single-owner, mutable progress state of one still job. Fields change only
through the narrow mutators below; every mutation produces a frozen
``AggregateSnapshot`` and hands it to the change listener, so all sinks
observe the same state in production order.
"""

from typing import Callable, Dict, Optional

from src.models.schemas import (
    AggregateSnapshot,
    BrowserDownloadProgress,
    BundlingProgress,
    CopyingState,
    DownloadProgress,
    RenderingProgress,
)

ChangeListener = Callable[[AggregateSnapshot, bool], None]


class ProgressAggregate:
    """Mutable aggregate progress for a still job."""

    def __init__(self, on_change: Optional[ChangeListener] = None):
        self._on_change = on_change
        self._bundling = BundlingProgress()
        self._copying_state = CopyingState()
        self._browser_download: Optional[BrowserDownloadProgress] = None
        self._rendering: Optional[RenderingProgress] = None
        self._downloads: Dict[str, DownloadProgress] = {}

    def snapshot(self) -> AggregateSnapshot:
        return AggregateSnapshot(
            bundling=self._bundling,
            copying_state=self._copying_state,
            browser_download=self._browser_download,
            rendering=self._rendering,
            downloads=dict(self._downloads),
        )

    def set_bundling(
        self, bundling: BundlingProgress, copying_state: Optional[CopyingState] = None
    ) -> None:
        self._bundling = bundling
        if copying_state is not None:
            self._copying_state = copying_state
        self._changed()

    def set_browser_download(self, download: BrowserDownloadProgress) -> None:
        self._browser_download = download
        self._changed()

    def set_rendering(self, rendering: RenderingProgress, newline: bool = False) -> None:
        """Replace rendering progress.

        Raises ``ValueError`` if frames go backwards, the frame total changes,
        or ``done_in_ms`` does not match completion.
        """
        previous = self._rendering
        if previous is not None:
            if rendering.frames_done < previous.frames_done:
                raise ValueError(
                    f"frames_done went backwards ({previous.frames_done} -> {rendering.frames_done})"
                )
            if rendering.total_frames != previous.total_frames:
                raise ValueError("total_frames cannot change during a job")
            if previous.done_in_ms is not None:
                raise ValueError("Rendering already finished")
        if rendering.frames_done > rendering.total_frames:
            raise ValueError("frames_done cannot exceed total_frames")
        finished = rendering.frames_done == rendering.total_frames
        if finished != (rendering.done_in_ms is not None):
            raise ValueError("done_in_ms must be set exactly when all frames are done")
        self._rendering = rendering
        self._changed(newline)

    def set_download(self, asset_id: str, progress: DownloadProgress) -> None:
        self._downloads[asset_id] = progress
        self._changed()

    def _changed(self, newline: bool = False) -> None:
        if self._on_change is not None:
            self._on_change(self.snapshot(), newline)
