"""
Progress Reporter
=================

Renders aggregate progress snapshots for two sinks: the console (an
overwriting multi-line display or appended one-line messages) and a
programmatic observer receiving a structured event. Both are derived from
the same snapshot in a single pass, and rendering is a pure function of
that snapshot.
"""

from typing import Any, Callable, Dict, List, NamedTuple, Optional, TextIO
import sys

from src.models.schemas import (
    AggregateSnapshot,
    CompositionResolution,
    FormatDecision,
    OutputLocation,
    ProgressMode,
)
from .cancellation import CancellationToken
from .errors import CancellationError, StageError
from .output import output_glyph

LABEL_WIDTH = 20
BAR_WIDTH = 20

# Weights of the overall progress value handed to observers
BUNDLING_WEIGHT = 0.3
RENDERING_WEIGHT = 0.7

ProgressObserver = Callable[[Dict[str, Any]], None]


class RenderedProgress(NamedTuple):
    """Console text, short message and observer event for one snapshot."""

    text: str
    message: str
    value: float
    event: Dict[str, Any]


def format_bytes(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1000 or unit == "GB":
            return f"{int(value)} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1000
    return f"{size} B"


def _bar(progress: float) -> str:
    filled = int(round(max(0.0, min(1.0, progress)) * BAR_WIDTH))
    return "━" * filled + "─" * (BAR_WIDTH - filled)


def _percent(progress: float) -> str:
    return f"{int(round(progress * 100))}%"


class ProgressReporter:
    """Pure rendering of aggregate snapshots."""

    @staticmethod
    def overall_progress(snapshot: AggregateSnapshot) -> float:
        rendering = 0.0
        if snapshot.rendering is not None:
            rendering = snapshot.rendering.frames_done / snapshot.rendering.total_frames
        return round(
            BUNDLING_WEIGHT * snapshot.bundling.progress + RENDERING_WEIGHT * rendering, 4
        )

    @classmethod
    def render(cls, snapshot: AggregateSnapshot, mode: ProgressMode) -> RenderedProgress:
        lines = cls._lines(snapshot)
        message = cls._message(snapshot)
        value = cls.overall_progress(snapshot)
        text = message if mode == ProgressMode.APPEND else "\n".join(
            f"{label.ljust(LABEL_WIDTH)} {detail}" for label, detail in lines
        )
        event: Dict[str, Any] = {"message": message, "value": value}
        event.update(snapshot.model_dump(mode="json"))
        return RenderedProgress(text=text, message=message, value=value, event=event)

    @staticmethod
    def _browser_line(snapshot: AggregateSnapshot) -> Optional[tuple[str, str]]:
        download = snapshot.browser_download
        if download is None:
            return None
        if download.done_in_ms is not None:
            return "Downloaded browser", f"{_bar(1.0)} {download.done_in_ms}ms"
        detail = f"{_bar(download.progress)} {_percent(download.progress)}"
        if download.total_bytes:
            detail += f" of {format_bytes(download.total_bytes)}"
        return "Downloading browser", detail

    @staticmethod
    def _bundling_line(snapshot: AggregateSnapshot) -> tuple[str, str]:
        bundling = snapshot.bundling
        if bundling.done_in_ms is not None:
            return "Bundled", f"{_bar(1.0)} {bundling.done_in_ms}ms"
        return "Bundling", f"{_bar(bundling.progress)} {_percent(bundling.progress)}"

    @staticmethod
    def _rendering_line(snapshot: AggregateSnapshot) -> Optional[tuple[str, str]]:
        rendering = snapshot.rendering
        if rendering is None:
            return None
        ratio = rendering.frames_done / rendering.total_frames
        frames = f"{rendering.frames_done}/{rendering.total_frames}"
        if rendering.done_in_ms is not None:
            return "Rendered", f"{_bar(ratio)} {frames} {rendering.done_in_ms}ms"
        return "Rendering", f"{_bar(ratio)} {frames}"

    @classmethod
    def _lines(cls, snapshot: AggregateSnapshot) -> List[tuple[str, str]]:
        lines: List[tuple[str, str]] = []
        browser = cls._browser_line(snapshot)
        if browser:
            lines.append(browser)
        lines.append(cls._bundling_line(snapshot))
        copying = snapshot.copying_state
        if copying.bytes_copied:
            label = "Copied public dir" if copying.done_in_ms is not None else "Copying public dir"
            lines.append((label, format_bytes(copying.bytes_copied)))
        rendering = cls._rendering_line(snapshot)
        if rendering:
            lines.append(rendering)
        for download in snapshot.downloads.values():
            if download.progress is not None:
                state = _percent(download.progress)
            else:
                state = format_bytes(download.downloaded_bytes)
            label = "Downloaded" if download.progress == 1.0 else "Downloading"
            lines.append((label, f"{download.name} {state}"))
        return lines

    @classmethod
    def _message(cls, snapshot: AggregateSnapshot) -> str:
        line = cls._rendering_line(snapshot)
        if line is None and (
            snapshot.bundling.progress > 0 or snapshot.bundling.done_in_ms is not None
        ):
            line = cls._bundling_line(snapshot)
        if line is None:
            line = cls._browser_line(snapshot)
        if line is None:
            return "Preparing"
        label, detail = line
        # The bar carries no information in a one-line message
        return f"{label} {detail.split(' ', 1)[1]}"


class ConsoleProgressOutput:
    """Console sink for rendered progress.

    In overwrite mode the previously drawn block is erased and redrawn; in
    append mode every update is a new line. Quiet output draws nothing, and
    nothing is drawn once the job is cancelled.
    """

    def __init__(
        self,
        mode: ProgressMode,
        quiet: bool = False,
        stream: Optional[TextIO] = None,
        token: Optional[CancellationToken] = None,
    ):
        self.mode = mode
        self.quiet = quiet
        self.stream = stream if stream is not None else sys.stdout
        self._token = token
        self._drawn_lines = 0

    def update(self, text: str, newline: bool = False) -> bool:
        if self.quiet or (self._token is not None and self._token.is_cancelled()):
            return False
        if self.mode == ProgressMode.APPEND:
            self.stream.write(text + "\n")
        else:
            self._erase()
            self.stream.write(text)
            if newline:
                self.stream.write("\n")
                self._drawn_lines = 0
            else:
                self._drawn_lines = text.count("\n") + 1
        self.stream.flush()
        return True

    def write_line(self, line: str) -> None:
        """Print a permanent line below any progress block."""
        if self._drawn_lines:
            self.stream.write("\n")
            self._drawn_lines = 0
        self.stream.write(line + "\n")
        self.stream.flush()

    def _erase(self) -> None:
        if not self._drawn_lines:
            return
        self.stream.write("\r\x1b[2K" + "\x1b[1A\x1b[2K" * (self._drawn_lines - 1))


class ProgressPublisher:
    """Fans each snapshot out to the console and the external observer, in order."""

    def __init__(
        self,
        console: ConsoleProgressOutput,
        observer: Optional[ProgressObserver] = None,
    ):
        self.console = console
        self.observer = observer

    def __call__(self, snapshot: AggregateSnapshot, newline: bool = False) -> None:
        rendered = ProgressReporter.render(snapshot, self.console.mode)
        self.console.update(rendered.text, newline)
        if self.observer is not None:
            self.observer(rendered.event)


def choose_progress_mode(verbose: bool, interactive: bool) -> ProgressMode:
    """Verbose logs and non-interactive streams can't share a redrawn block."""
    if verbose or not interactive:
        return ProgressMode.APPEND
    return ProgressMode.OVERWRITE


def format_summary_line(
    composition: CompositionResolution,
    image_format: FormatDecision,
    output: OutputLocation,
    verbose: bool = False,
) -> str:
    composition_part = composition.id
    format_part = image_format.format.value
    path_part = output.relative_path
    if verbose:
        composition_part += f" ({composition.reason})"
        format_part += f" ({image_format.source})"
        path_part += f" ({output.source})"
    glyph = output_glyph(output.existed_before_write)
    return f"{glyph.ljust(LABEL_WIDTH)} {path_part}  composition={composition_part} format={format_part}"


def format_failure(error: BaseException, verbose: bool = False) -> str:
    """One concise failure line; verbose adds the wrapped cause chain."""
    stage = getattr(error, "stage", None)
    cause = error.cause if isinstance(error, StageError) else error
    if isinstance(cause, CancellationError):
        head = f"✖ Cancelled during stage {stage!r}" if stage else "✖ Cancelled"
    elif stage:
        head = f"✖ Stage {stage!r} failed: {cause}"
    else:
        head = f"✖ {cause}"
    if not verbose:
        return head

    lines = [head]
    seen = set()
    link: Optional[BaseException] = cause
    while link is not None and id(link) not in seen:
        seen.add(id(link))
        lines.append(f"    caused by {type(link).__name__}: {link}")
        link = link.__cause__ or link.__context__
    return "\n".join(lines)
