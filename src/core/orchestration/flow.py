"""
Still Render Flow
=================

One still job: acquire a browser, bundle and serve the project, resolve the
composition, decide format and output location, then render the frame.
Each stage registers the resources it acquires with the job's cleanup
registry and reports through a single progress aggregate.
"""

from typing import Any, List, Optional
import sys
import time

from pydantic import ValidationError as PydanticValidationError

from src.config.logging import get_logger, setup_logging
from src.config.settings import Settings, get_settings
from src.models.schemas import (
    BundlingProgress,
    CompositionResolution,
    CopyingState,
    DownloadProgress,
    FormatDecision,
    JobConfig,
    JobResult,
    OutputLocation,
    RenderingProgress,
    StillRenderRequest,
    StillRenderSummary,
)
from .cancellation import CancellationToken, never_cancelled
from .cleanup import CleanupRegistry
from .contracts import BrowserHandle, BundleResult, ServerHandle, StillCollaborators
from .decisions import (
    determine_image_format,
    determine_output_name,
    requested_output_name,
    resolve_frame,
)
from .errors import (
    BundlingError,
    CompositionResolutionError,
    RenderError,
    ResourceAcquisitionError,
    ValidationError,
    translate_errors,
)
from .output import OutputResolver
from .progress import ProgressAggregate
from .reporter import (
    ConsoleProgressOutput,
    ProgressObserver,
    ProgressPublisher,
    choose_progress_mode,
    format_failure,
    format_summary_line,
)
from .sequencer import Stage, StageSequencer

logger = get_logger(__name__)


def build_job_config(**raw: Any) -> JobConfig:
    """Validate caller input into a ``JobConfig``.

    Raises:
        ValidationError: If the input is malformed.
    """
    try:
        return JobConfig(**raw)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(f"Invalid job configuration: {problems}") from e


def join_url(base: str, path: str) -> str:
    if not path:
        return base
    return base.rstrip("/") + "/" + path.lstrip("/")


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class StillRenderFlow:
    """Stages of one still job and the state they hand to each other."""

    def __init__(
        self,
        config: JobConfig,
        collaborators: StillCollaborators,
        settings: Settings,
        cleanup: CleanupRegistry,
        token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressObserver] = None,
        console: Optional[ConsoleProgressOutput] = None,
    ):
        self.config = config
        self.collaborators = collaborators
        self.settings = settings
        self.cleanup = cleanup
        self.token = token or never_cancelled()
        self.verbose = settings.is_verbose
        self.logger: Any = logger.bind(component="still_flow", entry_point=config.entry_point)

        if console is None:
            mode = choose_progress_mode(self.verbose, sys.stdout.isatty())
            console = ConsoleProgressOutput(mode, quiet=settings.quiet, token=self.token)
        self.console = console
        self.aggregate = ProgressAggregate(on_change=ProgressPublisher(console, on_progress))
        self.output_resolver = OutputResolver(settings.output_dir)

        self.browser: Optional[BrowserHandle] = None
        self.bundle: Optional[BundleResult] = None
        self.server: Optional[ServerHandle] = None
        self.serve_url: Optional[str] = None
        self.composition: Optional[CompositionResolution] = None
        self.image_format: Optional[FormatDecision] = None
        self.output: Optional[OutputLocation] = None
        self.render_time_ms: Optional[int] = None
        self.summary_line: Optional[str] = None

    @property
    def timeout_ms(self) -> int:
        return self.config.timeout_ms or self.settings.browser_timeout_ms

    def stages(self) -> List[Stage]:
        return [
            Stage("browser", self.acquire_browser),
            Stage("bundle", self.bundle_project),
            Stage("serve", self.serve_project),
            Stage("composition", self.resolve_composition),
            Stage("output", self.resolve_output),
            Stage("render", self.render),
        ]

    async def run(self) -> JobResult:
        self.logger.debug(
            "Entry point", entry_point=self.config.entry_point, reason=self.config.entry_point_reason
        )
        return await StageSequencer(self.cleanup).run(self.stages(), self.token)

    async def acquire_browser(self) -> None:
        provider = self.collaborators.browser_provider
        with translate_errors(ResourceAcquisitionError, "Could not acquire a browser"):
            await self.token.race(
                provider.ensure(on_download=self.aggregate.set_browser_download, token=self.token),
                stage="browser",
            )
            scale = self.config.scale or self.settings.scale
            browser = await self.token.race(
                provider.open(scale=scale, token=self.token), stage="browser"
            )
        self.browser = browser
        self.cleanup.register(lambda: browser.close(False), label="browser")

    async def bundle_project(self) -> None:
        start = time.monotonic()

        def on_progress(bundling: BundlingProgress, copying: CopyingState) -> None:
            self.aggregate.set_bundling(bundling, copying)

        with translate_errors(BundlingError, "Bundling failed"):
            bundle = await self.token.race(
                self.collaborators.bundler.bundle(
                    self.config.entry_point,
                    public_dir=self.config.public_dir,
                    on_progress=on_progress,
                    token=self.token,
                ),
                stage="bundle",
            )
        self.bundle = bundle
        self.cleanup.register(bundle.cleanup, label="bundle")
        if self.aggregate.snapshot().bundling.done_in_ms is None:
            self.aggregate.set_bundling(
                BundlingProgress(progress=1.0, done_in_ms=_elapsed_ms(start))
            )

    async def serve_project(self) -> None:
        assert self.bundle is not None
        port = self.config.port if self.config.port is not None else self.settings.server_port
        with translate_errors(ResourceAcquisitionError, "Could not start the local server"):
            server = await self.token.race(
                self.collaborators.server.prepare(
                    self.bundle.servable_location,
                    concurrency=self.config.concurrency,
                    port=port,
                    token=self.token,
                ),
                stage="serve",
            )
        self.server = server
        self.cleanup.register(lambda: server.close(False), label="server")
        self.serve_url = join_url(server.url, self.bundle.entry_path)

    async def resolve_composition(self) -> None:
        assert self.browser is not None and self.server is not None and self.serve_url
        with translate_errors(CompositionResolutionError, "Could not resolve the composition"):
            self.composition = await self.token.race(
                self.collaborators.composition_resolver.resolve(
                    list(self.config.remaining_args),
                    self.browser,
                    self.server,
                    serve_url=self.serve_url,
                    composition_id=self.config.composition_id,
                    width=self.config.width,
                    height=self.config.height,
                    env_variables=dict(self.config.env_variables),
                    input_props=dict(self.config.input_props),
                    timeout_ms=self.timeout_ms,
                    token=self.token,
                ),
                stage="composition",
            )
        self.logger.debug(
            "Composition resolved", composition=self.composition.id, reason=self.composition.reason
        )

    async def resolve_output(self) -> None:
        assert self.composition is not None
        remaining = self.composition.remaining_args
        self.image_format = determine_image_format(
            explicit=self.config.image_format,
            configured=self.settings.default_image_format,
            output_name=requested_output_name(self.config.output_location, remaining),
        )
        relative, source = determine_output_name(
            self.config.output_location, remaining, self.composition.id, self.image_format.format
        )
        self.output = self.output_resolver.resolve(relative, self.config.overwrite, source)
        self.logger.debug(
            "Output decided",
            format=self.image_format.format.value,
            format_source=self.image_format.source,
            output=self.output.relative_path,
            output_source=source,
        )

    async def render(self) -> None:
        assert self.composition is not None and self.output is not None
        assert self.image_format is not None and self.browser is not None and self.serve_url
        frame = resolve_frame(self.config.frame, self.composition.config.duration_in_frames)
        request = StillRenderRequest(
            composition=self.composition.config,
            frame=frame,
            serve_url=self.serve_url,
            output_path=self.output.absolute_path,
            image_format=self.image_format.format,
            jpeg_quality=(
                self.config.jpeg_quality
                if self.config.jpeg_quality is not None
                else self.settings.jpeg_quality
            ),
            scale=self.config.scale or self.settings.scale,
            timeout_ms=self.timeout_ms,
            env_variables=dict(self.config.env_variables),
            input_props=dict(self.config.input_props),
            overwrite=self.config.overwrite,
        )

        start = time.monotonic()
        self.aggregate.set_rendering(RenderingProgress(frames_done=0, total_frames=1))

        def on_download(progress: DownloadProgress) -> None:
            self.aggregate.set_download(progress.asset_id, progress)

        with translate_errors(RenderError, "Rendering failed"):
            await self.token.race(
                self.collaborators.renderer.render_still(
                    request, self.browser, on_download=on_download, token=self.token
                ),
                stage="render",
            )

        self.render_time_ms = _elapsed_ms(start)
        self.aggregate.set_rendering(
            RenderingProgress(frames_done=1, total_frames=1, done_in_ms=self.render_time_ms),
            newline=True,
        )
        self.summary_line = format_summary_line(
            self.composition, self.image_format, self.output, verbose=self.verbose
        )
        self.console.write_line(self.summary_line)
        self.logger.info(
            "Still rendered",
            composition=self.composition.id,
            format=self.image_format.format.value,
            output=str(self.output.absolute_path),
            render_time_ms=self.render_time_ms,
        )

    def summary(self) -> StillRenderSummary:
        assert self.composition and self.image_format and self.output and self.summary_line
        return StillRenderSummary(
            composition_id=self.composition.id,
            composition_reason=self.composition.reason,
            image_format=self.image_format.format,
            format_source=self.image_format.source,
            output=self.output,
            render_time_ms=self.render_time_ms or 0,
            summary_line=self.summary_line,
        )

    def report_failure(self, error: BaseException) -> str:
        line = format_failure(error, verbose=self.verbose)
        self.console.write_line(line)
        return line


def default_collaborators(settings: Settings) -> StillCollaborators:
    """Playwright and uvicorn backed collaborators."""
    from src.core.rendering.browser import PlaywrightBrowserProvider
    from src.core.rendering.bundler import DirectoryBundler
    from src.core.rendering.compositions import PlaywrightCompositionResolver
    from src.core.rendering.renderer import PlaywrightStillRenderer
    from src.core.rendering.server import StaticAssetServer

    return StillCollaborators(
        browser_provider=PlaywrightBrowserProvider(settings),
        bundler=DirectoryBundler(settings.temp_path),
        server=StaticAssetServer(settings.server_host),
        composition_resolver=PlaywrightCompositionResolver(),
        renderer=PlaywrightStillRenderer(),
    )


async def render_still(
    config: JobConfig,
    *,
    settings: Optional[Settings] = None,
    collaborators: Optional[StillCollaborators] = None,
    on_progress: Optional[ProgressObserver] = None,
    token: Optional[CancellationToken] = None,
    console: Optional[ConsoleProgressOutput] = None,
) -> StillRenderSummary:
    """
    Render one still image.

    Every acquired resource is released before this returns or raises.

    Args:
        config: Validated job configuration
        settings: Settings, defaults to the environment's
        collaborators: External collaborators, defaults to Playwright-backed ones
        on_progress: Observer receiving ``{message, value, **snapshot}`` events
        token: Cancellation token
        console: Console sink for progress and the summary line

    Returns:
        Summary of what was rendered and where

    Raises:
        StageError: If a stage failed; the typed cause is on ``.cause``
        CancellationError: If the job was cancelled
    """
    settings = settings or get_settings()
    setup_logging(settings)
    collaborators = collaborators or default_collaborators(settings)
    cleanup = CleanupRegistry()
    flow = StillRenderFlow(
        config,
        collaborators,
        settings,
        cleanup,
        token=token,
        on_progress=on_progress,
        console=console,
    )
    try:
        result = await flow.run()
    finally:
        await cleanup.run_all()

    if not result.ok:
        assert result.error is not None
        flow.report_failure(result.error)
        result.raise_for_error()
    return flow.summary()
