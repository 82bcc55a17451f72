"""
Test Mocks
===========

Fake collaborators for still render jobs. Every fake appends to a shared
call log so tests can assert ordering across acquisition and cleanup.
"""

import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from src.core.orchestration.cancellation import CancellationToken
from src.core.orchestration.contracts import BundleResult, StillCollaborators
from src.core.orchestration.decisions import select_composition
from src.models.schemas import (
    BrowserDownloadProgress,
    BundlingProgress,
    CompositionConfig,
    CompositionResolution,
    CopyingState,
    DownloadProgress,
    StillRenderRequest,
)


class FakeBrowserHandle:
    """Browser handle recording how often it was closed."""

    def __init__(self, calls: List[str]):
        self.calls = calls
        self.close_calls = 0

    @property
    def closed(self) -> bool:
        return self.close_calls > 0

    async def close(self, force: bool = False) -> None:
        self.close_calls += 1
        self.calls.append("browser.close")


class FakeBrowserProvider:
    def __init__(self, calls: List[str], download: bool = False, open_error: Optional[Exception] = None):
        self.calls = calls
        self.download = download
        self.open_error = open_error
        self.handle: Optional[FakeBrowserHandle] = None

    async def ensure(self, on_download, token: CancellationToken) -> None:
        self.calls.append("browser.ensure")
        if self.download:
            on_download(BrowserDownloadProgress(progress=0.5, total_bytes=150_000_000))
            on_download(
                BrowserDownloadProgress(progress=1.0, total_bytes=150_000_000, done_in_ms=12)
            )

    async def open(self, scale: float, token: CancellationToken) -> FakeBrowserHandle:
        self.calls.append("browser.open")
        if self.open_error is not None:
            raise self.open_error
        self.handle = FakeBrowserHandle(self.calls)
        return self.handle


class FakeBundler:
    """Bundler reporting two progress steps; optionally blocks until cancelled."""

    def __init__(self, calls: List[str], location: Path, block: bool = False):
        self.calls = calls
        self.location = location
        self.block = block
        self.started = asyncio.Event()
        self.cleanup_calls = 0

    async def bundle(self, entry_point: str, public_dir, on_progress, token: CancellationToken) -> BundleResult:
        self.calls.append("bundle")
        self.started.set()
        on_progress(BundlingProgress(progress=0.5), CopyingState())
        if self.block:
            await asyncio.Event().wait()
        on_progress(BundlingProgress(progress=1.0, done_in_ms=3), CopyingState())
        return BundleResult(str(self.location), "index.html", self.cleanup)

    def cleanup(self) -> None:
        self.cleanup_calls += 1
        self.calls.append("bundle.cleanup")


class FakeServerHandle:
    def __init__(self, calls: List[str], url: str):
        self.calls = calls
        self.url = url
        self.close_calls = 0

    async def close(self, immediate: bool = False) -> None:
        self.close_calls += 1
        self.calls.append("server.close")


class FakeServer:
    def __init__(self, calls: List[str], url: str = "http://127.0.0.1:3000"):
        self.calls = calls
        self.url = url
        self.handle: Optional[FakeServerHandle] = None
        self.prepared: List[str] = []

    async def prepare(self, servable_location: str, concurrency: int, port, token) -> FakeServerHandle:
        self.calls.append("serve")
        self.prepared.append(servable_location)
        self.handle = FakeServerHandle(self.calls, self.url)
        return self.handle


class FakeCompositionResolver:
    def __init__(self, calls: List[str], compositions: Sequence[CompositionConfig]):
        self.calls = calls
        self.compositions = list(compositions)
        self.serve_urls: List[str] = []

    async def resolve(
        self,
        args: Sequence[str],
        browser: Any,
        server: Any,
        *,
        serve_url: str,
        composition_id: Optional[str],
        width: Optional[int],
        height: Optional[int],
        env_variables: Dict[str, str],
        input_props: Dict[str, Any],
        timeout_ms: int,
        token: CancellationToken,
    ) -> CompositionResolution:
        self.calls.append("composition")
        self.serve_urls.append(serve_url)
        return select_composition(self.compositions, composition_id, args, width=width, height=height)


class FakeRenderer:
    """Renderer writing fixed bytes to the requested output path."""

    def __init__(self, calls: List[str], data: bytes = b"still-bytes", error: Optional[Exception] = None):
        self.calls = calls
        self.data = data
        self.error = error
        self.requests: List[StillRenderRequest] = []

    async def render_still(self, request: StillRenderRequest, browser: Any, on_download, token) -> None:
        self.calls.append("render")
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        on_download(DownloadProgress(asset_id="asset-1", name="font.woff2", progress=0.0))
        on_download(DownloadProgress(asset_id="asset-1", name="font.woff2", progress=1.0))
        request.output_path.write_bytes(self.data)


class FakeCollaborators:
    """All fakes of one job, sharing a call log."""

    def __init__(self, compositions: Sequence[CompositionConfig], bundle_dir: Path):
        self.calls: List[str] = []
        self.browser_provider = FakeBrowserProvider(self.calls)
        self.bundler = FakeBundler(self.calls, bundle_dir)
        self.server = FakeServer(self.calls)
        self.composition_resolver = FakeCompositionResolver(self.calls, compositions)
        self.renderer = FakeRenderer(self.calls)

    def collaborators(self) -> StillCollaborators:
        return StillCollaborators(
            browser_provider=self.browser_provider,
            bundler=self.bundler,
            server=self.server,
            composition_resolver=self.composition_resolver,
            renderer=self.renderer,
        )
