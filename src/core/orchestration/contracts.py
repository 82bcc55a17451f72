"""
Collaborator Contracts
======================

Interfaces the orchestrator consumes from the browser provider, bundler,
asset server, composition resolver and still renderer. Default
implementations live in ``src.core.rendering``.
"""

from typing import Any, Awaitable, Callable, Dict, NamedTuple, Optional, Protocol, Sequence, Union

from src.models.schemas import (
    BrowserDownloadProgress,
    BundlingProgress,
    CompositionResolution,
    CopyingState,
    DownloadProgress,
    StillRenderRequest,
)
from .cancellation import CancellationToken

BrowserDownloadCallback = Callable[[BrowserDownloadProgress], None]
BundleProgressCallback = Callable[[BundlingProgress, CopyingState], None]
AssetDownloadCallback = Callable[[DownloadProgress], None]


class BrowserHandle(Protocol):
    async def close(self, force: bool = False) -> None: ...


class BrowserProvider(Protocol):
    async def ensure(
        self, on_download: BrowserDownloadCallback, token: CancellationToken
    ) -> None: ...

    async def open(self, scale: float, token: CancellationToken) -> BrowserHandle: ...


class BundleResult(NamedTuple):
    """A servable project: a directory or URL plus the entry path within it."""

    servable_location: str
    entry_path: str
    cleanup: Callable[[], Union[None, Awaitable[Any]]]


class Bundler(Protocol):
    async def bundle(
        self,
        entry_point: str,
        public_dir: Optional[str],
        on_progress: BundleProgressCallback,
        token: CancellationToken,
    ) -> BundleResult: ...


class ServerHandle(Protocol):
    url: str

    async def close(self, immediate: bool = False) -> None: ...


class AssetServer(Protocol):
    async def prepare(
        self,
        servable_location: str,
        concurrency: int,
        port: Optional[int],
        token: CancellationToken,
    ) -> ServerHandle: ...


class CompositionResolver(Protocol):
    async def resolve(
        self,
        args: Sequence[str],
        browser: BrowserHandle,
        server: ServerHandle,
        *,
        serve_url: str,
        composition_id: Optional[str],
        width: Optional[int],
        height: Optional[int],
        env_variables: Dict[str, str],
        input_props: Dict[str, Any],
        timeout_ms: int,
        token: CancellationToken,
    ) -> CompositionResolution: ...


class StillRenderer(Protocol):
    async def render_still(
        self,
        request: StillRenderRequest,
        browser: BrowserHandle,
        on_download: AssetDownloadCallback,
        token: CancellationToken,
    ) -> None: ...


class StillCollaborators(NamedTuple):
    """The external collaborators of one still job."""

    browser_provider: BrowserProvider
    bundler: Bundler
    server: AssetServer
    composition_resolver: CompositionResolver
    renderer: StillRenderer
