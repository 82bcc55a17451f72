"""
Still Renderer
==============

Playwright-based still capture. Loads the served project, asks it to
render one frame of a composition, and writes the screenshot (or PDF) to
the output location. Assets fetched from other origins are reported as
downloads while the frame renders.
"""

from typing import Any, Dict
import io
from urllib.parse import urlparse

from playwright.async_api import Error as PlaywrightError, Page, Request
from PIL import Image  # type: ignore

from src.config.logging import get_logger
from src.core.orchestration.cancellation import CancellationToken
from src.core.orchestration.contracts import AssetDownloadCallback
from src.core.orchestration.errors import OutputExistsError
from src.models.schemas import DownloadProgress, ImageFormat, StillRenderRequest
from .browser import PlaywrightBrowserHandle, page_init_script

logger = get_logger(__name__)

RENDER_HOOK = "renderFrame"


class StillRenderingError(Exception):
    """Exception raised when a frame cannot be captured."""

    pass


def _origin(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


class DownloadTracker:
    """Reports requests to other origins as asset downloads."""

    def __init__(self, serve_url: str, on_download: AssetDownloadCallback):
        self.origin = _origin(serve_url)
        self.on_download = on_download
        self._ids: Dict[int, str] = {}

    def _tracked(self, request: Request) -> bool:
        url = request.url
        if url.startswith(("data:", "blob:")):
            return False
        return _origin(url) != self.origin

    def on_request(self, request: Request) -> None:
        if not self._tracked(request):
            return
        asset_id = f"asset-{len(self._ids) + 1}"
        self._ids[id(request)] = asset_id
        self.on_download(
            DownloadProgress(asset_id=asset_id, name=_asset_name(request.url), progress=0.0)
        )

    def on_finished(self, request: Request) -> None:
        asset_id = self._ids.pop(id(request), None)
        if asset_id is None:
            return
        self.on_download(
            DownloadProgress(asset_id=asset_id, name=_asset_name(request.url), progress=1.0)
        )

    def attach(self, page: Page) -> None:
        page.on("request", self.on_request)
        page.on("requestfinished", self.on_finished)
        page.on("requestfailed", self.on_finished)


def _asset_name(url: str) -> str:
    path = urlparse(url).path
    return path.rsplit("/", 1)[-1] or url


class PlaywrightStillRenderer:
    """Captures one frame through ``window.renderFrame``."""

    def __init__(self):
        self.logger: Any = logger.bind(component="still_renderer")

    async def render_still(
        self,
        request: StillRenderRequest,
        browser: PlaywrightBrowserHandle,
        on_download: AssetDownloadCallback,
        token: CancellationToken,
    ) -> None:
        """
        Render ``request.frame`` and write it to ``request.output_path``.

        Raises:
            OutputExistsError: If the output appeared and overwriting is off
            StillRenderingError: If the project fails to render the frame
        """
        output_path = request.output_path
        if output_path.exists() and not request.overwrite:
            raise OutputExistsError(
                f"File at {output_path} already exists. Pass overwrite to replace it"
            )

        composition = request.composition
        token.checkpoint("render")
        async with browser.open_page(
            composition.width, composition.height, scale=request.scale
        ) as page:
            page.set_default_timeout(request.timeout_ms)
            DownloadTracker(request.serve_url, on_download).attach(page)
            await page.add_init_script(
                page_init_script(request.env_variables, request.input_props)
            )
            props = {**composition.props, **request.input_props}
            try:
                await page.goto(request.serve_url, wait_until="load")
                token.checkpoint("render")
                await page.wait_for_function(f"typeof window.{RENDER_HOOK} === 'function'")
                await page.evaluate(
                    f"([id, frame, props]) => window.{RENDER_HOOK}(id, frame, props)",
                    [composition.id, request.frame, props],
                )
                await page.wait_for_load_state("networkidle")
                token.checkpoint("render")
                data = await self._capture(page, request)
            except PlaywrightError as e:
                raise StillRenderingError(
                    f"Could not render frame {request.frame} of {composition.id}: {e.message}"
                ) from e

        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(data)
        self.logger.info(
            "Still written",
            composition=composition.id,
            frame=request.frame,
            format=request.image_format.value,
            file_size=len(data),
        )

    async def _capture(self, page: Page, request: StillRenderRequest) -> bytes:
        composition = request.composition
        clip = {"x": 0, "y": 0, "width": composition.width, "height": composition.height}

        if request.image_format == ImageFormat.PDF:
            return await page.pdf(
                width=f"{composition.width}px",
                height=f"{composition.height}px",
                print_background=True,
                scale=1,
            )
        if request.image_format == ImageFormat.JPEG:
            return await page.screenshot(type="jpeg", quality=request.jpeg_quality, clip=clip)

        png_bytes = await page.screenshot(type="png", clip=clip, omit_background=True)
        if request.image_format == ImageFormat.WEBP:
            return self._to_webp(png_bytes, request.jpeg_quality)
        return png_bytes

    def _to_webp(self, png_bytes: bytes, quality: int) -> bytes:
        """Convert a PNG screenshot to WebP using PIL."""
        image = Image.open(io.BytesIO(png_bytes))  # type: ignore[attr-defined]
        output = io.BytesIO()
        image.save(output, format="WEBP", quality=quality)  # type: ignore[attr-defined]
        self.logger.debug(
            "WebP conversion completed", original_size=len(png_bytes), webp_size=output.tell()
        )
        return output.getvalue()
