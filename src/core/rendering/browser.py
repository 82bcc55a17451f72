"""
Browser Provider
================

Playwright-based browser provisioning. Ensures a Chromium build is
installed (reporting download progress), launches it, and hands out pages
in short-lived contexts.
"""

from typing import Any, AsyncGenerator, Dict, List, Optional
import asyncio
import json
import re
import sys
import time
from contextlib import asynccontextmanager
from pathlib import Path

from playwright.async_api import async_playwright, Browser, BrowserContext, Page, Playwright

from src.config.logging import get_logger
from src.config.settings import Settings
from src.core.orchestration.cancellation import CancellationToken
from src.core.orchestration.contracts import BrowserDownloadCallback
from src.models.schemas import BrowserDownloadProgress

logger = get_logger(__name__)

_PERCENT_PATTERN = re.compile(r"(\d{1,3})%")
_SIZE_PATTERN = re.compile(r"of\s+([\d.]+)\s*(MiB|MB|Mb)", re.IGNORECASE)

CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-features=VizDisplayCompositor",
]


class BrowserError(Exception):
    """Exception raised when the browser cannot be installed or launched."""

    pass


def page_init_script(env_variables: Dict[str, str], input_props: Dict[str, Any]) -> str:
    """Script exposing env variables and input props to project code."""
    return (
        "window.process = Object.assign(window.process || {}, "
        f"{{env: {json.dumps(env_variables)}}});\n"
        f"window.__INPUT_PROPS__ = {json.dumps(input_props)};"
    )


class PlaywrightBrowserHandle:
    """A launched Chromium owned by one job."""

    def __init__(self, playwright: Playwright, browser: Browser, scale: float = 1.0):
        self._playwright = playwright
        self.browser = browser
        self.scale = scale
        self.closed = False
        self._contexts: List[BrowserContext] = []
        self.logger: Any = logger.bind(component="browser_handle")

    @asynccontextmanager
    async def open_page(
        self, width: int, height: int, scale: Optional[float] = None
    ) -> AsyncGenerator[Page, None]:
        """Open a page in a fresh context sized to the composition."""
        if self.closed:
            raise BrowserError("Browser is already closed")
        context = await self.browser.new_context(
            viewport={"width": width, "height": height},
            device_scale_factor=scale or self.scale,
        )
        self._contexts.append(context)
        try:
            page = await context.new_page()
            yield page
        finally:
            self._contexts.remove(context)
            await context.close()

    async def close(self, force: bool = False) -> None:
        """Close the browser; a forced close ignores errors from a dying process."""
        if self.closed:
            return
        self.closed = True
        try:
            for context in list(self._contexts):
                await context.close()
            await self.browser.close()
        except Exception as e:
            if not force:
                raise
            self.logger.warning("Ignoring error while force-closing browser", error=str(e))
        finally:
            await self._playwright.stop()
        self.logger.info("Browser closed")


class PlaywrightBrowserProvider:
    """Installs and launches Chromium through Playwright."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.logger: Any = logger.bind(component="browser_provider")

    async def ensure(self, on_download: BrowserDownloadCallback, token: CancellationToken) -> None:
        """Make sure a Chromium executable is available, downloading it if needed."""
        if self.settings.browser_executable:
            if not Path(self.settings.browser_executable).exists():
                raise BrowserError(
                    f"Browser executable {self.settings.browser_executable} does not exist"
                )
            return

        if await self._is_installed():
            self.logger.debug("Chromium already installed")
            return

        await self._install(on_download, token)

    async def _is_installed(self) -> bool:
        async with async_playwright() as playwright:
            return Path(playwright.chromium.executable_path).exists()

    async def _install(self, on_download: BrowserDownloadCallback, token: CancellationToken) -> None:
        start = time.monotonic()
        self.logger.info("Downloading Chromium")
        on_download(BrowserDownloadProgress(progress=0.0))

        process = await asyncio.create_subprocess_exec(
            sys.executable,
            "-m",
            "playwright",
            "install",
            "chromium",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        total_bytes: Optional[int] = None
        last_percent = -1
        try:
            assert process.stdout is not None
            async for raw_line in process.stdout:
                token.checkpoint("browser")
                line = raw_line.decode("utf-8", errors="replace")
                size = _SIZE_PATTERN.search(line)
                if size:
                    total_bytes = int(float(size.group(1)) * 1024 * 1024)
                percent = _PERCENT_PATTERN.search(line)
                if percent and int(percent.group(1)) != last_percent:
                    last_percent = min(int(percent.group(1)), 100)
                    on_download(
                        BrowserDownloadProgress(progress=last_percent / 100, total_bytes=total_bytes)
                    )
            return_code = await process.wait()
        except BaseException:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        if return_code != 0:
            raise BrowserError(f"Chromium download failed with exit code {return_code}")

        on_download(
            BrowserDownloadProgress(
                progress=1.0,
                total_bytes=total_bytes,
                done_in_ms=int((time.monotonic() - start) * 1000),
            )
        )
        self.logger.info("Chromium downloaded")

    async def open(self, scale: float, token: CancellationToken) -> PlaywrightBrowserHandle:
        """Launch Chromium; a partially started Playwright is stopped on failure."""
        token.checkpoint("browser")
        try:
            playwright = await async_playwright().start()
        except Exception as e:
            self.logger.error("Failed to start Playwright", error=str(e))
            raise BrowserError(f"Browser launch failed: {e}")

        try:
            browser = await playwright.chromium.launch(
                headless=self.settings.playwright_headless,
                executable_path=self.settings.browser_executable,
                args=CHROMIUM_ARGS + [f"--force-device-scale-factor={scale}"],
                timeout=self.settings.browser_timeout_ms,
            )
        except Exception as e:
            await playwright.stop()
            self.logger.error("Failed to launch browser", error=str(e))
            raise BrowserError(f"Browser launch failed: {e}") from e
        except BaseException:
            await playwright.stop()
            raise

        self.logger.info("Browser launched", headless=self.settings.playwright_headless, scale=scale)
        return PlaywrightBrowserHandle(playwright, browser, scale)
