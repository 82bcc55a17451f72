"""
Unit Tests for the Browser Provider
===================================

Tests for Chromium launch, page contexts and closing, with Playwright mocked.
"""

from unittest.mock import AsyncMock, MagicMock, Mock, patch

import pytest

from src.core.orchestration.cancellation import never_cancelled
from src.core.orchestration.errors import CancellationError
from src.core.rendering.browser import (
    BrowserError,
    PlaywrightBrowserHandle,
    PlaywrightBrowserProvider,
    page_init_script,
)
from tests.utils.helpers import cancelled_token


class TestPageInitScript:
    def test_exposes_env_and_props(self):
        """Test exposes env and props."""
        script = page_init_script({"API": "x"}, {"title": "Hi"})
        assert '{env: {"API": "x"}}' in script
        assert 'window.__INPUT_PROPS__ = {"title": "Hi"};' in script


class TestPlaywrightBrowserProvider:
    """Test launching Chromium."""

    @pytest.fixture
    def mock_settings(self):
        settings = Mock()
        settings.playwright_headless = True
        settings.browser_executable = None
        settings.browser_timeout_ms = 30000
        return settings

    @pytest.fixture
    def provider(self, mock_settings):
        return PlaywrightBrowserProvider(mock_settings)

    @pytest.mark.asyncio
    async def test_open_launches_chromium(self, provider):
        """Test open launches chromium."""
        mock_browser = AsyncMock()
        mock_playwright = AsyncMock()
        mock_playwright.chromium.launch = AsyncMock(return_value=mock_browser)

        with patch("src.core.rendering.browser.async_playwright") as mock_async_playwright:
            mock_async_playwright.return_value.start = AsyncMock(return_value=mock_playwright)

            handle = await provider.open(scale=2.0, token=never_cancelled())

        assert isinstance(handle, PlaywrightBrowserHandle)
        assert handle.browser is mock_browser
        assert handle.scale == 2.0
        launch_kwargs = mock_playwright.chromium.launch.call_args.kwargs
        assert launch_kwargs["headless"] is True
        assert "--force-device-scale-factor=2.0" in launch_kwargs["args"]
        assert launch_kwargs["timeout"] == 30000

    @pytest.mark.asyncio
    async def test_launch_failure_stops_playwright(self, provider):
        """Test launch failure stops playwright."""
        mock_playwright = AsyncMock()
        mock_playwright.chromium.launch = AsyncMock(side_effect=Exception("no chromium"))

        with patch("src.core.rendering.browser.async_playwright") as mock_async_playwright:
            mock_async_playwright.return_value.start = AsyncMock(return_value=mock_playwright)

            with pytest.raises(BrowserError, match="Browser launch failed: no chromium"):
                await provider.open(scale=1.0, token=never_cancelled())

        mock_playwright.stop.assert_called_once()

    @pytest.mark.asyncio
    async def test_open_when_cancelled_starts_nothing(self, provider):
        """Test open when cancelled starts nothing."""
        with patch("src.core.rendering.browser.async_playwright") as mock_async_playwright:
            with pytest.raises(CancellationError):
                await provider.open(scale=1.0, token=cancelled_token())

        mock_async_playwright.assert_not_called()

    @pytest.mark.asyncio
    async def test_ensure_with_missing_custom_executable(self, mock_settings, tmp_path):
        """Test ensure with missing custom executable."""
        mock_settings.browser_executable = str(tmp_path / "chrome")
        provider = PlaywrightBrowserProvider(mock_settings)

        with pytest.raises(BrowserError, match="does not exist"):
            await provider.ensure(on_download=Mock(), token=never_cancelled())

    @pytest.mark.asyncio
    async def test_ensure_skips_download_when_installed(self, provider):
        """Test ensure skips download when installed."""
        on_download = Mock()
        with patch.object(provider, "_is_installed", AsyncMock(return_value=True)), patch.object(
            provider, "_install", AsyncMock()
        ) as mock_install:
            await provider.ensure(on_download=on_download, token=never_cancelled())

        mock_install.assert_not_called()
        on_download.assert_not_called()

    @pytest.mark.asyncio
    async def test_ensure_downloads_when_missing(self, provider):
        """Test ensure downloads when missing."""
        with patch.object(provider, "_is_installed", AsyncMock(return_value=False)), patch.object(
            provider, "_install", AsyncMock()
        ) as mock_install:
            await provider.ensure(on_download=Mock(), token=never_cancelled())

        mock_install.assert_called_once()


class TestPlaywrightBrowserHandle:
    """Test page contexts and closing."""

    @pytest.fixture
    def handle(self):
        browser = AsyncMock()
        context = AsyncMock()
        context.new_page = AsyncMock(return_value=MagicMock())
        browser.new_context = AsyncMock(return_value=context)
        return PlaywrightBrowserHandle(AsyncMock(), browser, scale=2.0)

    @pytest.mark.asyncio
    async def test_open_page_sizes_context_and_closes_it(self, handle):
        """Test open page sizes context and closes it."""
        async with handle.open_page(320, 180) as page:
            assert page is not None

        handle.browser.new_context.assert_called_once_with(
            viewport={"width": 320, "height": 180}, device_scale_factor=2.0
        )
        context = handle.browser.new_context.return_value
        context.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, handle):
        """Test close is idempotent."""
        await handle.close()
        await handle.close()

        handle.browser.close.assert_called_once()
        handle._playwright.stop.assert_called_once()

    @pytest.mark.asyncio
    async def test_forced_close_ignores_errors(self, handle):
        """Test forced close ignores errors."""
        handle.browser.close = AsyncMock(side_effect=Exception("already dead"))

        await handle.close(force=True)

        assert handle.closed
        handle._playwright.stop.assert_called_once()

    @pytest.mark.asyncio
    async def test_close_raises_without_force(self, handle):
        """Test close raises without force."""
        handle.browser.close = AsyncMock(side_effect=Exception("already dead"))

        with pytest.raises(Exception, match="already dead"):
            await handle.close()

        handle._playwright.stop.assert_called_once()

    @pytest.mark.asyncio
    async def test_open_page_after_close(self, handle):
        """Test open page after close."""
        await handle.close()
        with pytest.raises(BrowserError, match="already closed"):
            async with handle.open_page(10, 10):
                pass
