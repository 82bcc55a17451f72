"""
Composition Resolver
====================

Loads the served project in a browser page, asks it for its registered
compositions and selects the one to render.
"""

from typing import Any, Dict, List, Optional, Sequence

from playwright.async_api import Error as PlaywrightError
from pydantic import ValidationError as PydanticValidationError

from src.config.logging import get_logger
from src.core.orchestration.cancellation import CancellationToken
from src.core.orchestration.decisions import select_composition
from src.core.orchestration.errors import CompositionResolutionError
from src.models.schemas import CompositionConfig, CompositionResolution
from .browser import PlaywrightBrowserHandle, page_init_script

logger = get_logger(__name__)

COMPOSITIONS_HOOK = "getStaticCompositions"
PROBE_WIDTH = 1280
PROBE_HEIGHT = 720


def parse_compositions(raw: Any) -> List[CompositionConfig]:
    """Validate the composition list reported by the project."""
    if not isinstance(raw, list):
        raise CompositionResolutionError(
            f"{COMPOSITIONS_HOOK}() must return a list, got {type(raw).__name__}"
        )
    compositions = []
    for item in raw:
        if not isinstance(item, dict):
            raise CompositionResolutionError(f"Invalid composition entry: {item!r}")
        data: Dict[str, Any] = {
            "id": item.get("id"),
            "width": item.get("width"),
            "height": item.get("height"),
            "fps": item.get("fps", 30),
            "duration_in_frames": item.get("durationInFrames", item.get("duration_in_frames", 1)),
            "props": item.get("defaultProps", item.get("props")) or {},
        }
        try:
            compositions.append(CompositionConfig(**data))
        except PydanticValidationError as e:
            raise CompositionResolutionError(
                f"Invalid composition {item.get('id')!r}: {e.errors()[0]['msg']}"
            ) from e
    return compositions


class PlaywrightCompositionResolver:
    """Reads compositions from the project through ``window.getStaticCompositions``."""

    def __init__(self):
        self.logger: Any = logger.bind(component="composition_resolver")

    async def resolve(
        self,
        args: Sequence[str],
        browser: PlaywrightBrowserHandle,
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
        token.checkpoint("composition")
        async with browser.open_page(PROBE_WIDTH, PROBE_HEIGHT) as page:
            page.set_default_timeout(timeout_ms)
            await page.add_init_script(page_init_script(env_variables, input_props))
            try:
                await page.goto(serve_url, wait_until="load")
                token.checkpoint("composition")
                await page.wait_for_function(f"typeof window.{COMPOSITIONS_HOOK} === 'function'")
                raw = await page.evaluate(f"() => window.{COMPOSITIONS_HOOK}()")
            except PlaywrightError as e:
                raise CompositionResolutionError(
                    f"Could not read compositions from {serve_url}: {e.message}"
                ) from e

        compositions = parse_compositions(raw)
        self.logger.debug("Compositions found", ids=[c.id for c in compositions])
        return select_composition(compositions, composition_id, args, width=width, height=height)
