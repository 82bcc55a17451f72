"""Output location resolution and overwrite policy."""

from typing import Any, Optional, Union
from pathlib import Path

from src.config.logging import get_logger
from src.models.schemas import OutputLocation
from .errors import OutputExistsError

logger = get_logger(__name__)

NEW_FILE_GLYPH = "+"
EXISTING_FILE_GLYPH = "○"


def output_glyph(existed_before_write: bool) -> str:
    return EXISTING_FILE_GLYPH if existed_before_write else NEW_FILE_GLYPH


class OutputResolver:
    """Computes the final write location for a still."""

    def __init__(self, base_dir: Optional[Union[str, Path]] = None):
        self.base_dir = Path(base_dir) if base_dir is not None else Path.cwd()
        self.logger: Any = logger.bind(component="output_resolver")

    def resolve(self, relative_path: str, overwrite: bool, source: str = "") -> OutputLocation:
        """Canonicalize, enforce the overwrite policy and create parent directories.

        Raises:
            OutputExistsError: If the file exists and ``overwrite`` is False.
                Nothing is created in that case.
        """
        absolute_path = (self.base_dir / Path(relative_path).expanduser()).resolve()
        existed = absolute_path.exists()
        if existed and not overwrite:
            raise OutputExistsError(
                f"File at {absolute_path} already exists. Enable overwrite to replace it."
            )

        absolute_path.parent.mkdir(parents=True, exist_ok=True)
        self.logger.debug(
            "Resolved output location",
            relative=relative_path,
            absolute=str(absolute_path),
            existed=existed,
        )
        return OutputLocation(
            relative_path=relative_path,
            absolute_path=absolute_path,
            existed_before_write=existed,
            source=source,
        )
