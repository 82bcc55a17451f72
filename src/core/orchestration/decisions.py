"""
Decisions
=========

Pure, first-match-wins priority merges for the choices a still job makes:
image format, composition and output file name. Each decision records the
label of the tier that won so verbose output can explain it.
"""

from typing import Any, Callable, Iterable, NamedTuple, Optional, Sequence, Tuple, Union
from pathlib import PurePath

from src.models.schemas import (
    CompositionConfig,
    CompositionResolution,
    FormatDecision,
    ImageFormat,
)
from .errors import CompositionResolutionError, RenderError, ValidationError

# Tier labels
EXPLICIT_OVERRIDE = "explicit override"
PROJECT_CONFIG = "project config"
OUTPUT_EXTENSION = "output file extension"
DEFAULT = "default"

EXPLICIT_ID = "explicit id"
INFERRED = "inferred"

EXPLICIT_OUTPUT = "explicit output"
OUTPUT_ARGUMENT = "argument"
DERIVED_OUTPUT = "derived from composition"


class Candidate(NamedTuple):
    """One tier of a priority merge."""

    value: Any
    label: str
    predicate: Optional[Callable[[Any], bool]] = None

    def is_defined(self) -> bool:
        if self.value is None:
            return False
        return self.predicate is None or self.predicate(self.value)


def first_match(candidates: Iterable[Candidate]) -> Tuple[Any, str]:
    """Return the value and label of the first defined candidate."""
    for candidate in candidates:
        if candidate.is_defined():
            return candidate.value, candidate.label
    raise LookupError("No candidate is defined")


def _coerce_format(value: Union[ImageFormat, str, None], origin: str) -> Optional[ImageFormat]:
    if value is None or isinstance(value, ImageFormat):
        return value
    parsed = ImageFormat.parse(value)
    if parsed is None:
        raise ValidationError(f"Unsupported image format {value!r} ({origin})")
    return parsed


def format_from_filename(filename: Optional[str]) -> Optional[ImageFormat]:
    """Infer a format from a file extension; unknown extensions are ignored."""
    if not filename:
        return None
    suffix = PurePath(filename).suffix
    return ImageFormat.parse(suffix) if suffix else None


def determine_image_format(
    explicit: Union[ImageFormat, str, None],
    configured: Union[ImageFormat, str, None],
    output_name: Optional[str],
    fallback: ImageFormat = ImageFormat.PNG,
) -> FormatDecision:
    """explicit override > project config > output extension > fallback."""
    value, label = first_match(
        [
            Candidate(_coerce_format(explicit, EXPLICIT_OVERRIDE), EXPLICIT_OVERRIDE),
            Candidate(_coerce_format(configured, PROJECT_CONFIG), PROJECT_CONFIG),
            Candidate(format_from_filename(output_name), OUTPUT_EXTENSION),
            Candidate(fallback, DEFAULT),
        ]
    )
    return FormatDecision(format=value, source=label)


def requested_composition_id(
    explicit_id: Optional[str], args: Sequence[str]
) -> Tuple[Optional[str], str, Tuple[str, ...]]:
    """Pick the requested composition id and the args left after it.

    Returns ``(None, INFERRED, args)`` when nothing names a composition.
    """
    args = tuple(args)
    if explicit_id:
        return explicit_id, EXPLICIT_ID, args
    if args:
        return args[0], EXPLICIT_ID, args[1:]
    return None, INFERRED, args


def select_composition(
    compositions: Sequence[CompositionConfig],
    explicit_id: Optional[str],
    args: Sequence[str],
    width: Optional[int] = None,
    height: Optional[int] = None,
) -> CompositionResolution:
    """Choose the composition to render and apply dimension overrides."""
    requested, reason, remaining = requested_composition_id(explicit_id, args)
    available = [c.id for c in compositions]

    if requested is not None:
        matches = [c for c in compositions if c.id == requested]
        if not matches:
            raise CompositionResolutionError(
                f"Could not find composition with ID {requested}. "
                f"Available compositions: {', '.join(available) or 'none'}"
            )
        chosen = matches[0]
    elif len(compositions) == 1:
        chosen = compositions[0]
    elif not compositions:
        raise CompositionResolutionError("The project does not register any compositions")
    else:
        raise CompositionResolutionError(
            f"Multiple compositions found, pass a composition ID: {', '.join(available)}"
        )

    overrides = {}
    if width is not None:
        overrides["width"] = width
    if height is not None:
        overrides["height"] = height
    config = chosen.model_copy(update=overrides) if overrides else chosen
    return CompositionResolution(
        id=config.id, config=config, reason=reason, remaining_args=remaining
    )


def requested_output_name(
    explicit_output: Optional[str], remaining_args: Sequence[str]
) -> Optional[str]:
    """The output name the caller asked for, if any."""
    if explicit_output:
        return explicit_output
    return remaining_args[0] if remaining_args else None


def determine_output_name(
    explicit_output: Optional[str],
    remaining_args: Sequence[str],
    composition_id: str,
    image_format: ImageFormat,
) -> Tuple[str, str]:
    """explicit output > first remaining argument > ``<composition>.<ext>``."""
    return first_match(
        [
            Candidate(explicit_output, EXPLICIT_OUTPUT, bool),
            Candidate(remaining_args[0] if remaining_args else None, OUTPUT_ARGUMENT, bool),
            Candidate(f"{composition_id}.{image_format.extension}", DERIVED_OUTPUT),
        ]
    )


def resolve_frame(frame: int, duration_in_frames: int) -> int:
    """Map a possibly negative frame index onto the composition's frames."""
    resolved = duration_in_frames + frame if frame < 0 else frame
    if not 0 <= resolved < duration_in_frames:
        raise RenderError(
            f"Cannot render frame {frame}: the composition has {duration_in_frames} frame(s)"
        )
    return resolved
