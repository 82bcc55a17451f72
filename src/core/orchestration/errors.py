"""Typed failures of a still render job."""

from typing import Iterator, Optional, Type
from contextlib import contextmanager


class StillRenderError(Exception):
    """Base class for every failure surfaced by the orchestrator."""

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage


class ValidationError(StillRenderError):
    """Raised when a job configuration is malformed."""


class ResourceAcquisitionError(StillRenderError):
    """Raised when the browser or the local server fails to start."""


class BundlingError(StillRenderError):
    """Raised when the project cannot be bundled."""


class CompositionResolutionError(StillRenderError):
    """Raised when no composition matches or user code throws while resolving."""


class OutputExistsError(StillRenderError):
    """Raised when the output file exists and overwriting is disabled."""


class RenderError(StillRenderError):
    """Raised when the engine fails to produce the image."""


class CancellationError(StillRenderError):
    """Raised at a checkpoint once the job has been cancelled."""

    def __init__(self, message: str = "The render was cancelled", stage: Optional[str] = None):
        super().__init__(message, stage)


class StageError(StillRenderError):
    """A stage failure, carrying the originating stage name and its cause."""

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"Stage {stage!r} failed: {cause}", stage)
        self.cause = cause
        self.__cause__ = cause


@contextmanager
def translate_errors(error_cls: Type[StillRenderError], message: str) -> Iterator[None]:
    """Re-raise collaborator failures as ``error_cls``.

    Orchestrator errors, cancellation included, pass through untouched.
    """
    try:
        yield
    except StillRenderError:
        raise
    except Exception as e:
        raise error_cls(f"{message}: {e}") from e
