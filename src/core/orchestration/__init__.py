"""
Orchestration Module
===================

Single-job still render orchestration.

Components:
- cancellation: cooperative cancellation tokens and their controller
- cleanup: LIFO, exactly-once resource release
- progress: aggregate progress state and its mutators
- reporter: console and observer rendering of progress
- decisions: format, composition and output priority merges
- output: output location and overwrite policy
- sequencer: ordered stage execution
- flow: the still job and the ``render_still`` command
"""

from .cancellation import CancelController, CancellationToken, make_cancel_signal
from .cleanup import CleanupRegistry
from .errors import (
    BundlingError,
    CancellationError,
    CompositionResolutionError,
    OutputExistsError,
    RenderError,
    ResourceAcquisitionError,
    StageError,
    StillRenderError,
    ValidationError,
)
from .flow import StillRenderFlow, build_job_config, render_still

__all__ = [
    "BundlingError",
    "CancelController",
    "CancellationError",
    "CancellationToken",
    "CleanupRegistry",
    "CompositionResolutionError",
    "OutputExistsError",
    "RenderError",
    "ResourceAcquisitionError",
    "StageError",
    "StillRenderError",
    "StillRenderFlow",
    "ValidationError",
    "build_job_config",
    "make_cancel_signal",
    "render_still",
]
