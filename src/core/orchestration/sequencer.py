"""
Stage Sequencer
===============

Runs a job's stages strictly in order. Cancellation is checked before each
stage; a failure or cancellation skips the remaining stages and releases the
cleanup registry before the typed error is returned. A successful run leaves
resources open: releasing them then belongs to the caller's lifecycle.
"""

from typing import Any, Awaitable, Callable, List, NamedTuple, Sequence
import asyncio
import time

from src.config.logging import get_logger
from src.models.schemas import JobResult, JobStatus
from .cancellation import CancellationToken
from .cleanup import CleanupRegistry
from .errors import CancellationError, StageError, StillRenderError

logger = get_logger(__name__)


class Stage(NamedTuple):
    """One named phase of a job."""

    name: str
    action: Callable[[], Awaitable[None]]


class StageSequencer:
    """Sequential stage runner wired to cancellation and cleanup."""

    def __init__(self, cleanup: CleanupRegistry):
        self.cleanup = cleanup
        self.logger: Any = logger.bind(component="stage_sequencer")

    async def run(self, stages: Sequence[Stage], token: CancellationToken) -> JobResult:
        start_time = time.monotonic()
        completed: List[str] = []

        for stage in stages:
            if token.is_cancelled():
                error = CancellationError(stage=stage.name)
                self.logger.info("Job cancelled before stage", stage=stage.name)
                return await self._fail(JobStatus.CANCELLED, error, completed, start_time)

            self.logger.debug("Starting stage", stage=stage.name)
            try:
                await stage.action()
            except CancellationError as e:
                if e.stage is None:
                    e.stage = stage.name
                self.logger.info("Job cancelled during stage", stage=stage.name)
                return await self._fail(JobStatus.CANCELLED, e, completed, start_time)
            except asyncio.CancelledError:
                self.logger.warning("Job task cancelled", stage=stage.name)
                await self.cleanup.run_all()
                raise
            except Exception as e:
                if isinstance(e, StillRenderError) and e.stage is None:
                    e.stage = stage.name
                self.logger.error(
                    "Stage failed", stage=stage.name, error=str(e), error_type=type(e).__name__
                )
                return await self._fail(JobStatus.FAILED, StageError(stage.name, e), completed, start_time)

            completed.append(stage.name)
            self.logger.debug("Finished stage", stage=stage.name)

        return JobResult(
            status=JobStatus.COMPLETED,
            completed_stages=completed,
            processing_time=time.monotonic() - start_time,
        )

    async def _fail(
        self,
        status: JobStatus,
        error: StillRenderError,
        completed: List[str],
        start_time: float,
    ) -> JobResult:
        await self.cleanup.run_all()
        return JobResult(
            status=status,
            completed_stages=completed,
            error=error,
            processing_time=time.monotonic() - start_time,
        )
