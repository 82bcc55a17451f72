"""
Cancellation
============

Cooperative, checkpoint-based cancellation. A ``CancelController`` is the
abort source owned by the caller; the ``CancellationToken`` it hands out is
threaded into every suspendable operation. Cancellation never interrupts
running code: it is observed at ``checkpoint()`` calls and by ``race()``,
which settles with whichever of the operation or the cancellation finishes
first.
"""

from typing import Any, Awaitable, Callable, List, Optional, TypeVar
import asyncio

from src.config.logging import get_logger
from .errors import CancellationError

logger = get_logger(__name__)

T = TypeVar("T")

CancelListener = Callable[[], None]


class CancellationToken:
    """Read-only view of a cancellation source."""

    def __init__(self, controller: "CancelController"):
        self._controller = controller

    @property
    def reason(self) -> Optional[str]:
        return self._controller.reason

    def is_cancelled(self) -> bool:
        return self._controller.cancelled

    def on_cancel(self, listener: CancelListener) -> Callable[[], None]:
        """Subscribe to cancellation; returns an unsubscribe function.

        A listener subscribed after cancellation is invoked immediately.
        """
        return self._controller.subscribe(listener)

    def checkpoint(self, stage: Optional[str] = None) -> None:
        """Raise ``CancellationError`` if cancellation was requested."""
        if self.is_cancelled():
            raise CancellationError(self._message(), stage=stage)

    async def race(self, operation: Awaitable[T], stage: Optional[str] = None) -> T:
        """Await ``operation`` unless the token is cancelled first.

        When cancellation wins, the operation's task is cancelled and awaited
        so it can release what it partially acquired, then
        ``CancellationError`` is raised. A coroutine that never got to run is
        closed.
        """
        try:
            self.checkpoint(stage)
        except CancellationError:
            if asyncio.iscoroutine(operation):
                operation.close()
            raise
        loop = asyncio.get_running_loop()
        task = asyncio.ensure_future(operation)
        cancelled = loop.create_future()

        def _wake() -> None:
            if not cancelled.done():
                cancelled.set_result(None)

        unsubscribe = self.on_cancel(lambda: loop.call_soon_threadsafe(_wake))
        try:
            await asyncio.wait({task, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            unsubscribe()
            if not cancelled.done():
                cancelled.cancel()

        if task.done():
            return task.result()

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug("Operation failed while being cancelled", stage=stage, error=str(e))
        raise CancellationError(self._message(), stage=stage)

    def _message(self) -> str:
        if self.reason:
            return f"The render was cancelled: {self.reason}"
        return "The render was cancelled"


class CancelController:
    """Abort source handed to the caller; ``token`` goes to the job."""

    def __init__(self) -> None:
        self.cancelled = False
        self.reason: Optional[str] = None
        self._listeners: List[CancelListener] = []
        self.token = CancellationToken(self)

    def subscribe(self, listener: CancelListener) -> Callable[[], None]:
        if self.cancelled:
            listener()
            return lambda: None
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def cancel(self, reason: Optional[str] = None) -> None:
        """Request cancellation. Repeated calls are ignored."""
        if self.cancelled:
            return
        self.cancelled = True
        self.reason = reason
        logger.info("Cancellation requested", reason=reason)
        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            try:
                listener()
            except Exception as e:
                logger.error("Cancel listener failed", error=str(e))


def never_cancelled() -> CancellationToken:
    """Token for callers that do not need cancellation."""
    return CancelController().token


def make_cancel_signal() -> "tuple[CancellationToken, Callable[..., Any]]":
    """Return a token and the function that cancels it."""
    controller = CancelController()
    return controller.token, controller.cancel
