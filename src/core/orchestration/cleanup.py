"""
Cleanup Registry
================

Ordered disposers for resources a job acquired. Each disposer is registered
at acquisition time and released last-in, first-out, at most once.
"""

from typing import Any, Awaitable, Callable, List, NamedTuple, Optional, Union
import inspect

from src.config.logging import get_logger

logger = get_logger(__name__)

ReleaseFunction = Callable[[], Union[None, Awaitable[Any]]]


class Disposer(NamedTuple):
    """A resource label and the action that releases it."""

    label: str
    release: ReleaseFunction


class CleanupRegistry:
    """LIFO, exactly-once release of registered disposers.

    ``run_all`` drains what is registered; later calls only release disposers
    registered since the previous call, so a disposer never runs twice.
    Failures are logged and never re-raised.
    """

    def __init__(self) -> None:
        self.logger: Any = logger.bind(component="cleanup_registry")
        self._disposers: List[Disposer] = []
        self._released: List[str] = []

    def register(self, release: ReleaseFunction, label: Optional[str] = None) -> None:
        """Register a zero-argument release action (sync or async)."""
        disposer = Disposer(label or getattr(release, "__name__", "resource"), release)
        self._disposers.append(disposer)
        self.logger.debug("Registered cleanup", resource=disposer.label)

    def __call__(self, release: ReleaseFunction) -> None:
        self.register(release)

    @property
    def pending(self) -> List[str]:
        return [d.label for d in self._disposers]

    @property
    def released(self) -> List[str]:
        return list(self._released)

    async def run_all(self) -> None:
        """Release every pending disposer in reverse registration order."""
        while self._disposers:
            disposer = self._disposers.pop()
            try:
                result = disposer.release()
                if inspect.isawaitable(result):
                    await result
                self.logger.debug("Released resource", resource=disposer.label)
            except Exception as e:
                self.logger.error(
                    "Cleanup failed", resource=disposer.label, error=str(e), exc_info=True
                )
            finally:
                self._released.append(disposer.label)
