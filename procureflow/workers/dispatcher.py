"""Post-commit side-effect dispatch.

Notifications, PDF generation and e-mails run as independent tasks on a
thread pool once an approval has committed. Tasks are never retried or
cancelled; a failure is logged and surfaced on the task's handle as a
SideEffectWarning, without touching sibling tasks.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Iterable, List, Optional

from procureflow.core.errors import SideEffectWarning

logger = logging.getLogger(__name__)


class SideEffectHandle:
    """Observable outcome of one dispatched side effect."""

    def __init__(self, name: str, future: Future):
        self.name = name
        self.future = future

    @property
    def done(self) -> bool:
        return self.future.done()

    @property
    def succeeded(self) -> bool:
        return self.future.done() and self.future.exception() is None

    @property
    def warning(self) -> Optional[SideEffectWarning]:
        """The failure as a warning, or None while running or after success."""
        if not self.future.done():
            return None
        error = self.future.exception()
        return SideEffectWarning(self.name, error) if error is not None else None

    def wait(self, timeout: Optional[float] = None) -> Optional[SideEffectWarning]:
        """Block until the task finishes (or the timeout passes) and return its warning."""
        wait([self.future], timeout=timeout)
        return self.warning

    def __repr__(self) -> str:
        state = "pending" if not self.done else ("ok" if self.succeeded else "failed")
        return f"<SideEffectHandle {self.name} [{state}]>"


class SideEffectDispatcher:
    """
    Runs side effects as fire-and-forget tasks.

    Each dispatch returns a SideEffectHandle; callers that care can inspect
    or wait on it, everyone else can ignore it.
    """

    def __init__(self, max_workers: int = 4, *, executor: Optional[ThreadPoolExecutor] = None):
        """
        Initialize the dispatcher.

        Args:
            max_workers: Thread-pool size
            executor: Existing executor to run tasks on
        """
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="side-effect"
        )

    def dispatch(self, name: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> SideEffectHandle:
        """Submit a task; returns immediately."""
        future = self._executor.submit(self._run, name, fn, args, kwargs)
        return SideEffectHandle(name, future)

    def failed(self, name: str, error: BaseException) -> SideEffectHandle:
        """Create an already-failed handle for work that could not be dispatched."""
        logger.error(f"Side effect '{name}' could not be dispatched: {error}")
        future: Future = Future()
        future.set_exception(error)
        return SideEffectHandle(name, future)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    @staticmethod
    def _run(name: str, fn: Callable[..., Any], args: tuple, kwargs: dict) -> Any:
        try:
            result = fn(*args, **kwargs)
        except Exception:
            logger.exception(f"Side effect '{name}' failed")
            raise
        logger.debug(f"Side effect '{name}' completed")
        return result


def wait_all(handles: Iterable[SideEffectHandle], timeout: Optional[float] = None) -> List[SideEffectWarning]:
    """Wait for handles to finish and collect the warnings of the failed ones."""
    handles = list(handles)
    wait([h.future for h in handles], timeout=timeout)
    return [h.warning for h in handles if h.warning is not None]
