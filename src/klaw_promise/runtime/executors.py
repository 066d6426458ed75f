"""Executors: where AsyncValue work runs and where composite results land.

An executor exposes two entry points:

- `run_on_background(work)`: run `work` off the primary thread, with no
  ordering guarantee relative to other background work.
- `run_on_primary(work)`: run `work` on the single serial primary executor,
  FIFO among items scheduled from the primary executor itself.

Implementations:
    - InlineExecutor: runs everything immediately on the calling thread.
    - ManualExecutor: queues work until a test drains it explicitly.
    - PortalExecutor: an anyio blocking portal provides the primary thread,
      background work is offloaded to anyio's worker threads.
"""

from __future__ import annotations

import math
import threading
from collections import deque
from collections.abc import Callable
from types import TracebackType
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import aiologic
import anyio
from anyio.from_thread import start_blocking_portal

from klaw_promise.runtime._logging import delivery_context, get_logger
from klaw_promise.runtime.errors import ExecutorClosedError

if TYPE_CHECKING:
    from concurrent.futures import Future

    from anyio.from_thread import BlockingPortal
    from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

__all__ = [
    'Executor',
    'InlineExecutor',
    'ManualExecutor',
    'PortalExecutor',
    'Work',
]

logger = get_logger(__name__)

type Work = Callable[[], object]


@runtime_checkable
class Executor(Protocol):
    """Protocol for executors consumed by AsyncValue combinators."""

    def run_on_background(self, work: Work) -> None:
        """Schedule work off the primary thread."""
        ...

    def run_on_primary(self, work: Work) -> None:
        """Schedule work on the serial primary executor."""
        ...


class InlineExecutor:
    """Executor that runs work immediately on the calling thread.

    Every combinator becomes synchronous, which makes results deterministic and
    lets `start()` return only after the completion has been delivered.
    """

    __slots__ = ()

    def run_on_background(self, work: Work) -> None:
        work()

    def run_on_primary(self, work: Work) -> None:
        work()

    def __repr__(self) -> str:
        return 'InlineExecutor()'


class ManualExecutor:
    """Executor that queues work until it is drained explicitly.

    Useful for observing interleavings: nothing scheduled through this executor
    runs until `run_background()`, `run_primary()` or `run_until_idle()` is
    called, and each queue drains in FIFO order.

    Example:
        ```python
        ex = ManualExecutor()
        value = AsyncValue.success(1).run_in_background(ex)
        value.start(print)
        ex.pending_background  # 1
        ex.run_until_idle()    # prints Success(value=1)
        ```
    """

    __slots__ = ('_background', '_primary')

    def __init__(self) -> None:
        self._background: deque[Work] = deque()
        self._primary: deque[Work] = deque()

    def run_on_background(self, work: Work) -> None:
        self._background.append(work)

    def run_on_primary(self, work: Work) -> None:
        self._primary.append(work)

    @property
    def pending_background(self) -> int:
        """Number of queued background items."""
        return len(self._background)

    @property
    def pending_primary(self) -> int:
        """Number of queued primary items."""
        return len(self._primary)

    def run_background(self, limit: int | None = None) -> int:
        """Run queued background work, including work queued while draining.

        Args:
            limit: Maximum number of items to run. None drains the queue.

        Returns:
            Number of items run.
        """
        return self._drain(self._background, limit)

    def run_primary(self, limit: int | None = None) -> int:
        """Run queued primary work, including work queued while draining.

        Args:
            limit: Maximum number of items to run. None drains the queue.

        Returns:
            Number of items run.
        """
        return self._drain(self._primary, limit)

    def run_until_idle(self) -> int:
        """Alternate between both queues until neither has work left.

        Returns:
            Total number of items run.
        """
        total = 0
        while self._background or self._primary:
            total += self.run_background()
            total += self.run_primary()
        return total

    @staticmethod
    def _drain(queue: deque[Work], limit: int | None) -> int:
        count = 0
        while queue and (limit is None or count < limit):
            work = queue.popleft()
            work()
            count += 1
        return count


class PortalExecutor:
    """Thread-backed executor built on an anyio blocking portal.

    The portal runs an event loop in a dedicated thread which serves as the
    primary executor: primary work is pushed through a memory object stream and
    run one item at a time in submission order. Background work is offloaded
    with `anyio.to_thread.run_sync`, bounded by a CapacityLimiter.

    A CountdownEvent tracks scheduled work that has not finished, so
    `shutdown(wait=True)` returns only once chains in flight have delivered.

    Example:
        ```python
        with PortalExecutor(concurrency=4) as ex:
            outcome = block_on(fetch_profile().run_in_background(ex))
        ```

    Attributes:
        _concurrency: Maximum number of background threads running at once.
        _portal: The running portal, None before start() and after shutdown().
        _send: Sending side of the work stream, owned by the portal thread.
        _loop_thread: Thread identifier of the portal's event loop.
        _pending: CountdownEvent tracking unfinished scheduled work.
    """

    __slots__ = (
        '_backend',
        '_concurrency',
        '_lock',
        '_loop_thread',
        '_pending',
        '_portal',
        '_portal_cm',
        '_send',
        '_serving',
    )

    def __init__(self, concurrency: int = 4, *, backend: str = 'asyncio') -> None:
        """Create a PortalExecutor; no thread is started until start().

        Args:
            concurrency: Maximum concurrent background workers.
            backend: anyio backend for the portal's event loop.
        """
        self._concurrency = max(1, concurrency)
        self._backend = backend
        self._lock = threading.Lock()
        self._pending: aiologic.CountdownEvent = aiologic.CountdownEvent()
        self._portal: BlockingPortal | None = None
        self._portal_cm: Any = None
        self._send: MemoryObjectSendStream[tuple[bool, Work]] | None = None
        self._serving: Future[None] | None = None
        self._loop_thread: int | None = None

    @property
    def concurrency(self) -> int:
        """Maximum number of concurrent background workers."""
        return self._concurrency

    @property
    def running(self) -> bool:
        """Whether the portal thread is accepting work."""
        return self._portal is not None

    def start(self) -> PortalExecutor:
        """Start the portal thread. Starting a running executor is a no-op."""
        with self._lock:
            if self._portal is not None:
                return self

            self._portal_cm = start_blocking_portal(self._backend)
            portal = self._portal_cm.__enter__()
            send, receive = portal.call(self._open_stream)
            self._loop_thread = portal.call(threading.get_ident)
            self._serving = portal.start_task_soon(self._serve, receive)
            self._send = send
            self._portal = portal
        return self

    def shutdown(self, *, wait: bool = True, timeout: float | None = None) -> None:
        """Stop accepting work and stop the portal thread.

        Args:
            wait: If True, wait for scheduled work (and work it schedules in
                turn) to finish before stopping.
            timeout: Maximum time to wait for pending work.

        Raises:
            RuntimeError: If called from the primary thread itself.
        """
        if self._on_loop_thread():
            msg = 'PortalExecutor.shutdown() cannot be called from its primary thread'
            raise RuntimeError(msg)

        if wait and not self._pending.wait(timeout):
            logger.warning('executor.shutdown_timeout', pending=self._pending.value, timeout=timeout)

        with self._lock:
            portal, send, serving = self._portal, self._send, self._serving
            self._portal = None
            self._send = None
            self._serving = None
        if portal is None or send is None:
            return

        portal.call(send.close)
        if serving is not None:
            serving.result()
        self._portal_cm.__exit__(None, None, None)
        self._portal_cm = None
        self._loop_thread = None

    def run_on_background(self, work: Work) -> None:
        self._submit(True, work)

    def run_on_primary(self, work: Work) -> None:
        self._submit(False, work)

    def __enter__(self) -> PortalExecutor:
        return self.start()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.shutdown(wait=exc_type is None)

    def __repr__(self) -> str:
        state = 'running' if self.running else 'stopped'
        return f'PortalExecutor(concurrency={self._concurrency}, {state})'

    def _on_loop_thread(self) -> bool:
        return self._loop_thread is not None and threading.get_ident() == self._loop_thread

    def _submit(self, background: bool, work: Work) -> None:
        portal, send = self._portal, self._send
        if portal is None or send is None:
            raise ExecutorClosedError(repr(self), 'not started or already shut down')

        self._pending.up()
        try:
            if self._on_loop_thread():
                send.send_nowait((background, work))
            else:
                portal.call(send.send_nowait, (background, work))
        except (anyio.ClosedResourceError, RuntimeError) as exc:
            self._pending.down()
            raise ExecutorClosedError(repr(self), str(exc) or None) from exc

    @staticmethod
    def _open_stream() -> tuple[MemoryObjectSendStream[tuple[bool, Work]], MemoryObjectReceiveStream[tuple[bool, Work]]]:
        return anyio.create_memory_object_stream[tuple[bool, Work]](math.inf)

    async def _serve(self, receive: MemoryObjectReceiveStream[tuple[bool, Work]]) -> None:
        limiter = anyio.CapacityLimiter(self._concurrency)
        async with receive, anyio.create_task_group() as tg:
            async for background, work in receive:
                if background:
                    tg.start_soon(self._offload, work, limiter)
                else:
                    self._run(work, 'primary')

    async def _offload(self, work: Work, limiter: anyio.CapacityLimiter) -> None:
        await anyio.to_thread.run_sync(self._run, work, 'background', limiter=limiter)

    def _run(self, work: Work, lane: str) -> None:
        with delivery_context(lane=lane):
            try:
                work()
            except Exception:
                logger.exception('executor.work_failed', work=repr(work))
            finally:
                self._pending.down()
