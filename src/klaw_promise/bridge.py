"""Bridges from callback-style AsyncValues to blocking and async code.

`block_on` parks a thread until the Outcome arrives; `resolve` awaits it from
a coroutine. Both wait on an aiologic.Event, which can be set from any thread
and waited on from threads as well as asyncio or trio event loops.

Neither is part of the non-blocking core. In particular, `block_on` must not
run on the primary thread of the executor the value delivers through, since
the delivery would then be queued behind the blocked call.

Example:
    ```python
    with PortalExecutor() as ex:
        user = block_on(fetch_user(7).run_in_background(ex), timeout=5).unwrap()

    async def handler() -> Response:
        outcome = await resolve(fetch_user(7).run_in_background())
        ...
    ```
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

import aiologic

from klaw_promise.runtime.errors import WaitTimeoutError

if TYPE_CHECKING:
    from klaw_promise.promise import AsyncValue
    from klaw_promise.types.outcome import Outcome

__all__ = ['block_on', 'resolve']


class _Slot[T]:
    __slots__ = ('event', 'outcome')

    def __init__(self) -> None:
        self.event = aiologic.Event()
        self.outcome: Outcome[T, Any] | None = None

    def fill(self, outcome: Outcome[T, Any]) -> None:
        self.outcome = outcome
        self.event.set()


def block_on[T](value: AsyncValue[T], timeout: float | None = None) -> Outcome[T, Any]:
    """Start value and block the calling thread until its Outcome arrives.

    Args:
        value: The AsyncValue to run.
        timeout: Maximum seconds to wait. None waits indefinitely.

    Returns:
        The Outcome delivered by value.

    Raises:
        WaitTimeoutError: If no Outcome arrived within timeout. The chain keeps
            running; its Outcome is discarded when it arrives.
    """
    slot: _Slot[T] = _Slot()
    value.start(slot.fill)
    if not slot.event.wait(timeout):
        raise WaitTimeoutError(timeout, 'block_on')  # type: ignore[arg-type]
    return cast('Outcome[T, Any]', slot.outcome)


async def resolve[T](value: AsyncValue[T]) -> Outcome[T, Any]:
    """Start value and await its Outcome without blocking the event loop."""
    slot: _Slot[T] = _Slot()
    value.start(slot.fill)
    await slot.event
    return cast('Outcome[T, Any]', slot.outcome)
