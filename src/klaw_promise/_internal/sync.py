"""aiologic-backed primitives for per-run delivery state.

Both primitives are created fresh for every run of an AsyncValue and are
dropped once they have fired, so no mutable state outlives a single run.
aiologic locks work from plain threads as well as from event loops, which
matters because deliveries may arrive on any executor thread.
"""

from __future__ import annotations

from collections.abc import Callable

import aiologic

__all__ = ['JoinBarrier', 'OnceFlag']


class OnceFlag:
    """A flag that can be claimed exactly once.

    Examples:
        >>> flag = OnceFlag()
        >>> flag.claim()
        True
        >>> flag.claim()
        False
    """

    __slots__ = ('_claimed', '_lock')

    def __init__(self) -> None:
        self._lock = aiologic.Lock()
        self._claimed = False

    def claim(self) -> bool:
        """Claim the flag.

        Returns:
            True for the first caller, False for every later one.
        """
        if self._claimed:
            return False

        with self._lock:
            if self._claimed:
                return False
            self._claimed = True
            return True

    def is_claimed(self) -> bool:
        """Check if the flag has been claimed."""
        return self._claimed


class JoinBarrier[T]:
    """Wait-group over a fixed number of positional result slots.

    Each branch fills its slot through `arrive()`. Once the barrier is armed and
    every slot is filled, `on_complete` is called exactly once with the slots in
    index order, on the thread that made the final transition. The lock makes
    every slot write visible to that thread.

    A barrier of size zero completes as soon as it is armed.

    Attributes:
        _slots: Result per branch index.
        _filled: Whether each slot has been written.
        _remaining: Number of slots still empty.
        _armed: Set once every branch has been started.
        _fired: Set once on_complete has been scheduled.
    """

    __slots__ = ('_armed', '_filled', '_fired', '_lock', '_on_complete', '_remaining', '_slots')

    def __init__(self, size: int, on_complete: Callable[[list[T]], None]) -> None:
        if size < 0:
            msg = f'JoinBarrier size must be non-negative, got {size}'
            raise ValueError(msg)
        self._lock = aiologic.Lock()
        self._on_complete = on_complete
        self._slots: list[T | None] = [None] * size
        self._filled = [False] * size
        self._remaining = size
        self._armed = False
        self._fired = False

    @property
    def size(self) -> int:
        """Number of branches joined by this barrier."""
        return len(self._slots)

    @property
    def remaining(self) -> int:
        """Number of branches that have not arrived yet."""
        return self._remaining

    def arrive(self, index: int, item: T) -> bool:
        """Store a branch result in its slot.

        Args:
            index: Slot position of the branch.
            item: The branch result.

        Returns:
            True if the slot was empty, False if it had already been filled
            (the item is discarded).
        """
        with self._lock:
            if self._filled[index]:
                return False
            self._filled[index] = True
            self._slots[index] = item
            self._remaining -= 1
            fire = self._take_completion()
        if fire:
            self._on_complete(list(self._slots))  # type: ignore[arg-type]
        return True

    def arm(self) -> None:
        """Allow completion; call after every branch has been started."""
        with self._lock:
            self._armed = True
            fire = self._take_completion()
        if fire:
            self._on_complete(list(self._slots))  # type: ignore[arg-type]

    def _take_completion(self) -> bool:
        # caller holds the lock
        if self._armed and self._remaining == 0 and not self._fired:
            self._fired = True
            return True
        return False
