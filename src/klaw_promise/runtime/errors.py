"""Runtime error types: dual struct+exception for Outcome and raise-based code."""

from __future__ import annotations

import msgspec

__all__ = [
    'ExecutorClosed',
    'ExecutorClosedError',
    'WaitTimeout',
    'WaitTimeoutError',
]


# --- Executor Errors ---


class ExecutorClosed(msgspec.Struct, frozen=True, gc=False):
    """Executor no longer accepts work - struct variant for Failure[ExecutorClosed]."""

    executor: str
    reason: str | None = None

    def to_exception(self) -> ExecutorClosedError:
        """Convert to exception for raise-based code."""
        return ExecutorClosedError(self.executor, self.reason)


class ExecutorClosedError(Exception):
    """Executor no longer accepts work - exception variant."""

    def __init__(self, executor: str, reason: str | None = None) -> None:
        self.executor = executor
        self.reason = reason
        msg = f'{executor} is closed'
        if reason:
            msg = f'{msg}: {reason}'
        super().__init__(msg)

    def to_struct(self) -> ExecutorClosed:
        """Convert to struct for Outcome-based code."""
        return ExecutorClosed(self.executor, self.reason)


# --- Wait Errors ---


class WaitTimeout(msgspec.Struct, frozen=True, gc=False):
    """Waiting for an outcome timed out - struct variant for Failure[WaitTimeout]."""

    seconds: float
    operation: str | None = None

    def to_exception(self) -> WaitTimeoutError:
        """Convert to exception for raise-based code."""
        return WaitTimeoutError(self.seconds, self.operation)


class WaitTimeoutError(Exception):
    """Waiting for an outcome timed out - exception variant."""

    def __init__(self, seconds: float, operation: str | None = None) -> None:
        self.seconds = seconds
        self.operation = operation
        msg = f'No outcome after {seconds}s'
        if operation:
            msg = f'{operation}: {msg}'
        super().__init__(msg)

    def to_struct(self) -> WaitTimeout:
        """Convert to struct for Outcome-based code."""
        return WaitTimeout(self.seconds, self.operation)
