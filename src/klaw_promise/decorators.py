"""@deferred decorator: turn a plain function into an AsyncValue factory."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, overload

import wrapt

from klaw_promise.promise import AsyncValue
from klaw_promise.runtime.executors import Executor

__all__ = ['deferred']


@overload
def deferred[**P, T](func: Callable[P, T]) -> Callable[P, AsyncValue[T]]: ...


@overload
def deferred[**P, T](
    func: None = None,
    *,
    background: bool = False,
    executor: Executor | None = None,
) -> Callable[[Callable[P, T]], Callable[P, AsyncValue[T]]]: ...


def deferred[**P, T](
    func: Callable[P, T] | None = None,
    *,
    background: bool = False,
    executor: Executor | None = None,
) -> Any:
    """Decorator that makes a function return a cold AsyncValue.

    Calling the decorated function runs nothing; the original function is
    called each time the returned AsyncValue is started. Its return value is
    delivered as Success and any exception it raises as Failure.

    Can be used with or without arguments:
        @deferred
        def parse(raw: str) -> Config: ...

        @deferred(background=True)
        def load(path: str) -> bytes: ...

    Args:
        func: The function to wrap (when used without parentheses).
        background: Also apply `run_in_background()` to the returned value.
        executor: Executor for background=True. Defaults to the configured one.

    Example:
        ```python
        @deferred
        def divide(a: int, b: int) -> float:
            return a / b

        divide(10, 0).start(print)
        # Failure(reason=ZeroDivisionError('division by zero'))
        ```
    """

    @wrapt.decorator
    def wrapper(
        wrapped: Callable[P, T],
        instance: Any,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> AsyncValue[T]:
        value = AsyncValue.from_callable(wrapped, *args, **kwargs)
        if background:
            return value.run_in_background(executor)
        return value

    if func is not None:
        return wrapper(func)
    return wrapper
