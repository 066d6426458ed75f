"""AsyncValue: a cold, composable computation that resolves to an Outcome.

An AsyncValue wraps a task: a function that receives a delivery callback and
arranges for it to be called once with an Outcome, now or later, on any
thread. Combinators build new AsyncValues around existing ones without running
anything; work begins only when `start()` is called on the outermost value.

Example:
    ```python
    profile = (
        firstly(lambda: fetch_user(user_id))
        .flat_map(lambda user: fetch_avatar(user.avatar_url))
        .map(render_profile)
        .run_in_background()
        .on_failure(report_error)
    )
    profile.start(show)
    ```
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from functools import partial
from typing import Any, overload

from klaw_promise._internal.sync import JoinBarrier, OnceFlag
from klaw_promise.runtime._config import get_executor
from klaw_promise.runtime._logging import delivery_context, get_logger
from klaw_promise.runtime.errors import ExecutorClosedError
from klaw_promise.runtime.executors import Executor, Work
from klaw_promise.types.outcome import Failure, Outcome, Success
from klaw_promise.types.outcome import zip as zip_outcomes
from klaw_promise.types.outcome import zip_all as zip_all_outcomes

__all__ = ['AsyncValue', 'Delivery', 'Task', 'firstly', 'zip', 'zip_all']

logger = get_logger(__name__)

type Delivery[T] = Callable[[Outcome[T, Any]], None]
type Task[T] = Callable[[Delivery[T]], None]


class AsyncValue[T]:
    """A deferred computation producing Success[T] or Failure.

    AsyncValues are cold: constructing or combining them has no side effects.
    Each call to `start()` runs the wrapped task once more.

    Attributes:
        _task: Function that receives the delivery callback.
    """

    __slots__ = ('_task',)

    def __init__(self, task: Task[T]) -> None:
        """Create an AsyncValue from a task.

        Args:
            task: Receives a delivery callback and must call it at most once
                with the Outcome, synchronously or from any thread later.
        """
        self._task = task

    @classmethod
    def from_outcome(cls, outcome: Outcome[T, Any]) -> AsyncValue[T]:
        """Create an AsyncValue that delivers `outcome` as soon as it is started."""

        def deliver_outcome(deliver: Delivery[T]) -> None:
            deliver(outcome)

        return cls(deliver_outcome)

    @classmethod
    def success(cls, value: T) -> AsyncValue[T]:
        """Create an AsyncValue that trivially succeeds with `value`."""
        return cls.from_outcome(Success(value))

    @classmethod
    def failure(cls, reason: Any) -> AsyncValue[T]:
        """Create an AsyncValue that trivially fails with `reason`."""
        return cls.from_outcome(Failure(reason))

    @classmethod
    def from_callable(cls, fn: Callable[..., T], *args: Any, **kwargs: Any) -> AsyncValue[T]:
        """Create an AsyncValue that calls `fn(*args, **kwargs)` when started.

        The return value is delivered as Success; an exception raised by `fn`
        is delivered as Failure.
        """

        def call(deliver: Delivery[T]) -> None:
            try:
                value = fn(*args, **kwargs)
            except Exception as exc:
                deliver(Failure(exc))
            else:
                deliver(Success(value))

        return cls(call)

    # --- Transformations ---

    def map[U](self, transform: Callable[[T], U]) -> AsyncValue[U]:
        """Resolve this value, then transform its success value.

        A Failure from this value, or an exception raised by transform, is
        delivered as the Failure of the result.
        """

        def lift(value: T) -> AsyncValue[U]:
            return AsyncValue.success(transform(value))

        return self.flat_map(lift)

    def flat_map[U](self, transform: Callable[[T], AsyncValue[U]]) -> AsyncValue[U]:
        """Resolve this value, pass its success value to transform, then resolve
        the AsyncValue transform returns.

        transform is never invoked when this value fails; that Failure, or an
        exception raised by transform, short-circuits the chain.
        """

        def chain(deliver: Delivery[U]) -> None:
            def resume(outcome: Outcome[T, Any]) -> None:
                if isinstance(outcome, Failure):
                    deliver(outcome)
                    return
                try:
                    following = transform(outcome.value)
                except Exception as exc:
                    deliver(Failure(exc))
                    return
                following.start(deliver)

            self.start(resume)

        return AsyncValue(chain)

    def flat_map_and_join[U](self, transform: Callable[[T], AsyncValue[U]]) -> AsyncValue[tuple[T, U]]:
        """Like flat_map, but deliver both success values as a pair.

        Unlike `zip()`, the second value is only started once the first one has
        resolved, because it is built from the first one's value.
        """

        def pair(first: T) -> AsyncValue[tuple[T, U]]:
            return transform(first).map(lambda second: (first, second))

        return self.flat_map(pair)

    def run_in_background(self, executor: Executor | None = None) -> AsyncValue[T]:
        """Run this value's task on the background executor and redeliver its
        Outcome on the primary executor.

        Args:
            executor: Executor to use. Defaults to the one configured by
                `klaw_promise.runtime.init()`, looked up when started.
        """

        def shift(deliver: Delivery[T]) -> None:
            target = executor if executor is not None else get_executor()

            def redeliver(outcome: Outcome[T, Any]) -> None:
                _schedule(target.run_on_primary, partial(deliver, outcome), deliver)

            _schedule(target.run_on_background, partial(self.start, redeliver), deliver)

        return AsyncValue(shift)

    # --- Side effects ---

    def on_success(self, effect: Callable[[T], object]) -> AsyncValue[T]:
        """Resolve this value and call effect with the success value.

        The Outcome is delivered unchanged. An exception raised by effect is
        logged and does not affect the Outcome.
        """

        def observe(deliver: Delivery[T]) -> None:
            def tap(outcome: Outcome[T, Any]) -> None:
                if isinstance(outcome, Success):
                    _call_hook(effect, outcome.value, 'on_success')
                deliver(outcome)

            self.start(tap)

        return AsyncValue(observe)

    def on_failure(self, effect: Callable[[Any], object]) -> AsyncValue[T]:
        """Resolve this value and call effect with the failure reason.

        The Outcome is delivered unchanged. An exception raised by effect is
        logged and does not affect the Outcome.
        """

        def observe(deliver: Delivery[T]) -> None:
            def tap(outcome: Outcome[T, Any]) -> None:
                if isinstance(outcome, Failure):
                    _call_hook(effect, outcome.reason, 'on_failure')
                deliver(outcome)

            self.start(tap)

        return AsyncValue(observe)

    # --- Execution ---

    def start(self, completion: Delivery[T] | None = None) -> None:
        """Run the task and deliver its Outcome to completion.

        Nothing happens until this is called. Each call runs the task again.
        completion receives at most one Outcome per call; a task delivering a
        second time is ignored with a warning.

        Args:
            completion: Receives the terminal Outcome. May be None when only
                the side effects of the chain matter.
        """
        once = OnceFlag()

        def deliver(outcome: Outcome[T, Any]) -> None:
            if not once.claim():
                logger.warning('async_value.duplicate_delivery', outcome=repr(outcome), task=repr(self._task))
                return
            if completion is not None:
                completion(outcome)

        self._task(deliver)

    def __repr__(self) -> str:
        return f'AsyncValue({self._task!r})'


def _call_hook(effect: Callable[[Any], object], argument: Any, hook: str) -> None:
    with delivery_context(hook=hook):
        try:
            effect(argument)
        except Exception:
            logger.exception('async_value.hook_failed', effect=repr(effect))


def _schedule(submit: Callable[[Work], None], work: Work, deliver: Delivery[Any]) -> None:
    # a closed executor never runs work, so its error becomes the Outcome
    try:
        submit(work)
    except ExecutorClosedError as exc:
        logger.warning('async_value.executor_closed', error=str(exc))
        deliver(Failure(exc))


def firstly[T](block: Callable[[], AsyncValue[T]]) -> AsyncValue[T]:
    """Call block and return the AsyncValue it produces.

    Only a readability aid so that the first step of a chain reads like the
    following ones.
    """
    return block()


# --- Parallel joins ---


@overload
def zip[A, B](a: AsyncValue[A], b: AsyncValue[B], /, *, executor: Executor | None = None) -> AsyncValue[tuple[A, B]]: ...


@overload
def zip[A, B, C](
    a: AsyncValue[A], b: AsyncValue[B], c: AsyncValue[C], /, *, executor: Executor | None = None
) -> AsyncValue[tuple[A, B, C]]: ...


@overload
def zip[A, B, C, D](
    a: AsyncValue[A],
    b: AsyncValue[B],
    c: AsyncValue[C],
    d: AsyncValue[D],
    /,
    *,
    executor: Executor | None = None,
) -> AsyncValue[tuple[A, B, C, D]]: ...


def zip(*values: AsyncValue[Any], executor: Executor | None = None) -> AsyncValue[tuple[Any, ...]]:  # noqa: A001
    """Run AsyncValues simultaneously and deliver their values as a tuple.

    Every value is started before waiting on any of them. Once all have
    delivered, the result is delivered on the primary executor: Success of
    the values in argument order, or the Failure of the first failing argument.

    Args:
        *values: The AsyncValues to join.
        executor: Executor whose primary side receives the result. Defaults to
            the one configured by `klaw_promise.runtime.init()`.
    """
    return _join(values, lambda outcomes: zip_outcomes(*outcomes), executor)


def zip_all[T](values: Iterable[AsyncValue[T]], *, executor: Executor | None = None) -> AsyncValue[list[T]]:
    """Run a sequence of AsyncValues simultaneously and deliver a list of values.

    Values are ordered by input position, not completion order. The first
    Failure in input order wins. An empty sequence delivers Success([]).

    Args:
        values: The AsyncValues to join.
        executor: Executor whose primary side receives the result. Defaults to
            the one configured by `klaw_promise.runtime.init()`.
    """
    return _join(tuple(values), zip_all_outcomes, executor)


def _join[R](
    sources: Sequence[AsyncValue[Any]],
    combine: Callable[[list[Outcome[Any, Any]]], Outcome[R, Any]],
    executor: Executor | None,
) -> AsyncValue[R]:
    def join(deliver: Delivery[R]) -> None:
        target = executor if executor is not None else get_executor()

        def finish(outcomes: list[Outcome[Any, Any]]) -> None:
            _schedule(target.run_on_primary, partial(deliver, combine(outcomes)), deliver)

        barrier: JoinBarrier[Outcome[Any, Any]] = JoinBarrier(len(sources), finish)
        for index, source in enumerate(sources):
            source.start(partial(barrier.arrive, index))
        barrier.arm()

    return AsyncValue(join)
