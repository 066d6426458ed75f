"""Outcome type: Success[T] | Failure[E], the terminal result of an AsyncValue."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any, NoReturn, TypeIs, overload

import msgspec

__all__ = ['Failure', 'FailureError', 'Outcome', 'Success', 'zip', 'zip_all']


class FailureError(Exception):
    """Raised by Failure.unwrap() when the reason is not an exception itself."""

    def __init__(self, reason: object) -> None:
        self.reason = reason
        super().__init__(f'Unwrapped a Failure: {reason!r}')


class Success[T](msgspec.Struct, frozen=True):
    """Success variant of Outcome carrying the produced value.

    Examples:
        >>> Success(2).map(lambda x: x + 1)
        Success(value=3)
        >>> Success(2).map(lambda x: x / 0)
        Failure(reason=ZeroDivisionError('division by zero'))
    """

    value: T

    def is_success(self) -> TypeIs[Success[T]]:
        """Return True since this is Success."""
        return True

    def is_failure(self) -> TypeIs[Failure[Any]]:
        """Return False since this is Success."""
        return False

    def unwrap(self) -> T:
        """Return the contained value."""
        return self.value

    def unwrap_or(self, default: T) -> T:  # noqa: ARG002
        """Return the contained value, ignoring the default."""
        return self.value

    def map[U](self, transform: Callable[[T], U]) -> Success[U] | Failure[Exception]:
        """Apply transform to the value.

        An exception raised by transform is captured as the Failure reason
        instead of propagating.

        Args:
            transform: Function applied to the contained value.

        Returns:
            Success of the transformed value, or Failure of the raised exception.
        """
        try:
            mapped = transform(self.value)
        except Exception as exc:
            return Failure(exc)
        return Success(mapped)

    def flat_map[U, E](self, transform: Callable[[T], Outcome[U, E]]) -> Outcome[U, E | Exception]:
        """Apply an Outcome-returning transform to the value.

        The Outcome produced by transform is returned as is. An exception raised
        by transform becomes a Failure.
        """
        try:
            return transform(self.value)
        except Exception as exc:
            return Failure(exc)


class Failure[E = Exception](msgspec.Struct, frozen=True):
    """Failure variant of Outcome carrying the reason.

    The reason is open-ended: usually an exception, but any object is carried
    and propagated unchanged.

    Examples:
        >>> reason = KeyError('user')
        >>> Failure(reason).map(str.upper) == Failure(reason)
        True
    """

    reason: E

    def is_success(self) -> TypeIs[Success[Any]]:
        """Return False since this is Failure."""
        return False

    def is_failure(self) -> TypeIs[Failure[E]]:
        """Return True since this is Failure."""
        return True

    def unwrap(self) -> NoReturn:
        """Raise the reason.

        Raises:
            BaseException: The reason itself, when it is an exception.
            FailureError: Wrapping the reason otherwise.
        """
        if isinstance(self.reason, BaseException):
            raise self.reason
        raise FailureError(self.reason)

    def unwrap_or[T](self, default: T) -> T:
        """Return the default since this is Failure."""
        return default

    def map(self, _transform: Callable[[Any], Any]) -> Failure[E]:
        """Return self unchanged; transform is never invoked."""
        return self

    def flat_map(self, _transform: Callable[[Any], Any]) -> Failure[E]:
        """Return self unchanged; transform is never invoked."""
        return self


type Outcome[T, E = Exception] = Success[T] | Failure[E]


@overload
def zip[A, B, E](a: Outcome[A, E], b: Outcome[B, E], /) -> Outcome[tuple[A, B], E]: ...


@overload
def zip[A, B, C, E](a: Outcome[A, E], b: Outcome[B, E], c: Outcome[C, E], /) -> Outcome[tuple[A, B, C], E]: ...


@overload
def zip[A, B, C, D, E](
    a: Outcome[A, E], b: Outcome[B, E], c: Outcome[C, E], d: Outcome[D, E], /
) -> Outcome[tuple[A, B, C, D], E]: ...


def zip(*outcomes: Outcome[Any, Any]) -> Outcome[tuple[Any, ...], Any]:  # noqa: A001
    """Combine outcomes into a Success of a tuple of their values.

    Scans left to right and returns the first Failure found.

    Examples:
        >>> zip(Success(1), Success('a'))
        Success(value=(1, 'a'))
        >>> zip(Success(1), Failure('b'), Failure('c'))
        Failure(reason='b')
    """
    values: list[Any] = []
    for outcome in outcomes:
        if isinstance(outcome, Failure):
            return outcome
        values.append(outcome.value)
    return Success(tuple(values))


def zip_all[T, E](outcomes: Iterable[Outcome[T, E]]) -> Outcome[list[T], E]:
    """Collect an iterable of outcomes into an Outcome of a list.

    Short-circuits on the first Failure in iteration order. An empty iterable
    yields Success([]).

    Examples:
        >>> zip_all([Success(1), Success(2)])
        Success(value=[1, 2])
        >>> zip_all([])
        Success(value=[])
    """
    values: list[T] = []
    for outcome in outcomes:
        if isinstance(outcome, Failure):
            return outcome
        values.append(outcome.value)
    return Success(values)
