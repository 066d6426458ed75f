"""Core types: Outcome, Success, Failure."""

from klaw_promise.types.outcome import Failure, FailureError, Outcome, Success, zip, zip_all

__all__ = [
    'Failure',
    'FailureError',
    'Outcome',
    'Success',
    'zip',
    'zip_all',
]
