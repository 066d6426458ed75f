"""Pytest configuration and shared fixtures for klaw-promise tests."""

import pytest
from helpers import Recorder

from klaw_promise.runtime import InlineExecutor, ManualExecutor, init, shutdown


@pytest.fixture
def inline_runtime():
    """Runtime whose default executor runs everything on the calling thread."""
    config = init(InlineExecutor())
    yield config
    shutdown()


@pytest.fixture
def no_runtime():
    """Runtime that has not been initialized."""
    shutdown()
    yield
    shutdown()


@pytest.fixture
def manual():
    """Executor that only runs work when drained by the test."""
    return ManualExecutor()


@pytest.fixture
def recorder():
    """Fresh Recorder for each test."""
    return Recorder()
