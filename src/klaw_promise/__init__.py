"""klaw-promise: cold, composable asynchronous values for Python 3.13+.

Flat imports (preferred):
    from klaw_promise import AsyncValue, Success, Failure, firstly, zip, zip_all

Submodule imports (for organization):
    from klaw_promise.types import Outcome, Success, Failure
    from klaw_promise.runtime import init, PortalExecutor, ManualExecutor
"""

# Types
from klaw_promise.types import Failure, FailureError, Outcome, Success
from klaw_promise.types import zip as zip_outcomes
from klaw_promise.types import zip_all as zip_all_outcomes

# AsyncValue and combinators
from klaw_promise.promise import AsyncValue, firstly, zip, zip_all

# Bridges
from klaw_promise.bridge import block_on, resolve

# Decorators
from klaw_promise.decorators import deferred

# Runtime
from klaw_promise.runtime import Executor, InlineExecutor, ManualExecutor, PortalExecutor, init

__all__ = [
    'AsyncValue',
    'Executor',
    'Failure',
    'FailureError',
    'InlineExecutor',
    'ManualExecutor',
    'Outcome',
    'PortalExecutor',
    'Success',
    'block_on',
    'deferred',
    'firstly',
    'init',
    'resolve',
    'zip',
    'zip_all',
    'zip_all_outcomes',
    'zip_outcomes',
]
