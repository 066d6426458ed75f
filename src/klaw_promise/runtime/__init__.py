"""
klaw_promise.runtime: executors, configuration, logging and errors.

AsyncValue never picks a thread on its own. Work is dispatched through an
Executor, either passed explicitly to a combinator or configured once via
`init()`.
"""

from klaw_promise.runtime._config import ExecutorKind, RuntimeConfig, get_config, get_executor, init, shutdown
from klaw_promise.runtime._logging import (
    add_log_hook,
    clear_log_hooks,
    configure_logging,
    delivery_context,
    get_logger,
    remove_log_hook,
)
from klaw_promise.runtime.errors import ExecutorClosed, ExecutorClosedError, WaitTimeout, WaitTimeoutError
from klaw_promise.runtime.executors import Executor, InlineExecutor, ManualExecutor, PortalExecutor

__all__ = [
    # Executors
    'Executor',
    'ExecutorClosed',
    'ExecutorClosedError',
    # Config
    'ExecutorKind',
    'InlineExecutor',
    'ManualExecutor',
    'PortalExecutor',
    'RuntimeConfig',
    # Errors
    'WaitTimeout',
    'WaitTimeoutError',
    # Logging
    'add_log_hook',
    'clear_log_hooks',
    'configure_logging',
    'delivery_context',
    'get_config',
    'get_executor',
    'get_logger',
    'init',
    'remove_log_hook',
    'shutdown',
]
