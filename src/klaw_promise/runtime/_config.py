"""Runtime configuration: ExecutorKind enum, RuntimeConfig, and initialization."""

from __future__ import annotations

import logging
import os
import pathlib
from dataclasses import dataclass, field
from enum import Enum

import psutil

from klaw_promise.runtime._logging import configure_logging
from klaw_promise.runtime.executors import Executor, InlineExecutor, PortalExecutor

__all__ = [
    'ExecutorKind',
    'RuntimeConfig',
    'get_config',
    'get_executor',
    'init',
    'shutdown',
]


class ExecutorKind(Enum):
    """Executor used when combinators are not given one explicitly."""

    INLINE = 'inline'
    PORTAL = 'portal'
    CUSTOM = 'custom'


@dataclass(frozen=True)
class RuntimeConfig:
    """Configuration for the klaw-promise runtime.

    Attributes:
        kind: Which executor implementation backs the runtime.
        concurrency: Maximum concurrent background workers.
        log_level: Logging level (e.g., "DEBUG", "INFO"). None = leave logging alone.
        executor: The executor used by `run_in_background()`, `zip()` and
            `zip_all()` when no executor is passed to them.
    """

    kind: ExecutorKind = ExecutorKind.INLINE
    concurrency: int = 4
    log_level: str | None = None
    executor: Executor = field(default_factory=InlineExecutor)


# Global runtime configuration (set by init())
_config: RuntimeConfig | None = None
# PortalExecutor created by init(), shut down on re-init or shutdown()
_owned: PortalExecutor | None = None


def _detect_kind() -> ExecutorKind:
    """Detect the executor kind from the KLAW_PROMISE_EXECUTOR environment variable."""
    env_kind = os.environ.get('KLAW_PROMISE_EXECUTOR', '').lower()
    if env_kind == ExecutorKind.PORTAL.value:
        return ExecutorKind.PORTAL
    if env_kind and env_kind != ExecutorKind.INLINE.value:
        logging.warning("Unknown KLAW_PROMISE_EXECUTOR value '%s', defaulting to inline", env_kind)
    return ExecutorKind.INLINE


def _detect_concurrency() -> int:
    """Detect background concurrency from local system resources.

    Uses physical CPU cores, capped by container CPU limits, clamped to 1..256.
    """
    try:
        cores = psutil.cpu_count(logical=False)
        if cores is None:
            cores = psutil.cpu_count(logical=True) or 4

        container_limit = _detect_container_cpu_limit()
        if container_limit is not None:
            cores = min(cores, container_limit)

        return max(1, min(256, cores))
    except Exception:
        return 4


def _detect_container_cpu_limit() -> int | None:
    """Detect CPU limit in containerized environments."""
    # cgroups v2
    try:
        with pathlib.Path('/sys/fs/cgroup/cpu.max').open() as f:
            content = f.read().strip()
            if content != 'max':
                quota, period = content.split()
                if quota != 'max':
                    return max(1, int(int(quota) / int(period)))
    except (FileNotFoundError, ValueError, PermissionError):
        pass

    # cgroups v1
    try:
        with pathlib.Path('/sys/fs/cgroup/cpu/cpu.cfs_quota_us').open() as quota_f:
            quota_v1 = int(quota_f.read().strip())
        with pathlib.Path('/sys/fs/cgroup/cpu/cpu.cfs_period_us').open() as period_f:
            period_v1 = int(period_f.read().strip())
        if quota_v1 > 0:
            return max(1, quota_v1 // period_v1)
    except (FileNotFoundError, ValueError, PermissionError):
        pass

    return None


def _release_owned() -> None:
    global _owned  # noqa: PLW0603

    if _owned is not None:
        _owned.shutdown(wait=True)
        _owned = None


def init(
    executor: Executor | ExecutorKind | str | None = None,
    concurrency: int | None = None,
    log_level: str | None = None,
) -> RuntimeConfig:
    """Initialize the klaw-promise runtime.

    Args:
        executor: An Executor instance to inject, or the kind of executor to
            create ("inline", "portal"). Read from KLAW_PROMISE_EXECUTOR if None.
        concurrency: Max concurrent background workers. Auto-detected if None.
        log_level: Logging level ("DEBUG", "INFO", etc.). None = leave logging alone.

    Returns:
        The RuntimeConfig that was set.

    Example:
        ```python
        from klaw_promise.runtime import init

        # Deterministic, single-threaded
        init('inline')

        # Background work on worker threads, results on the portal thread
        init('portal', concurrency=8, log_level='INFO')

        # Inject your own executor
        init(ManualExecutor())
        ```
    """
    global _config, _owned  # noqa: PLW0603

    if concurrency is None:
        resolved_concurrency = _detect_concurrency()
    else:
        resolved_concurrency = max(1, min(256, concurrency))

    if log_level is not None:
        configure_logging(log_level)

    if executor is None:
        kind = _detect_kind()
    elif isinstance(executor, str):
        kind = ExecutorKind(executor.lower())
    elif isinstance(executor, ExecutorKind):
        kind = executor
    else:
        kind = ExecutorKind.CUSTOM

    if kind is ExecutorKind.CUSTOM and not isinstance(executor, Executor):
        msg = 'ExecutorKind.CUSTOM requires an Executor instance'
        raise ValueError(msg)

    # the previous executor stays installed until the new kind is validated
    resolved: Executor
    if isinstance(executor, Executor):
        if executor is not _owned:
            _release_owned()
        resolved = executor
    elif kind is ExecutorKind.PORTAL:
        _release_owned()
        _owned = PortalExecutor(resolved_concurrency).start()
        resolved = _owned
    else:
        _release_owned()
        resolved = InlineExecutor()

    _config = RuntimeConfig(
        kind=kind,
        concurrency=resolved_concurrency,
        log_level=log_level,
        executor=resolved,
    )
    return _config


def get_config() -> RuntimeConfig:
    """Get the current runtime configuration.

    Raises:
        RuntimeError: If init() has not been called.
    """
    if _config is None:
        msg = 'Runtime not initialized. Call klaw_promise.runtime.init() first or pass executor= explicitly.'
        raise RuntimeError(msg)
    return _config


def get_executor() -> Executor:
    """Get the executor configured by init().

    Raises:
        RuntimeError: If init() has not been called.
    """
    return get_config().executor


def shutdown() -> None:
    """Shut down an executor created by init() and forget the configuration."""
    global _config  # noqa: PLW0603

    _release_owned()
    _config = None
