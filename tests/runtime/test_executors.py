"""Tests for InlineExecutor, ManualExecutor and PortalExecutor."""

from __future__ import annotations

import threading
import time
from typing import Any

import pytest

from klaw_promise import AsyncValue, Success, block_on, zip, zip_all
from klaw_promise.runtime import (
    Executor,
    ExecutorClosedError,
    InlineExecutor,
    ManualExecutor,
    PortalExecutor,
    add_log_hook,
    clear_log_hooks,
    configure_logging,
    get_logger,
)


class TestExecutorProtocol:
    """All executors satisfy the Executor protocol."""

    @pytest.mark.parametrize('executor', [InlineExecutor(), ManualExecutor(), PortalExecutor()])
    def test_is_executor(self, executor: Any) -> None:
        assert isinstance(executor, Executor)

    def test_plain_object_is_not_executor(self) -> None:
        assert not isinstance(object(), Executor)


class TestInlineExecutor:
    """Tests for InlineExecutor."""

    def test_runs_immediately(self) -> None:
        calls: list[str] = []
        ex = InlineExecutor()
        ex.run_on_background(lambda: calls.append('bg'))
        ex.run_on_primary(lambda: calls.append('primary'))
        assert calls == ['bg', 'primary']

    def test_runs_on_calling_thread(self) -> None:
        threads: list[int] = []
        InlineExecutor().run_on_background(lambda: threads.append(threading.get_ident()))
        assert threads == [threading.get_ident()]


class TestManualExecutor:
    """Tests for ManualExecutor."""

    def test_queues_until_drained(self) -> None:
        calls: list[str] = []
        ex = ManualExecutor()
        ex.run_on_background(lambda: calls.append('bg'))
        ex.run_on_primary(lambda: calls.append('primary'))
        assert calls == []
        assert (ex.pending_background, ex.pending_primary) == (1, 1)

        assert ex.run_primary() == 1
        assert calls == ['primary']
        assert ex.run_background() == 1
        assert calls == ['primary', 'bg']

    def test_fifo_order(self) -> None:
        calls: list[int] = []
        ex = ManualExecutor()
        for n in range(5):
            ex.run_on_primary(lambda n=n: calls.append(n))
        ex.run_primary()
        assert calls == [0, 1, 2, 3, 4]

    def test_limit(self) -> None:
        calls: list[int] = []
        ex = ManualExecutor()
        for n in range(3):
            ex.run_on_background(lambda n=n: calls.append(n))
        assert ex.run_background(limit=2) == 2
        assert calls == [0, 1]
        assert ex.pending_background == 1

    def test_work_queued_while_draining_runs(self) -> None:
        calls: list[str] = []
        ex = ManualExecutor()
        ex.run_on_primary(lambda: ex.run_on_primary(lambda: calls.append('nested')))
        assert ex.run_primary() == 2
        assert calls == ['nested']

    def test_run_until_idle_alternates(self) -> None:
        calls: list[str] = []
        ex = ManualExecutor()
        ex.run_on_background(lambda: ex.run_on_primary(lambda: calls.append('delivered')))
        assert ex.run_until_idle() == 2
        assert calls == ['delivered']
        assert ex.run_until_idle() == 0


class TestPortalExecutor:
    """Tests for PortalExecutor."""

    def test_not_started_rejects_work(self) -> None:
        ex = PortalExecutor()
        with pytest.raises(ExecutorClosedError):
            ex.run_on_primary(lambda: None)

    def test_shutdown_rejects_work(self) -> None:
        ex = PortalExecutor().start()
        ex.shutdown()
        assert not ex.running
        with pytest.raises(ExecutorClosedError) as info:
            ex.run_on_background(lambda: None)
        assert info.value.to_struct().executor == repr(ex)

    def test_start_is_idempotent(self) -> None:
        ex = PortalExecutor()
        try:
            assert ex.start() is ex
            assert ex.start() is ex
            assert ex.running
        finally:
            ex.shutdown()

    def test_shutdown_twice_is_noop(self) -> None:
        ex = PortalExecutor().start()
        ex.shutdown()
        ex.shutdown()

    def test_concurrency_clamped(self) -> None:
        assert PortalExecutor(concurrency=0).concurrency == 1

    def test_primary_runs_on_single_thread_in_order(self) -> None:
        calls: list[int] = []
        threads: set[int] = set()

        def record(n: int) -> None:
            calls.append(n)
            threads.add(threading.get_ident())

        with PortalExecutor() as ex:
            for n in range(20):
                ex.run_on_primary(lambda n=n: record(n))
        assert calls == list(range(20))
        assert len(threads) == 1
        assert threading.get_ident() not in threads

    def test_background_runs_off_primary_thread(self) -> None:
        seen: dict[str, int] = {}
        done = threading.Event()

        def background() -> None:
            seen['background'] = threading.get_ident()
            ex.run_on_primary(primary)

        def primary() -> None:
            seen['primary'] = threading.get_ident()
            done.set()

        with PortalExecutor() as ex:
            ex.run_on_background(background)
            assert done.wait(5)
        assert seen['background'] != seen['primary']

    def test_background_runs_concurrently(self) -> None:
        barrier = threading.Barrier(3, timeout=5)
        passed: list[bool] = []

        def meet() -> None:
            barrier.wait()
            passed.append(True)

        with PortalExecutor(concurrency=3) as ex:
            for _ in range(3):
                ex.run_on_background(meet)
        assert passed == [True, True, True]

    def test_primary_work_may_schedule_primary_work(self) -> None:
        calls: list[str] = []
        with PortalExecutor() as ex:
            ex.run_on_primary(lambda: ex.run_on_primary(lambda: calls.append('nested')))
        assert calls == ['nested']

    def test_shutdown_waits_for_chains_in_flight(self) -> None:
        calls: list[str] = []

        def slow() -> str:
            time.sleep(0.05)
            return 'slow'

        with PortalExecutor() as ex:
            AsyncValue.from_callable(slow).run_in_background(ex).start(lambda o: calls.append(o.unwrap()))
        assert calls == ['slow']

    def test_failing_work_is_logged(self) -> None:
        events: list[dict[str, Any]] = []
        configure_logging(level='DEBUG')
        add_log_hook(events.append)
        try:

            def explode() -> None:
                msg = 'work failed'
                raise RuntimeError(msg)

            with PortalExecutor() as ex:
                ex.run_on_background(explode)
                ex.run_on_primary(explode)
        finally:
            clear_log_hooks()
        lanes = sorted(e['lane'] for e in events if e.get('event') == 'executor.work_failed')
        assert lanes == ['background', 'primary']

    def test_shutdown_from_primary_thread_rejected(self) -> None:
        errors: list[BaseException] = []
        with PortalExecutor() as ex:

            def stop() -> None:
                try:
                    ex.shutdown()
                except RuntimeError as exc:
                    errors.append(exc)

            ex.run_on_primary(stop)
        assert len(errors) == 1


class TestBackgroundRoundTrip:
    """run_in_background() with a real thread-backed executor."""

    def test_value_produced_on_background_delivered_on_primary(self) -> None:
        threads: dict[str, int] = {}

        def produce() -> int:
            threads['task'] = threading.get_ident()
            return 99

        with PortalExecutor() as ex:
            delivered: list[Any] = []
            done = threading.Event()

            def complete(outcome: Any) -> None:
                threads['delivery'] = threading.get_ident()
                delivered.append(outcome)
                done.set()

            AsyncValue.from_callable(produce).run_in_background(ex).start(complete)
            assert done.wait(5)

        assert delivered == [Success(99)]
        assert threads['task'] != threads['delivery']

    def test_failure_preserved(self) -> None:
        exc = ValueError('bad')
        with PortalExecutor() as ex:
            outcome = block_on(AsyncValue.failure(exc).run_in_background(ex), timeout=5)
        assert outcome.is_failure()
        assert outcome.reason is exc

    def test_zip_of_background_values(self) -> None:
        def slow(value: str, delay: float) -> str:
            time.sleep(delay)
            return value

        with PortalExecutor(concurrency=4) as ex:
            a = AsyncValue.from_callable(slow, 'a', 0.05).run_in_background(ex)
            b = AsyncValue.from_callable(slow, 'b', 0.0).run_in_background(ex)
            outcome = block_on(zip(a, b, executor=ex), timeout=5)
        assert outcome == Success(('a', 'b'))

    def test_zip_all_delivers_on_primary_thread(self) -> None:
        with PortalExecutor(concurrency=4) as ex:
            primary = block_on(AsyncValue.success(None).run_in_background(ex).map(lambda _: threading.get_ident()))
            values = [AsyncValue.from_callable(lambda n=n: n).run_in_background(ex) for n in range(10)]
            outcome = block_on(
                zip_all(values, executor=ex).map(lambda vs: (vs, threading.get_ident())),
                timeout=5,
            )
        items, delivery_thread = outcome.unwrap()
        assert items == list(range(10))
        assert delivery_thread == primary.unwrap()


class TestClosedExecutor:
    """Scheduling on a shut-down executor delivers a Failure instead of hanging."""

    @pytest.fixture
    def closed(self) -> PortalExecutor:
        ex = PortalExecutor().start()
        ex.shutdown()
        return ex

    def test_run_in_background_fails(self, closed: PortalExecutor) -> None:
        outcome = block_on(AsyncValue.success(1).run_in_background(closed), timeout=5)
        assert outcome.is_failure()
        assert isinstance(outcome.reason, ExecutorClosedError)

    def test_flat_map_into_closed_executor_fails(self, closed: PortalExecutor) -> None:
        chain = (
            AsyncValue.success(1)
            .run_in_background(InlineExecutor())
            .flat_map(lambda v: AsyncValue.success(v).run_in_background(closed))
        )
        outcome = block_on(chain, timeout=5)
        assert isinstance(outcome.reason, ExecutorClosedError)
        assert outcome.reason.to_struct().executor == repr(closed)

    def test_zip_on_closed_executor_fails(self, closed: PortalExecutor) -> None:
        outcome = block_on(zip(AsyncValue.success(1), AsyncValue.success(2), executor=closed), timeout=5)
        assert isinstance(outcome.reason, ExecutorClosedError)

    def test_zip_all_on_closed_executor_fails(self, closed: PortalExecutor) -> None:
        outcome = block_on(zip_all([], executor=closed), timeout=5)
        assert isinstance(outcome.reason, ExecutorClosedError)

    def test_redelivery_after_shutdown_timeout_fails(self) -> None:
        release = threading.Event()
        done = threading.Event()
        delivered: list[Any] = []

        def slow() -> str:
            release.wait(5)
            return 'late'

        def complete(outcome: Any) -> None:
            delivered.append(outcome)
            done.set()

        ex = PortalExecutor().start()
        AsyncValue.from_callable(slow).run_in_background(ex).start(complete)
        timer = threading.Timer(0.5, release.set)
        timer.start()
        try:
            ex.shutdown(timeout=0.05)
        finally:
            timer.cancel()
            release.set()

        assert done.wait(5)
        assert len(delivered) == 1
        assert isinstance(delivered[0].reason, ExecutorClosedError)

    def test_closed_executor_is_logged(self, closed: PortalExecutor) -> None:
        events: list[dict[str, Any]] = []
        configure_logging(level='DEBUG')
        add_log_hook(events.append)
        try:
            block_on(AsyncValue.success(1).run_in_background(closed), timeout=5)
        finally:
            clear_log_hooks()
        assert [e['event'] for e in events if e.get('event') == 'async_value.executor_closed'] == [
            'async_value.executor_closed'
        ]


class TestLaneContext:
    """Events logged by scheduled work carry the lane it ran on."""

    def test_work_logs_carry_lane(self) -> None:
        events: list[dict[str, Any]] = []
        configure_logging(level='DEBUG')
        add_log_hook(events.append)
        logger = get_logger('work')
        try:
            with PortalExecutor() as ex:
                ex.run_on_background(lambda: logger.info('from.background'))
                ex.run_on_primary(lambda: logger.info('from.primary'))
            logger.info('from.caller')
        finally:
            clear_log_hooks()
        lanes = {e['event']: e.get('lane') for e in events if e['event'].startswith('from.')}
        assert lanes == {'from.background': 'background', 'from.primary': 'primary', 'from.caller': None}
