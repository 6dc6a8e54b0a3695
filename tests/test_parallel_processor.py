"""Tests for the bounded calls used around provider and storage calls."""

import threading
import time

import pytest

from utils.parallel_processor import FuturesTimeoutError, ParallelProcessor


@pytest.fixture
def processor():
    return ParallelProcessor()


class TestCallWithTimeout:

    def test_returns_value(self, processor) -> None:
        assert processor.call_with_timeout(lambda a, b=0: a + b, 1.0, 2, b=3) == 5

    def test_timeout(self, processor) -> None:
        with pytest.raises(FuturesTimeoutError):
            processor.call_with_timeout(time.sleep, 0.05, 0.3)

    def test_errors_propagate(self, processor) -> None:
        def fail():
            raise ValueError('bad input')

        with pytest.raises(ValueError):
            processor.call_with_timeout(fail, 1.0)

    def test_abandoned_calls_do_not_block_later_calls(self, processor) -> None:
        release = threading.Event()
        try:
            for _ in range(20):
                with pytest.raises(FuturesTimeoutError):
                    processor.call_with_timeout(release.wait, 0.01, 5.0)

            start = time.time()
            assert processor.call_with_timeout(lambda: 'ok', 0.5) == 'ok'
            assert time.time() - start < 0.5
        finally:
            release.set()


class TestRunConcurrently:

    def test_results_by_name(self, processor) -> None:
        results = processor.run_concurrently({'count': lambda: 25, 'rows': lambda: ['a', 'b']}, 1.0)
        assert results == {'count': 25, 'rows': ['a', 'b']}

    def test_tasks_overlap(self, processor) -> None:
        start = time.time()
        processor.run_concurrently({'a': lambda: time.sleep(0.3), 'b': lambda: time.sleep(0.3)}, 2.0)
        assert time.time() - start < 0.55

    def test_failure_propagates(self, processor) -> None:
        def fail():
            raise RuntimeError('db down')

        with pytest.raises(RuntimeError):
            processor.run_concurrently({'count': fail, 'rows': lambda: []}, 1.0)

    def test_timeout(self, processor) -> None:
        with pytest.raises(FuturesTimeoutError):
            processor.run_concurrently({'slow': lambda: time.sleep(0.3)}, 0.05)

    def test_timeout_is_one_deadline_for_all_tasks(self, processor) -> None:
        start = time.time()
        with pytest.raises(FuturesTimeoutError):
            processor.run_concurrently({'fast': lambda: time.sleep(0.15),
                                        'slow': lambda: time.sleep(0.35)}, 0.2)
        assert time.time() - start < 0.3

    def test_failure_does_not_wait_for_slow_task(self, processor) -> None:
        def fail():
            raise RuntimeError('db down')

        start = time.time()
        with pytest.raises(RuntimeError):
            processor.run_concurrently({'count': fail, 'rows': lambda: time.sleep(1.0)}, 2.0)
        assert time.time() - start < 0.5
