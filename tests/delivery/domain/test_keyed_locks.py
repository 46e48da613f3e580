import threading
import time

import pytest
from delivery import concurrency
from delivery.concurrency import KeyedLocks, retry_read, with_optimistic_retry
from protean.exceptions import ExpectedVersionError


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(concurrency, "_backoff_delay", lambda attempt: 0)


class TestKeyedLocks:
    def test_same_key_same_lock(self):
        locks = KeyedLocks()
        assert locks.lock_for("order:1") is locks.lock_for("order:1")
        assert locks.lock_for("order:1") is not locks.lock_for("order:2")
        assert len(locks) == 2

    def test_hold_is_reentrant(self):
        locks = KeyedLocks()
        with locks.hold("order:1", "courier:1"):
            with locks.hold("order:1"):
                pass

    def test_hold_serializes_writers_on_one_key(self):
        locks = KeyedLocks()
        inside = []
        overlaps = []

        def writer():
            with locks.hold("order:1"):
                if inside:
                    overlaps.append(True)
                inside.append(True)
                time.sleep(0.005)
                inside.pop()

        threads = [threading.Thread(target=writer) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert overlaps == []

    def test_empty_keys_are_ignored(self):
        locks = KeyedLocks()
        with locks.hold(None, ""):
            pass
        assert len(locks) == 0


class TestOptimisticRetry:
    def test_retries_until_success(self):
        attempts = []

        @with_optimistic_retry(max_retries=3)
        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise ExpectedVersionError("stale")
            return "ok"

        assert flaky() == "ok"
        assert len(attempts) == 3

    def test_gives_up_after_max_retries(self):
        attempts = []

        @with_optimistic_retry(max_retries=2)
        def always_stale():
            attempts.append(1)
            raise ExpectedVersionError("stale")

        with pytest.raises(ExpectedVersionError):
            always_stale()
        assert len(attempts) == 2

    def test_other_errors_are_not_retried(self):
        attempts = []

        @with_optimistic_retry(max_retries=3)
        def broken():
            attempts.append(1)
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            broken()
        assert len(attempts) == 1


class TestRetryRead:
    def test_retries_transient_faults(self):
        calls = []

        def read():
            calls.append(1)
            if len(calls) == 1:
                raise ConnectionError("reset")
            return {"id": 1}

        assert retry_read(read) == {"id": 1}
        assert len(calls) == 2

    def test_raises_after_attempts(self):
        def read():
            raise TimeoutError("slow")

        with pytest.raises(TimeoutError):
            retry_read(read, attempts=2)
