"""Per-order serialization and optimistic-conflict retry.

Every mutating command runs through ``process_serialized``: the locks for
the keys it touches (the order, plus the courier for the handshake) are held
across the whole load-mutate-commit cycle, so two writers to the same order
never interleave. Locks are always taken in sorted key order, and commands
that can end an order go through ``process_for_order``, which adds the lock
of the courier assigned to it.

Protean's aggregate ``_version`` is the second line of defence: a conflicting
commit from another process raises ``ExpectedVersionError``, and the command
is replayed against fresh state with exponential backoff and jitter.
"""

import functools
import os
import random
import threading
import time
from contextlib import ExitStack, contextmanager

import structlog
from protean.exceptions import ExpectedVersionError
from protean.utils.globals import current_domain

from delivery.order.order import Order

logger = structlog.get_logger(__name__)

MAX_RETRIES = int(os.environ.get("OPT_LOCK_MAX_RETRIES", "3"))
BASE_DELAY_MS = int(os.environ.get("OPT_LOCK_BASE_DELAY_MS", "10"))
MAX_DELAY_MS = int(os.environ.get("OPT_LOCK_MAX_DELAY_MS", "200"))
JITTER_MS = int(os.environ.get("OPT_LOCK_JITTER_MS", "10"))


class KeyedLocks:
    """A registry of re-entrant locks, one per key."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    def lock_for(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, *keys):
        """Acquire the locks for ``keys`` in sorted order and release them on exit."""
        ordered = sorted({str(key) for key in keys if key})
        with ExitStack() as stack:
            for key in ordered:
                stack.enter_context(self.lock_for(key))
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


_locks = KeyedLocks()


def get_locks() -> KeyedLocks:
    return _locks


def order_key(order_id) -> str:
    return f"order:{order_id}"


def courier_key(courier_id) -> str:
    return f"courier:{courier_id}"


def invoice_key(order_id) -> str:
    return f"invoice:{order_id}"


def _backoff_delay(attempt: int) -> float:
    base_delay = BASE_DELAY_MS / 1000.0
    max_delay = MAX_DELAY_MS / 1000.0
    jitter = random.uniform(0, JITTER_MS / 1000.0)
    return min(base_delay * (2**attempt), max_delay) + jitter


def with_optimistic_retry(max_retries: int | None = None, retry_on=(ExpectedVersionError,)):
    """Retry the wrapped call when a concurrent writer won the race.

    Usage:
        @with_optimistic_retry()
        def accept(...):
            ...
    """
    _max = max_retries or MAX_RETRIES

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(1, _max + 1):
                try:
                    return func(*args, **kwargs)
                except retry_on as exc:
                    if attempt == _max:
                        logger.error(
                            "optimistic_conflict_unresolved",
                            function=func.__name__,
                            attempts=_max,
                            error=str(exc),
                        )
                        raise
                    delay = _backoff_delay(attempt)
                    logger.warning(
                        "optimistic_conflict_retry",
                        function=func.__name__,
                        attempt=attempt,
                        max_attempts=_max,
                        delay_s=round(delay, 3),
                    )
                    time.sleep(delay)

        return wrapper

    return decorator


def process_serialized(command, *keys):
    """Process ``command`` synchronously while holding the locks for ``keys``.

    Returns whatever the command handler returns.
    """

    @with_optimistic_retry()
    def _run():
        with _locks.hold(*keys):
            return current_domain.process(command, asynchronous=False)

    return _run()


def _assigned_courier(order_id) -> str | None:
    order = current_domain.repository_for(Order)._dao.query.filter(id=str(order_id)).all().first
    if order is None or not order.courier_ref:
        return None
    return str(order.courier_ref)


def process_for_order(command, order_id, *keys):
    """Process a command on an order while also holding its assigned courier's lock.

    Cancelling or delivering an order releases its courier from an event
    handler that runs inside the same call, so the courier lock is part of
    the initial sorted acquisition.
    The assignment is read again under the locks; if it moved in between,
    the locks are dropped and taken again for the new courier.
    """

    @with_optimistic_retry()
    def _run():
        while True:
            courier_id = _assigned_courier(order_id)
            lock_keys = [order_key(order_id), *keys]
            if courier_id:
                lock_keys.append(courier_key(courier_id))
            with _locks.hold(*lock_keys):
                if _assigned_courier(order_id) != courier_id:
                    continue
                return current_domain.process(command, asynchronous=False)

    return _run()


def retry_read(func, attempts: int = 3, retry_on=(ConnectionError, TimeoutError)):
    """Run an idempotent read with a small bounded retry on transient faults."""
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except retry_on as exc:
            if attempt == attempts:
                raise
            delay = _backoff_delay(attempt)
            logger.warning("read_retry", attempt=attempt, delay_s=round(delay, 3), error=str(exc))
            time.sleep(delay)
