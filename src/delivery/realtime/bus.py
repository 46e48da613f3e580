"""In-process realtime fan-out to connected clients.

Each connection registers an ``emit(event, message)`` callable. Broadcasts
take a snapshot of the connection map under the lock and emit outside it,
so a client registering or leaving mid-broadcast never breaks iteration.
A failing emitter is logged and skipped; it never affects the caller.
"""

import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable

import structlog

logger = structlog.get_logger(__name__)

MAX_ACTIVITY = 1000

Emitter = Callable[[str, dict], Any]


@dataclass
class Connection:
    connection_id: str
    subscriber_id: str | None
    emit: Emitter
    role: str = "customer"
    connected_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_event_at: datetime | None = None
    events_sent: int = 0


class FanoutBus:
    def __init__(self, max_activity: int = MAX_ACTIVITY):
        self._lock = threading.Lock()
        self._connections: dict[str, Connection] = {}
        self._activity: deque = deque(maxlen=max_activity)
        self._events_published = 0
        self._delivery_failures = 0

    # -------------------------------------------------------------------
    # Connections
    # -------------------------------------------------------------------
    def register_client(self, connection_id: str, subscriber_id: str | None, emit: Emitter, role: str = "customer"):
        connection = Connection(
            connection_id=connection_id,
            subscriber_id=str(subscriber_id) if subscriber_id else None,
            emit=emit,
            role=role or "customer",
        )
        with self._lock:
            self._connections[connection_id] = connection
        logger.info("realtime_client_registered", connection_id=connection_id, subscriber_id=subscriber_id, role=role)
        return connection

    def unregister_client(self, connection_id: str) -> bool:
        with self._lock:
            removed = self._connections.pop(connection_id, None)
        if removed is not None:
            logger.info("realtime_client_unregistered", connection_id=connection_id)
        return removed is not None

    def _snapshot(self, predicate=None) -> list[Connection]:
        with self._lock:
            connections = list(self._connections.values())
        if predicate is None:
            return connections
        return [connection for connection in connections if predicate(connection)]

    # -------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------
    def _deliver(self, connections: list[Connection], event: str, payload: dict) -> int:
        now = datetime.now(UTC)
        message = {"data": payload, "timestamp": now.isoformat()}
        delivered = 0
        for connection in connections:
            try:
                connection.emit(event, message)
            except Exception as exc:
                with self._lock:
                    self._delivery_failures += 1
                logger.error(
                    "realtime_emit_failed",
                    connection_id=connection.connection_id,
                    realtime_event=event,
                    error=str(exc),
                )
                continue
            connection.last_event_at = now
            connection.events_sent += 1
            delivered += 1

        with self._lock:
            self._events_published += 1
            self._activity.append(
                {
                    "event": event,
                    "data": payload,
                    "timestamp": now.isoformat(),
                    "recipients": delivered,
                }
            )
        return delivered

    def broadcast(self, event: str, payload: dict, exclude=None) -> int:
        """Send to every connection, optionally skipping every connection of one subscriber."""
        excluded = str(exclude) if exclude else None
        return self._deliver(
            self._snapshot(lambda c: excluded is None or c.subscriber_id != excluded),
            event,
            payload,
        )

    def broadcast_to_user(self, subscriber_id, event: str, payload: dict) -> int:
        if not subscriber_id:
            return 0
        target = str(subscriber_id)
        return self._deliver(self._snapshot(lambda c: c.subscriber_id == target), event, payload)

    def broadcast_to_admins(self, event: str, payload: dict) -> int:
        return self._deliver(self._snapshot(lambda c: c.role == "admin"), event, payload)

    def broadcast_to_client(self, connection_id: str, event: str, payload: dict) -> int:
        return self._deliver(self._snapshot(lambda c: c.connection_id == connection_id), event, payload)

    # -------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------
    def recent_activity(self, limit: int = 50) -> list[dict]:
        with self._lock:
            activity = list(self._activity)
        return activity[-limit:] if limit else []

    def client_count(self) -> int:
        with self._lock:
            return len(self._connections)

    def clients_info(self) -> list[dict]:
        return [
            {
                "connection_id": c.connection_id,
                "subscriber_id": c.subscriber_id,
                "role": c.role,
                "connected_at": c.connected_at.isoformat(),
                "last_event_at": c.last_event_at.isoformat() if c.last_event_at else None,
                "events_sent": c.events_sent,
            }
            for c in self._snapshot()
        ]

    def metrics(self) -> dict:
        with self._lock:
            return {
                "connected_clients": len(self._connections),
                "events_published": self._events_published,
                "delivery_failures": self._delivery_failures,
                "activity_buffered": len(self._activity),
            }


_bus: FanoutBus | None = None
_bus_lock = threading.Lock()


def get_bus() -> FanoutBus:
    global _bus
    with _bus_lock:
        if _bus is None:
            _bus = FanoutBus()
        return _bus


def reset_bus() -> None:
    """Drop all connections and history (useful for tests)."""
    global _bus
    with _bus_lock:
        _bus = None
