"""Keep-alive stream connections and the registry that owns them.

Each open ``/mcp/stream`` response owns a :class:`StreamConnection`, opened
when the event generator starts.  It is released either by the client going
away (the generator's ``finally``) or by server shutdown
(``StreamRegistry.close_all``).
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import time
from typing import AsyncIterator, Awaitable, Callable

logger = logging.getLogger("gateway.streams")

DEFAULT_HEARTBEAT_INTERVAL = 15.0


class StreamConnection:
    def __init__(self, connection_id: str, topic: str | None = None) -> None:
        self.id = connection_id
        self.topic = topic
        self.opened_at = time.time()
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        self._closed.set()

    async def wait_closed(self, timeout: float) -> bool:
        """Wait up to *timeout* seconds for the connection to close."""
        try:
            await asyncio.wait_for(self._closed.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True


class StreamRegistry:
    """All live stream connections, released together on shutdown."""

    def __init__(self) -> None:
        self._connections: dict[str, StreamConnection] = {}
        self._counter = itertools.count(1)

    def open(self, topic: str | None = None) -> StreamConnection:
        connection = StreamConnection(f"stream-{next(self._counter)}", topic)
        self._connections[connection.id] = connection
        logger.info("Stream %s opened (topic=%s)", connection.id, topic)
        return connection

    def get(self, connection_id: str) -> StreamConnection | None:
        return self._connections.get(connection_id)

    def release(self, connection: StreamConnection) -> None:
        connection.close()
        if self._connections.pop(connection.id, None) is not None:
            logger.info("Stream %s released", connection.id)

    def close_all(self) -> int:
        connections = list(self._connections.values())
        for connection in connections:
            self.release(connection)
        return len(connections)

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection: object) -> bool:
        return isinstance(connection, StreamConnection) and connection.id in self._connections


async def heartbeat_events(
    registry: StreamRegistry,
    topic: str | None = None,
    interval: float = DEFAULT_HEARTBEAT_INTERVAL,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
) -> AsyncIterator[dict]:
    """Yield a ``connected`` event, then a ``ping`` every *interval* seconds.

    The connection is registered on first iteration, so a response that is
    never started leaves nothing behind.  Stops when the connection is
    closed or *is_disconnected* reports that the client went away; the
    connection is always released on exit.
    """
    connection = registry.open(topic)
    try:
        yield {
            "event": "connected",
            "data": json.dumps({"connection_id": connection.id, "topic": connection.topic}),
        }
        while not connection.closed:
            if is_disconnected is not None and await is_disconnected():
                break
            if await connection.wait_closed(interval):
                break
            yield {"event": "ping", "data": json.dumps({"ts": int(time.time() * 1000)})}
    finally:
        registry.release(connection)
