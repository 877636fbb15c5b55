from __future__ import annotations

import logging
from collections import defaultdict

import anyio
from fastapi import WebSocket

logger = logging.getLogger(__name__)


def topic_for(tenant_id: str, class_group_name: str) -> str:
    return f"{tenant_id}:{class_group_name}"


class NotificationHub:
    """Realtime fan-out of timetable events to members of a class group.

    Topics are ``"<tenant>:<class group>"``; a socket that fails a send is
    dropped from its topic.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, set[WebSocket]] = defaultdict(set)
        self._guard: anyio.Lock | None = None

    @property
    def _lock(self) -> anyio.Lock:
        if self._guard is None:
            self._guard = anyio.Lock()
        return self._guard

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))

    def topics(self) -> list[str]:
        return sorted(topic for topic, sockets in self._subscribers.items() if sockets)

    async def connect(self, topic: str, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._subscribers[topic].add(websocket)
        logger.debug("Timetable subscriber joined %s (%d open)", topic, self.subscriber_count(topic))

    async def disconnect(self, topic: str, websocket: WebSocket) -> None:
        async with self._lock:
            self._forget(topic, [websocket])

    def _forget(self, topic: str, sockets: list[WebSocket]) -> None:
        members = self._subscribers.get(topic)
        if members is None:
            return
        members.difference_update(sockets)
        if not members:
            del self._subscribers[topic]

    async def publish(self, topic: str, payload: dict) -> int:
        """Send ``payload`` to every subscriber of ``topic``; returns the delivered count."""
        async with self._lock:
            recipients = list(self._subscribers.get(topic, ()))
        if not recipients:
            return 0

        failed: list[WebSocket] = []

        async def deliver(websocket: WebSocket) -> None:
            try:
                await websocket.send_json(payload)
            except Exception:
                failed.append(websocket)

        async with anyio.create_task_group() as tg:
            for websocket in recipients:
                tg.start_soon(deliver, websocket)

        if failed:
            async with self._lock:
                self._forget(topic, failed)
            logger.debug("Dropped %d unreachable timetable subscriber(s) on %s", len(failed), topic)
        return len(recipients) - len(failed)


notification_hub = NotificationHub()
