# backend/pulse/progress.py
"""Per-video progress fan-out.

The hub is a plain registry of live connections and the video channels they
joined. It holds no history: an event published while nobody is subscribed is
gone, and late subscribers fall back to reading the video record.
"""
import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Dict, Mapping, Optional, Set
from uuid import uuid4

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class Connection(ABC):
    """A push target. push() must not block."""

    def __init__(self, connection_id: Optional[str] = None):
        self.connection_id = connection_id or uuid4().hex

    @abstractmethod
    def push(self, event: Dict[str, Any]) -> None:
        ...


class WebSocketConnection(Connection):
    """Queues outbound events so a slow socket never holds up the publisher."""

    def __init__(self, websocket: WebSocket, connection_id: Optional[str] = None):
        super().__init__(connection_id)
        self.websocket = websocket
        self._outbox: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()

    def push(self, event: Dict[str, Any]) -> None:
        self._outbox.put_nowait(event)

    async def run_sender(self) -> None:
        # single writer keeps per-connection ordering
        while True:
            event = await self._outbox.get()
            await self.websocket.send_json(event)


class ProgressHub:
    def __init__(self):
        self._lock = threading.Lock()
        self._connections: Dict[str, Connection] = {}
        self._channels: Dict[str, Set[str]] = defaultdict(set)

    def register(self, connection: Connection) -> None:
        with self._lock:
            self._connections[connection.connection_id] = connection

    def unregister(self, connection_id: str) -> None:
        with self._lock:
            self._connections.pop(connection_id, None)
            for channel in [c for c, members in self._channels.items() if connection_id in members]:
                members = self._channels[channel]
                members.discard(connection_id)
                if not members:
                    del self._channels[channel]

    def subscribe(self, connection_id: str, video_id: str) -> bool:
        """Join a connection to a video's channel. Unknown connections are ignored."""
        with self._lock:
            if connection_id not in self._connections:
                return False
            self._channels[str(video_id)].add(connection_id)
            return True

    def publish(self, video_id: str, progress: int, extra: Optional[Mapping[str, Any]] = None) -> int:
        """Deliver {videoId, progress, **extra} to the channel; returns the delivery count."""
        event: Dict[str, Any] = {"videoId": video_id, "progress": progress}
        if extra:
            event.update(extra)

        with self._lock:
            targets = [
                self._connections[cid]
                for cid in self._channels.get(str(video_id), ())
                if cid in self._connections
            ]

        delivered = 0
        for connection in targets:
            try:
                connection.push(dict(event))
                delivered += 1
            except Exception:
                logger.exception("dropping progress event for connection %s", connection.connection_id)
        return delivered
