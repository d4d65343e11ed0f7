import asyncio
import uuid
from typing import Dict, List, Optional, Set

from fastapi import WebSocket
from pydantic import BaseModel

import schemas
from logging_config import get_logger

logger = get_logger(__name__)

SEND_TIMEOUT_SECONDS = 5.0
OUTBOX_SIZE = 100


class FileEvent(BaseModel):
    event: str
    action: str
    message: str
    record: Optional[schemas.FileRecordOut] = None
    record_id: Optional[uuid.UUID] = None

    @classmethod
    def created(cls, record) -> "FileEvent":
        return cls(
            event="file:created",
            action="created",
            message="New file uploaded",
            record=schemas.FileRecordOut.model_validate(record),
        )

    @classmethod
    def updated(cls, record) -> "FileEvent":
        return cls(
            event="file:updated",
            action="updated",
            message="File record updated",
            record=schemas.FileRecordOut.model_validate(record),
        )

    @classmethod
    def deleted(cls, record_id: uuid.UUID) -> "FileEvent":
        return cls(event="file:deleted", action="deleted", message="File record deleted", record_id=record_id)

    def to_message(self) -> dict:
        message = {"event": self.event, "action": self.action, "message": self.message}
        if self.record is not None:
            message["record"] = self.record.model_dump(mode="json", by_alias=True)
        if self.record_id is not None:
            message["recordId"] = str(self.record_id)
        return message


class ChangeNotifier:
    """Sink for record lifecycle events. Delivery is best-effort.

    publish must return promptly; it runs on the request path.
    """

    async def publish(self, event: FileEvent) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class NullNotifier(ChangeNotifier):
    async def publish(self, event: FileEvent) -> None:
        return None


class ConnectionManager(ChangeNotifier):
    """Fans lifecycle events out to every connected WebSocket session.

    Each connection has its own bounded outbox drained by a writer task, so
    publish only enqueues. A socket that falls behind or does not accept a
    message within send_timeout is dropped.
    """

    def __init__(self, send_timeout: float = SEND_TIMEOUT_SECONDS, outbox_size: int = OUTBOX_SIZE):
        self.active_connections: List[WebSocket] = []
        self.rooms: Dict[str, Set[WebSocket]] = {}
        self.send_timeout = send_timeout
        self.outbox_size = outbox_size
        self._outboxes: Dict[WebSocket, asyncio.Queue] = {}
        self._writers: Dict[WebSocket, asyncio.Task] = {}

    @property
    def connected_clients(self) -> int:
        return len(self.active_connections)

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)
        outbox = asyncio.Queue(maxsize=self.outbox_size)
        self._outboxes[websocket] = outbox
        self._writers[websocket] = asyncio.create_task(self._deliver(websocket, outbox))
        logger.info(f"Client connected. {self.connected_clients} client(s) online")

    def join(self, websocket: WebSocket, user_id: str) -> str:
        room = f"user_{user_id}"
        self.rooms.setdefault(room, set()).add(websocket)
        logger.debug(f"Client joined room {room}")
        return room

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
        for room in list(self.rooms):
            self.rooms[room].discard(websocket)
            if not self.rooms[room]:
                del self.rooms[room]
        writer = self._writers.pop(websocket, None)
        if writer is not None and writer is not asyncio.current_task():
            writer.cancel()
        outbox = self._outboxes.pop(websocket, None)
        while outbox is not None and not outbox.empty():
            outbox.get_nowait()
            outbox.task_done()
        logger.info(f"Client disconnected. {self.connected_clients} client(s) online")

    async def publish(self, event: FileEvent) -> None:
        message = event.to_message()
        for connection, outbox in list(self._outboxes.items()):
            try:
                outbox.put_nowait(message)
            except asyncio.QueueFull:
                logger.warning(f"Dropping connection with {outbox.qsize()} undelivered event(s) before {event.event}")
                self.disconnect(connection)
        logger.debug(f"Queued {event.event} for {self.connected_clients} client(s)")

    async def drain(self):
        """Wait until every queued event was sent or its connection dropped."""
        await asyncio.gather(*(outbox.join() for outbox in list(self._outboxes.values())))

    async def close(self):
        for connection in list(self.active_connections):
            self.disconnect(connection)

    async def _deliver(self, websocket: WebSocket, outbox: asyncio.Queue):
        while True:
            message = await outbox.get()
            try:
                await asyncio.wait_for(websocket.send_json(message), self.send_timeout)
            except Exception:
                logger.warning(f"Dropping connection after failed send of {message.get('event')}", exc_info=True)
                self.disconnect(websocket)
                return
            finally:
                outbox.task_done()
