"""
Notification channel - room-scoped publish over Redis pub/sub.

Each job gets its own room; the WebSocket gateway subscribes to the same
room name and forwards messages to connected clients. Messages published
while nobody is subscribed are dropped by Redis.

Workers wrap the Redis channel in BackgroundNotificationChannel so the
import loop only enqueues messages.
"""

import json
import logging
import queue
import threading
from enum import Enum
from typing import Any, Dict, Optional, Protocol

import redis
from redis.backoff import NoBackoff
from redis.retry import Retry

from services.errors import ChannelDeliveryError

logger = logging.getLogger(__name__)

ROOM_PREFIX = 'upload'


class ChannelEvent(str, Enum):
    """Event names exchanged with WebSocket clients."""
    # Client to server
    JOIN_UPLOAD_ROOM = 'join-upload-room'
    LEAVE_UPLOAD_ROOM = 'leave-upload-room'
    PING = 'ping'

    # Server to client
    UPLOAD_PROGRESS = 'upload-progress'
    UPLOAD_COMPLETED = 'upload-completed'
    UPLOAD_ERROR = 'upload-error'
    PONG = 'pong'


def room_for(job_id: str) -> str:
    """Room name for a job, shared by publishers and subscribers."""
    return f"{ROOM_PREFIX}-{job_id}"


def encode_message(event: str, data: Dict[str, Any]) -> str:
    return json.dumps({'event': event, 'data': data}, default=str)


def decode_message(raw: str) -> Dict[str, Any]:
    return json.loads(raw)


class NotificationChannel(Protocol):
    """One-way, best-effort publisher."""

    def publish(self, room: str, event: str, data: Dict[str, Any]) -> None:
        ...


class RedisNotificationChannel:
    """
    Publish room messages through Redis PUBLISH.

    Build the client with ``create_publisher_client`` so a failed publish
    is not retried.
    """

    def __init__(self, redis_client: redis.Redis):
        self.redis_client = redis_client

    def publish(self, room: str, event: str, data: Dict[str, Any]) -> None:
        try:
            self.redis_client.publish(room, encode_message(event, data))
        except redis.RedisError as e:
            raise ChannelDeliveryError(f"Publish to {room} failed: {e}") from e


class BackgroundNotificationChannel:
    """
    Hand messages to a daemon thread that publishes them in order.

    ``publish`` only enqueues, so a slow or unreachable transport never
    blocks the caller. When the buffer is full the message is dropped and
    ``ChannelDeliveryError`` is raised. Delivery failures in the sender
    thread are logged.
    """

    def __init__(self, channel: NotificationChannel, max_pending: int = 1000):
        self.channel = channel
        self._queue: queue.Queue = queue.Queue(maxsize=max_pending)
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def _ensure_started(self):
        # Threads do not survive a fork, so prefork workers restart it lazily
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._thread = threading.Thread(
                target=self._send_loop,
                name='notification-sender',
                daemon=True,
            )
            self._thread.start()

    def _send_loop(self):
        while True:
            item = self._queue.get()
            try:
                if isinstance(item, threading.Event):
                    item.set()
                    continue
                room, event, data = item
                try:
                    self.channel.publish(room, event, data)
                except Exception as e:
                    logger.warning(f"websocket.delivery.failed room={room} event={event}: {e}")
            finally:
                self._queue.task_done()

    def publish(self, room: str, event: str, data: Dict[str, Any]) -> None:
        self._ensure_started()
        try:
            self._queue.put_nowait((room, event, data))
        except queue.Full:
            raise ChannelDeliveryError(f"Publish to {room} dropped: {self._queue.maxsize} messages pending")

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait until every message queued so far has been handled."""
        self._ensure_started()
        marker = threading.Event()
        try:
            self._queue.put(marker, timeout=timeout)
        except queue.Full:
            return False
        return marker.wait(timeout)


def create_publisher_client(redis_url: str, socket_timeout: float) -> redis.Redis:
    """Redis client for room publishes: short timeouts and no retries."""
    return redis.Redis.from_url(
        redis_url,
        decode_responses=True,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
        retry=Retry(NoBackoff(), 0),
    )
