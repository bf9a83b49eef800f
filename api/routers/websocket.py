"""
WebSocket router - Real-time upload progress.

Clients join the room of a job and receive every message the worker
publishes to it on Redis. Delivery is best-effort: messages published
before a client joins are not replayed.
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

import redis
import redis.asyncio as aioredis
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from api.config import settings
from services.notification_channel import ChannelEvent, decode_message, room_for

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(tags=['websocket'])

# Seconds to wait for a room message before checking again
POLL_TIMEOUT = 1.0
IDLE_SLEEP = 0.1


def create_async_redis() -> aioredis.Redis:
    """Redis client owned by one WebSocket connection."""
    return aioredis.Redis.from_url(settings.REDIS_URL, decode_responses=True)


async def forward_room_messages(websocket: WebSocket, pubsub) -> None:
    """Relay messages from joined rooms to the client until it goes away."""
    try:
        while True:
            if not pubsub.subscribed:
                await asyncio.sleep(IDLE_SLEEP)
                continue

            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=POLL_TIMEOUT)
            if message is None:
                continue

            try:
                payload = decode_message(message['data'])
            except (ValueError, TypeError) as e:
                logger.warning(f"Dropping malformed room message on {message.get('channel')}: {e}")
                continue

            await websocket.send_json(payload)

    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug(f"Stopped forwarding room messages: {e}")
    except redis.RedisError as e:
        logger.warning(f"Room subscription lost: {e}")


async def handle_client_message(websocket: WebSocket, pubsub, message: Dict[str, Any]) -> None:
    """
    Apply one client message.

    Args:
        websocket: Client connection
        pubsub: Redis pub/sub owned by the connection
        message: ``{"event": ..., "data": ...}`` sent by the client
    """
    event = message.get('event')
    data = message.get('data') or {}

    if event == ChannelEvent.PING.value:
        await websocket.send_json({
            'event': ChannelEvent.PONG.value,
            'data': {'timestamp': datetime.utcnow().isoformat()}
        })
        return

    if event not in (ChannelEvent.JOIN_UPLOAD_ROOM.value, ChannelEvent.LEAVE_UPLOAD_ROOM.value):
        logger.warning(f"Ignoring unknown websocket event '{event}'")
        return

    job_id = data.get('jobId') if isinstance(data, dict) else None
    if not job_id:
        logger.warning(f"Ignoring '{event}' without jobId")
        return

    room = room_for(job_id)
    if event == ChannelEvent.JOIN_UPLOAD_ROOM.value:
        await pubsub.subscribe(room)
        logger.info(f"websocket.client.join job={job_id} room={room}")
    else:
        await pubsub.unsubscribe(room)
        logger.info(f"websocket.client.leave job={job_id} room={room}")


async def serve_upload_rooms(websocket: WebSocket, job_id: Optional[str] = None) -> None:
    """
    Run one client connection.

    Args:
        websocket: Accepted client connection
        job_id: Room to join right away, if any
    """
    client = create_async_redis()
    pubsub = client.pubsub()
    forwarder = None

    try:
        if job_id:
            await pubsub.subscribe(room_for(job_id))
            logger.info(f"websocket.client.join job={job_id} room={room_for(job_id)}")

        forwarder = asyncio.create_task(forward_room_messages(websocket, pubsub))

        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                logger.warning("Ignoring websocket message that is not JSON")
                continue
            if not isinstance(message, dict):
                logger.warning("Ignoring websocket message that is not an object")
                continue
            await handle_client_message(websocket, pubsub, message)

    except WebSocketDisconnect:
        logger.info("websocket.client.disconnect")

    finally:
        if forwarder is not None:
            forwarder.cancel()
            await asyncio.gather(forwarder, return_exceptions=True)
        await pubsub.aclose()
        await client.aclose()


@router.websocket('/ws/file-upload')
async def websocket_file_upload(websocket: WebSocket):
    """
    WebSocket endpoint for upload progress across any number of jobs.

    **Connection:**
    ```javascript
    const ws = new WebSocket('ws://localhost:8000/ws/file-upload');
    ws.onopen = () => ws.send(JSON.stringify({
        event: 'join-upload-room',
        data: {jobId: 'upload-1729339200000-k3j9x2'}
    }));
    ws.onmessage = (event) => {
        const {event: name, data} = JSON.parse(event.data);
        if (name === 'upload-progress') console.log(`${data.progress}%`);
    };
    ```

    **Client events:** `join-upload-room`, `leave-upload-room` (with
    `data.jobId`) and `ping` (answered by `pong`).

    **Server events:** `upload-progress`, `upload-completed`, `upload-error`.
    """
    await websocket.accept()
    logger.info("websocket.client.connect")
    await serve_upload_rooms(websocket)


@router.websocket('/ws/import/{job_id}')
async def websocket_import_progress(websocket: WebSocket, job_id: str):
    """
    WebSocket endpoint bound to a single job.

    Joins the room of `job_id` on connect; otherwise behaves like
    `/ws/file-upload`.
    """
    await websocket.accept()
    logger.info(f"websocket.client.connect job={job_id}")
    await serve_upload_rooms(websocket, job_id=job_id)
