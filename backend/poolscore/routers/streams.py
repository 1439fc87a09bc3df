import asyncio
import json
import logging
from contextlib import suppress

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
import redis.asyncio as redis

from ..config import REDIS_URL
from ..services.tables import stream_channel

logger = logging.getLogger(__name__)

router = APIRouter()

redis_client = redis.from_url(REDIS_URL, decode_responses=True)


async def broadcast(channel: str, message: dict) -> None:
    """Publish a message to every subscriber of ``channel``."""
    try:
        await redis_client.publish(channel, json.dumps(message))
    except redis.ConnectionError:
        logger.warning("Could not broadcast to %s: redis unavailable", channel)


@router.websocket("/tables/{tid}/stream")
async def table_stream(ws: WebSocket, tid: str) -> None:
    """Stream live table state via a Redis pub/sub channel."""
    await ws.accept()
    channel = stream_channel(tid)
    try:
        async with redis_client.pubsub() as pubsub:
            await pubsub.subscribe(channel)

            async def sender() -> None:
                try:
                    async for msg in pubsub.listen():
                        if msg.get("type") == "message":
                            await ws.send_json(json.loads(msg["data"]))
                except redis.ConnectionError:
                    await ws.close()

            send_task = asyncio.create_task(sender())
            try:
                while True:
                    await ws.receive_text()
            except WebSocketDisconnect:
                pass
            finally:
                send_task.cancel()
                with suppress(asyncio.CancelledError):
                    await send_task
                await pubsub.unsubscribe(channel)
    except redis.ConnectionError:
        await ws.close()
