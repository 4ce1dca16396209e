"""
services/messaging/relay.py
Realtime fan-out of chat messages to WebSocket room members.

Room membership is per process. Every event is delivered to local members
and published to Redis channel "<CHAT_CHANNEL_PREFIX><roomId>" so the other
API instances can deliver it to theirs. Delivery is best effort: messages
are already committed to the database, clients catch up on the next fetch.
"""

import json
import logging
import uuid
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, Optional, Set

import redis.asyncio as aioredis
from fastapi import WebSocket
from redis.exceptions import RedisError

from config.redis_client import get_redis
from config.settings import settings

logger = logging.getLogger(__name__)

INSTANCE_ID = f"{settings.INSTANCE_NAME}-{uuid.uuid4().hex[:8]}"
RECEIVE_EVENT = "receive_message"


def room_id(identity_a: str, identity_b: str) -> str:
    """Both participants derive the same room: sorted identities joined by '_'."""
    return "_".join(sorted((identity_a, identity_b)))


def chat_event(room: str, sender: str, body: str, timestamp: datetime) -> Dict[str, Any]:
    return {
        "event": RECEIVE_EVENT,
        "roomId": room,
        "sender": sender,
        "body": body,
        "timestamp": timestamp.isoformat(),
    }


class ChatRelay:
    def __init__(self, instance_id: str = INSTANCE_ID, channel_prefix: Optional[str] = None):
        self.instance_id = instance_id
        self.channel_prefix = channel_prefix or settings.CHAT_CHANNEL_PREFIX
        self._rooms: Dict[str, Set[WebSocket]] = defaultdict(set)

    # ── Membership ────────────────────────────────────────────

    def join(self, room: str, websocket: WebSocket) -> None:
        self._rooms[room].add(websocket)

    def leave(self, websocket: WebSocket) -> None:
        """Drop a socket from every room it joined."""
        for room in list(self._rooms):
            members = self._rooms[room]
            members.discard(websocket)
            if not members:
                del self._rooms[room]

    def members(self, room: str) -> int:
        return len(self._rooms.get(room, ()))

    # ── Delivery ──────────────────────────────────────────────

    async def deliver_local(self, event: Dict[str, Any]) -> int:
        """Send to this process's members of the event's room. Returns deliveries."""
        delivered = 0
        room = event.get("roomId")
        for websocket in list(self._rooms.get(room, ())):
            try:
                await websocket.send_json(event)
                delivered += 1
            except Exception as exc:
                logger.warning("Chat delivery to a socket in %s failed: %s", room, exc)
                self.leave(websocket)
        return delivered

    async def publish(self, event: Dict[str, Any]) -> bool:
        client = get_redis()
        if client is None:
            return False
        channel = f"{self.channel_prefix}{event['roomId']}"
        payload = json.dumps({"origin": self.instance_id, "event": event})
        try:
            await client.publish(channel, payload)
            return True
        except RedisError as exc:
            logger.error("Chat publish to %s failed: %s", channel, exc)
            return False

    async def broadcast(self, event: Dict[str, Any]) -> int:
        delivered = await self.deliver_local(event)
        await self.publish(event)
        return delivered

    # ── Cross-instance ────────────────────────────────────────

    async def handle_remote(self, raw: str) -> int:
        """Deliver an event published by another instance. Own echoes are ignored."""
        try:
            envelope = json.loads(raw)
            origin = envelope["origin"]
            event = envelope["event"]
        except (ValueError, KeyError, TypeError):
            logger.warning("Discarding malformed chat event from Redis")
            return 0
        if origin == self.instance_id:
            return 0
        return await self.deliver_local(event)

    async def listen(self, client: aioredis.Redis) -> None:
        """Relay events from other instances until cancelled."""
        pubsub = client.pubsub()
        pattern = f"{self.channel_prefix}*"
        await pubsub.psubscribe(pattern)
        logger.info("Chat relay %s listening on %s", self.instance_id, pattern)
        try:
            async for message in pubsub.listen():
                if message["type"] == "pmessage":
                    await self.handle_remote(message["data"])
        finally:
            await pubsub.punsubscribe(pattern)
            await pubsub.aclose()


chat_relay = ChatRelay()
