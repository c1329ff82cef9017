"""
Event Notifier - best-effort fan-out of auction events

Engine code calls `publish_nowait` *after* its transaction commits. Delivery
runs as a tracked background task; any failure is logged and counted, never
raised back into the request that triggered it.

Channels:
- listing:{listing_id}  events every watcher of a listing cares about
- user:{user_id}        events aimed at one user (outbid, auction-won, refund-required)
"""
import asyncio
import enum
import json
import logging
from typing import Any, Dict, List, Optional, Set

import redis.asyncio as redis

from auction_engine.core.config import Settings
from auction_engine.core.database import utcnow
from auction_engine.core.metrics import notifications_failed_total

logger = logging.getLogger(__name__)


class EventType(str, enum.Enum):
    NEW_BID = "new-bid"
    OUTBID = "outbid"
    BID_CANCELLED = "bid-cancelled"
    AUCTION_WON = "auction-won"
    AUCTION_ENDED = "auction-ended"
    BUY_NOW_RESERVED = "buy-now-reserved"
    REFUND_REQUIRED = "refund-required"


def listing_channel(listing_id: int) -> str:
    return f"listing:{listing_id}"


def user_channel(user_id: int) -> str:
    return f"user:{user_id}"


class EventNotifier:
    """
    Notifier that only logs events

    Used when NOTIFICATIONS_ENABLED is off, and as the base class for real
    transports which override `_send`.
    """

    def __init__(self, timeout: float = 2.0):
        self.timeout = timeout
        self._pending: Set[asyncio.Task] = set()
        self.events_published = 0
        self.events_failed = 0

    async def connect(self):
        pass

    async def disconnect(self):
        await self.drain()

    async def _send(self, channel: str, message: Dict[str, Any]):
        logger.debug(f"📢 {message['type']} -> {channel}")

    def _build_message(self, event_type: EventType, payload: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "type": event_type.value,
            "timestamp": utcnow().isoformat(),
            **payload,
        }

    async def publish(
        self,
        event_type: EventType,
        payload: Dict[str, Any],
        user_id: Optional[int] = None,
    ) -> bool:
        """
        Publish one event; returns False instead of raising on failure

        Args:
            event_type: Which event
            payload: Event body, must include listing_id
            user_id: Route to that user's channel instead of the listing's
        """
        channel = user_channel(user_id) if user_id is not None else listing_channel(payload["listing_id"])
        message = self._build_message(event_type, payload)

        try:
            await asyncio.wait_for(self._send(channel, message), timeout=self.timeout)
        except Exception as e:
            self.events_failed += 1
            notifications_failed_total.labels(event_type=event_type.value).inc()
            logger.warning(
                f"⚠️  Failed to publish {event_type.value} to {channel}: {e}",
                extra={'listing_id': payload.get("listing_id")}
            )
            return False

        self.events_published += 1
        return True

    def publish_nowait(
        self,
        event_type: EventType,
        payload: Dict[str, Any],
        user_id: Optional[int] = None,
    ) -> asyncio.Task:
        """Schedule `publish` without waiting for it"""
        task = asyncio.create_task(self.publish(event_type, payload, user_id=user_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self):
        """Wait for every scheduled publish to finish"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "transport": type(self).__name__,
            "events_published": self.events_published,
            "events_failed": self.events_failed,
            "pending": len(self._pending),
        }


class RedisEventNotifier(EventNotifier):
    """Publishes events as JSON over Redis Pub/Sub"""

    def __init__(self, redis_url: str, timeout: float = 2.0):
        super().__init__(timeout=timeout)
        self.redis_url = redis_url
        self.redis = None

    async def connect(self):
        logger.info("🔌 Connecting notifier to Redis...")
        self.redis = redis.from_url(
            self.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=self.timeout,
            socket_connect_timeout=self.timeout,
        )
        logger.info("✅ Notifier connected to Redis")

    async def disconnect(self):
        await super().disconnect()
        if self.redis is not None:
            await self.redis.aclose()
            self.redis = None
        logger.info("🔌 Notifier disconnected from Redis")

    async def _send(self, channel: str, message: Dict[str, Any]):
        if self.redis is None:
            raise ConnectionError("Notifier is not connected")

        # Decimal amounts go out as strings
        num_subscribers = await self.redis.publish(channel, json.dumps(message, default=str))
        logger.debug(f"📢 Published {message['type']} to {channel} ({num_subscribers} subscribers)")


class RecordingNotifier(EventNotifier):
    """Keeps every published event in memory; handy for tests and scripts"""

    def __init__(self):
        super().__init__()
        self.events: List[Dict[str, Any]] = []

    async def _send(self, channel: str, message: Dict[str, Any]):
        self.events.append({"channel": channel, **message})

    def of_type(self, event_type: EventType) -> List[Dict[str, Any]]:
        return [e for e in self.events if e["type"] == event_type.value]


def create_notifier(settings: Settings) -> EventNotifier:
    if settings.NOTIFICATIONS_ENABLED:
        return RedisEventNotifier(settings.REDIS_URL, timeout=settings.NOTIFY_TIMEOUT_SECONDS)
    return EventNotifier(timeout=settings.NOTIFY_TIMEOUT_SECONDS)
