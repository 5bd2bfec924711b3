"""Live broadcast of whale alerts over Redis pub/sub."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any

from redis.asyncio import Redis

from polymarket_whale_tracker.detector.models import WhaleAlert

logger = logging.getLogger(__name__)

DEFAULT_WHALE_CHANNEL = "polymarket:whales"
DEFAULT_STATUS_CHANNEL = "polymarket:status"


class RedisBroadcaster:
    """Publishes whale alerts and feed status to Redis channels.

    Subscribers receive JSON documents. Publishing never blocks on
    subscribers; a message published while nobody listens is simply lost.

    Example:
        ```python
        broadcaster = RedisBroadcaster(Redis.from_url(settings.redis.url))
        await broadcaster.publish(alert)
        ```
    """

    def __init__(
        self,
        redis: Redis,
        *,
        whale_channel: str = DEFAULT_WHALE_CHANNEL,
        status_channel: str = DEFAULT_STATUS_CHANNEL,
    ) -> None:
        self._redis = redis
        self._whale_channel = whale_channel
        self._status_channel = status_channel

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> RedisBroadcaster:
        return cls(Redis.from_url(url), **kwargs)

    async def publish(self, alert: WhaleAlert) -> int:
        """Publish one whale alert.

        Returns:
            Number of subscribers that received the message.
        """
        payload = json.dumps(alert.to_dict())
        receivers = await self._redis.publish(self._whale_channel, payload)
        logger.debug(
            "Published whale %s to %s (%d subscribers)",
            alert.trade.trade_id,
            self._whale_channel,
            receivers,
        )
        return int(receivers)

    async def publish_status(self, *, connected: bool, detail: str | None = None) -> int:
        payload: dict[str, Any] = {
            "connected": connected,
            "timestamp": datetime.now(UTC).isoformat(),
        }
        if detail:
            payload["detail"] = detail
        return int(await self._redis.publish(self._status_channel, json.dumps(payload)))

    async def close(self) -> None:
        await self._redis.aclose()
