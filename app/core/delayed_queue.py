# app/core/delayed_queue.py
"""Keyed delayed-job store backed by Redis.

Triggers live in a sorted set scored by their fire timestamp, with payloads in
a companion hash. Both ``schedule`` and ``cancel`` are idempotent: scheduling
an existing key replaces its fire time and payload, cancelling a missing key
is a no-op.

``claim_due`` leases each due key: under ``WATCH`` it moves the key from the
schedule set to a processing set scored by the lease deadline, so concurrent
pollers never claim the same trigger twice. The claimer then either ``ack``s
the key once the job is handed off or ``release``s it back to the schedule.
A lease that is neither acked nor released (the claimer died) expires and the
key is re-queued by the next ``claim_due``.
"""
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from .config import settings
from .exceptions import DependencyUnavailableError

logger = logging.getLogger(__name__)


class RedisDelayedQueue:
    def __init__(self, redis_client: redis.Redis, name: Optional[str] = None):
        self.redis = redis_client
        self.name = name or settings.reminder_queue_name
        self.schedule_key = f"{self.name}:schedule"
        self.processing_key = f"{self.name}:processing"
        self.payload_key = f"{self.name}:payloads"

    @classmethod
    def from_url(cls, url: Optional[str] = None, name: Optional[str] = None) -> "RedisDelayedQueue":
        client = redis.from_url(url or settings.redis_url, encoding="utf-8", decode_responses=True)
        return cls(client, name=name)

    async def close(self):
        await self.redis.aclose()

    async def schedule(self, key: str, fire_at: datetime, payload: Dict[str, Any]) -> None:
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.zadd(self.schedule_key, {key: fire_at.timestamp()})
                pipe.zrem(self.processing_key, key)
                pipe.hset(self.payload_key, key, json.dumps(payload, default=str))
                await pipe.execute()
        except RedisError as e:
            raise DependencyUnavailableError("Delayed queue", str(e)) from e

    async def cancel(self, key: str) -> bool:
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.zrem(self.schedule_key, key)
                pipe.zrem(self.processing_key, key)
                pipe.hdel(self.payload_key, key)
                scheduled, leased, _ = await pipe.execute()
        except RedisError as e:
            raise DependencyUnavailableError("Delayed queue", str(e)) from e
        return bool(scheduled or leased)

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            score = await self.redis.zscore(self.schedule_key, key)
            if score is None:
                return None
            raw = await self.redis.hget(self.payload_key, key)
        except RedisError as e:
            raise DependencyUnavailableError("Delayed queue", str(e)) from e
        return {
            "fire_at": datetime.fromtimestamp(score, tz=timezone.utc),
            "payload": json.loads(raw) if raw else {},
        }

    async def claim_due(
        self, now: datetime, limit: int = 100, lease_seconds: Optional[int] = None
    ) -> List[Tuple[str, Dict[str, Any]]]:
        """Lease every trigger whose fire time is at or before ``now``.

        Each claimed key must be passed to ``ack`` or ``release``.
        """
        deadline = now + timedelta(seconds=lease_seconds or settings.reminder_lease_seconds)
        try:
            await self._requeue_expired(now)
            due_keys = await self.redis.zrangebyscore(
                self.schedule_key, "-inf", now.timestamp(), start=0, num=limit
            )
            claimed = []
            for key in due_keys:
                if not await self._move(key, self.schedule_key, self.processing_key, deadline):
                    # Another poller got it first
                    continue
                raw = await self.redis.hget(self.payload_key, key)
                if raw is None:
                    logger.warning(f"Delayed job {key} had no payload; dropping")
                    await self.redis.zrem(self.processing_key, key)
                    continue
                claimed.append((key, json.loads(raw)))
            return claimed
        except RedisError as e:
            raise DependencyUnavailableError("Delayed queue", str(e)) from e

    async def ack(self, key: str) -> None:
        """Finish a claimed job. A key scheduled again meanwhile keeps its new payload."""

        async def finish(pipe):
            rescheduled = await pipe.zscore(self.schedule_key, key) is not None
            pipe.multi()
            pipe.zrem(self.processing_key, key)
            if not rescheduled:
                pipe.hdel(self.payload_key, key)

        try:
            await self.redis.transaction(finish, self.schedule_key)
        except RedisError as e:
            raise DependencyUnavailableError("Delayed queue", str(e)) from e

    async def release(self, key: str, retry_at: datetime) -> bool:
        """Return a claimed job to the schedule; False when it is no longer leased."""
        try:
            return await self._move(key, self.processing_key, self.schedule_key, retry_at)
        except RedisError as e:
            raise DependencyUnavailableError("Delayed queue", str(e)) from e

    async def pending_count(self) -> int:
        try:
            return int(await self.redis.zcard(self.schedule_key))
        except RedisError as e:
            raise DependencyUnavailableError("Delayed queue", str(e)) from e

    async def leased_count(self) -> int:
        try:
            return int(await self.redis.zcard(self.processing_key))
        except RedisError as e:
            raise DependencyUnavailableError("Delayed queue", str(e)) from e

    async def _requeue_expired(self, now: datetime) -> None:
        expired = await self.redis.zrangebyscore(self.processing_key, "-inf", now.timestamp())
        for key in expired:
            if await self._move(key, self.processing_key, self.schedule_key, now):
                logger.warning(f"Lease on delayed job {key} expired; re-queued")

    async def _move(self, key: str, source: str, target: str, score_at: datetime) -> bool:
        """Move ``key`` between sorted sets if it is still in ``source``."""

        async def move(pipe):
            if await pipe.zscore(source, key) is None:
                return False
            pipe.multi()
            pipe.zrem(source, key)
            pipe.zadd(target, {key: score_at.timestamp()})
            return True

        return await self.redis.transaction(move, source, value_from_callable=True)
