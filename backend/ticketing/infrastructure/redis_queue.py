"""
Redis-backed durable delayed queue.

KEY LAYOUT
==========

  {prefix}:delayed      ZSET  job_id -> ready_at (epoch seconds)
  {prefix}:inflight     ZSET  job_id -> visibility deadline
  {prefix}:job:{id}     HASH  payload, attempts, enqueued_at, last_error
  {prefix}:dead         LIST  JSON records of dead-lettered jobs

Claiming:
  Consumers read due ids with ZRANGEBYSCORE and then race on ZREM. ZREM is
  atomic, so exactly one consumer removes a given id from `delayed` and owns
  that delivery. The owner parks the id in `inflight` with a deadline.

At-least-once:
  A consumer that dies mid-job never acks. Once the inflight deadline
  passes, the next claim_due moves the id back to `delayed` (again gated
  by ZREM), so the job is redelivered. Duplicates are possible; the
  reconciliation worker is idempotent.
"""

import json
import time
import uuid

import redis.asyncio as redis

from ticketing.core.exceptions import QueueDeliveryError
from ticketing.core.logging import get_logger
from ticketing.services.interfaces.delayed_queue import ClaimedJob, DelayedQueue, JobHandle, ReconciliationJob

logger = get_logger(__name__)


class RedisDelayedQueue(DelayedQueue):

    def __init__(
        self,
        client: redis.Redis,
        *,
        prefix: str = "ticketing:reconciliation",
        visibility_timeout: float = 60.0,
        max_attempts: int = 5,
        retry_backoff: float = 5.0,
    ):
        self.redis = client
        self._prefix = prefix
        self._visibility_timeout = visibility_timeout
        self._max_attempts = max_attempts
        self._retry_backoff = retry_backoff

    @property
    def _delayed_key(self) -> str:
        return f"{self._prefix}:delayed"

    @property
    def _inflight_key(self) -> str:
        return f"{self._prefix}:inflight"

    @property
    def _dead_key(self) -> str:
        return f"{self._prefix}:dead"

    def _job_key(self, job_id: str) -> str:
        return f"{self._prefix}:job:{job_id}"

    async def enqueue(self, job: ReconciliationJob, delay_ms: int) -> JobHandle:
        job_id = uuid.uuid4().hex
        now = time.time()
        ready_at = now + delay_ms / 1000

        pipe = self.redis.pipeline(transaction=True)
        pipe.hset(self._job_key(job_id), mapping={
            "payload": job.model_dump_json(),
            "attempts": 0,
            "enqueued_at": now,
        })
        pipe.zadd(self._delayed_key, {job_id: ready_at})
        try:
            await pipe.execute()
        except redis.RedisError as exc:
            raise QueueDeliveryError(f"Could not enqueue reconciliation job: {exc}") from exc

        logger.debug("job_enqueued", job_id=job_id, booking_id=job.booking_id, ready_at=ready_at)
        return JobHandle(job_id=job_id, ready_at=ready_at)

    async def _requeue_expired(self, now: float) -> None:
        expired = await self.redis.zrangebyscore(self._inflight_key, "-inf", now)
        for job_id in expired:
            # Only the consumer whose ZREM succeeds moves the job back
            if await self.redis.zrem(self._inflight_key, job_id):
                await self.redis.zadd(self._delayed_key, {job_id: now})
                logger.warning("job_visibility_expired", job_id=job_id)

    async def claim_due(self, limit: int = 10) -> list[ClaimedJob]:
        now = time.time()
        await self._requeue_expired(now)

        due = await self.redis.zrangebyscore(self._delayed_key, "-inf", now, start=0, num=limit)
        claimed = []
        for job_id in due:
            if not await self.redis.zrem(self._delayed_key, job_id):
                continue  # another consumer won

            pipe = self.redis.pipeline(transaction=True)
            pipe.zadd(self._inflight_key, {job_id: now + self._visibility_timeout})
            pipe.hincrby(self._job_key(job_id), "attempts", 1)
            pipe.hget(self._job_key(job_id), "payload")
            _, attempts, payload = await pipe.execute()

            if payload is None:
                # Hash already gone (acked by a duplicate delivery)
                cleanup = self.redis.pipeline(transaction=True)
                cleanup.zrem(self._inflight_key, job_id)
                cleanup.delete(self._job_key(job_id))
                await cleanup.execute()
                continue

            claimed.append(ClaimedJob(
                job_id=job_id,
                job=ReconciliationJob.model_validate_json(payload),
                attempts=int(attempts),
            ))
        return claimed

    async def ack(self, claimed: ClaimedJob) -> None:
        pipe = self.redis.pipeline(transaction=True)
        pipe.zrem(self._inflight_key, claimed.job_id)
        pipe.zrem(self._delayed_key, claimed.job_id)
        pipe.delete(self._job_key(claimed.job_id))
        await pipe.execute()

    async def retry(self, claimed: ClaimedJob, error: str) -> bool:
        if claimed.attempts >= self._max_attempts:
            await self.dead_letter(claimed, error)
            return False

        ready_at = time.time() + self._retry_backoff * claimed.attempts
        pipe = self.redis.pipeline(transaction=True)
        pipe.zrem(self._inflight_key, claimed.job_id)
        pipe.hset(self._job_key(claimed.job_id), "last_error", error[:1000])
        pipe.zadd(self._delayed_key, {claimed.job_id: ready_at})
        await pipe.execute()
        return True

    async def dead_letter(self, claimed: ClaimedJob, error: str) -> None:
        record = json.dumps({
            "job_id": claimed.job_id,
            "job": claimed.job.model_dump(mode="json"),
            "attempts": claimed.attempts,
            "error": error[:1000],
            "dead_at": time.time(),
        })
        pipe = self.redis.pipeline(transaction=True)
        pipe.zrem(self._inflight_key, claimed.job_id)
        pipe.zrem(self._delayed_key, claimed.job_id)
        pipe.rpush(self._dead_key, record)
        pipe.delete(self._job_key(claimed.job_id))
        await pipe.execute()

    async def stats(self) -> dict:
        try:
            pipe = self.redis.pipeline(transaction=False)
            pipe.zcard(self._delayed_key)
            pipe.zcard(self._inflight_key)
            pipe.llen(self._dead_key)
            delayed, inflight, dead = await pipe.execute()
        except redis.RedisError as e:
            return {"backend": "redis", "status": "error", "error": str(e)}
        return {
            "backend": "redis",
            "status": "connected",
            "delayed": delayed,
            "inflight": inflight,
            "dead": dead,
        }

    async def close(self) -> None:
        await self.redis.aclose()
