"""
In-process delayed queue.
Same delivery semantics as the Redis queue (visibility timeout, bounded
retries, dead letters) without durability across restarts.
"""

import heapq
import itertools
import time
import uuid
from typing import Callable

from ticketing.services.interfaces.delayed_queue import ClaimedJob, DelayedQueue, JobHandle, ReconciliationJob


class InMemoryDelayedQueue(DelayedQueue):
    """
    Use when:
    - Single process development
    - Tests (pass a controllable `clock`)

    Jobs are lost on restart; the unmonitored-booking sweep covers that.
    """

    def __init__(
        self,
        *,
        visibility_timeout: float = 60.0,
        max_attempts: int = 5,
        retry_backoff: float = 5.0,
        clock: Callable[[], float] = time.time,
    ):
        self._visibility_timeout = visibility_timeout
        self._max_attempts = max_attempts
        self._retry_backoff = retry_backoff
        self._clock = clock
        self._seq = itertools.count()
        self._delayed: list[tuple[float, int, str]] = []
        self._jobs: dict[str, ReconciliationJob] = {}
        self._attempts: dict[str, int] = {}
        self._inflight: dict[str, float] = {}
        self.dead: list[dict] = []

    async def enqueue(self, job: ReconciliationJob, delay_ms: int) -> JobHandle:
        job_id = uuid.uuid4().hex
        ready_at = self._clock() + delay_ms / 1000
        self._jobs[job_id] = job
        self._attempts[job_id] = 0
        self._schedule(job_id, ready_at)
        return JobHandle(job_id=job_id, ready_at=ready_at)

    def _schedule(self, job_id: str, ready_at: float) -> None:
        heapq.heappush(self._delayed, (ready_at, next(self._seq), job_id))

    def _requeue_expired(self, now: float) -> None:
        for job_id, deadline in list(self._inflight.items()):
            if deadline <= now:
                del self._inflight[job_id]
                self._schedule(job_id, now)

    async def claim_due(self, limit: int = 10) -> list[ClaimedJob]:
        now = self._clock()
        self._requeue_expired(now)

        claimed = []
        while self._delayed and len(claimed) < limit and self._delayed[0][0] <= now:
            _, _, job_id = heapq.heappop(self._delayed)
            if job_id not in self._jobs:
                continue
            self._attempts[job_id] += 1
            self._inflight[job_id] = now + self._visibility_timeout
            claimed.append(ClaimedJob(job_id=job_id, job=self._jobs[job_id], attempts=self._attempts[job_id]))
        return claimed

    async def ack(self, claimed: ClaimedJob) -> None:
        self._inflight.pop(claimed.job_id, None)
        self._jobs.pop(claimed.job_id, None)
        self._attempts.pop(claimed.job_id, None)

    async def retry(self, claimed: ClaimedJob, error: str) -> bool:
        if claimed.attempts >= self._max_attempts:
            await self.dead_letter(claimed, error)
            return False
        self._inflight.pop(claimed.job_id, None)
        self._schedule(claimed.job_id, self._clock() + self._retry_backoff * claimed.attempts)
        return True

    async def dead_letter(self, claimed: ClaimedJob, error: str) -> None:
        self.dead.append({
            "job_id": claimed.job_id,
            "job": claimed.job.model_dump(mode="json"),
            "attempts": claimed.attempts,
            "error": error,
        })
        await self.ack(claimed)

    async def stats(self) -> dict:
        delayed = sum(1 for _, _, job_id in self._delayed if job_id in self._jobs and job_id not in self._inflight)
        return {
            "backend": "memory",
            "delayed": delayed,
            "inflight": len(self._inflight),
            "dead": len(self.dead),
        }
