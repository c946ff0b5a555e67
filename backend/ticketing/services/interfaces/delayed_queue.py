"""
Durable delayed queue interface.

Delivery is at-least-once with no ordering across jobs: a claimed job that
is neither acked nor retried before its visibility timeout becomes due
again. Consumers must be idempotent.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel


class ReconciliationJob(BaseModel):
    booking_id: int
    event_id: int
    quantity: int
    payment_id: int
    fire_at: datetime


@dataclass(frozen=True)
class JobHandle:
    job_id: str
    ready_at: float  # epoch seconds


@dataclass(frozen=True)
class ClaimedJob:
    job_id: str
    job: ReconciliationJob
    attempts: int  # including this delivery


class DelayedQueue(ABC):
    """
    Interface for delayed job queues.

    Implementations:
    - RedisDelayedQueue: durable, shared by every API and worker process
    - InMemoryDelayedQueue: single process, for development and tests
    """

    @abstractmethod
    async def enqueue(self, job: ReconciliationJob, delay_ms: int) -> JobHandle:
        """
        Schedule a job to become visible after `delay_ms`.

        Raises:
            QueueDeliveryError: the job was not stored
        """

    @abstractmethod
    async def claim_due(self, limit: int = 10) -> list[ClaimedJob]:
        """
        Claim up to `limit` due jobs. Each claimed job is hidden from other
        consumers until acked, retried, or its visibility timeout passes.
        """

    @abstractmethod
    async def ack(self, claimed: ClaimedJob) -> None:
        """Job handled; forget it."""

    @abstractmethod
    async def retry(self, claimed: ClaimedJob, error: str) -> bool:
        """
        Reschedule with backoff. Dead-letters instead once the job has used
        its attempts.

        Returns:
            True if rescheduled, False if dead-lettered
        """

    @abstractmethod
    async def dead_letter(self, claimed: ClaimedJob, error: str) -> None:
        """Park the job for operator inspection; it is never redelivered."""

    @abstractmethod
    async def stats(self) -> dict:
        """Counts of delayed, inflight and dead jobs."""

    async def close(self) -> None:
        """Release connections. No-op by default."""
