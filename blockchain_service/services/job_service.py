"""
Job intake: idempotent creation and status lookup.
"""

from typing import Any, Optional

import structlog

from blockchain_service.core.config import QueueConfig
from blockchain_service.core.exceptions import (
    DuplicateIdempotencyKeyError,
    JobNotFoundError,
    PayloadValidationError,
    ValidationError,
)
from blockchain_service.models.blockchain_job import BlockchainJob, ChainEventType
from blockchain_service.repositories.job_repository import JobRepository
from .job_queue import JobQueue


logger = structlog.get_logger(__name__)


class BlockchainJobService:
    """Creates jobs exactly once per idempotency key and queues them."""

    def __init__(self, jobs: JobRepository, queue: JobQueue):
        self.jobs = jobs
        self.queue = queue
        self.logger = logger.bind(service="job_service")

    async def create_job(
        self,
        idempotency_key: Optional[str],
        event_type: ChainEventType,
        tx_id: str,
        payload: Any,
    ) -> BlockchainJob:
        """
        Create and enqueue a job, or return the job already created for the key.

        A replayed key returns the original job without looking at the new
        request body at all.
        """
        if not idempotency_key:
            raise ValidationError("X-Idempotency-Key header is required.")

        existing = await self.jobs.find_by_idempotency_key(idempotency_key)
        if existing is not None:
            self.logger.info(
                "Idempotent request, returning existing job",
                job_id=existing.id,
                idempotency_key=idempotency_key,
            )
            return existing

        if not isinstance(payload, dict):
            raise PayloadValidationError("Job payload must be a valid object.")

        try:
            job = await self.jobs.create(
                idempotency_key=idempotency_key,
                event_type=event_type,
                payload={**payload, "txId": tx_id},
            )
        except DuplicateIdempotencyKeyError:
            # Lost the insert race to a concurrent request with the same key
            existing = await self.jobs.find_by_idempotency_key(idempotency_key)
            if existing is None:
                raise
            return existing

        await self.queue.enqueue(
            job.id,
            {"jobId": job.id},
            **QueueConfig.get_job_options(),
        )
        self.logger.info("Job queued", job_id=job.id, event_type=event_type.value)
        return job

    async def get_job(self, job_id: str) -> BlockchainJob:
        job = await self.jobs.find_by_id(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job
