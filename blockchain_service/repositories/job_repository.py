"""
Repository for blockchain job persistence.
"""

import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from blockchain_service.core.database import get_session_maker
from blockchain_service.core.exceptions import DatabaseError, DuplicateIdempotencyKeyError
from blockchain_service.models.base import utcnow
from blockchain_service.models.blockchain_job import (
    BlockchainJob,
    BlockchainJobStatus,
    ChainEventType,
)


logger = structlog.get_logger(__name__)

TERMINAL_STATUSES = (BlockchainJobStatus.SUCCESS, BlockchainJobStatus.ERROR)


class JobRepository:
    """
    Job store access.

    The processor is the only writer after creation. Status updates are
    conditional so a job that reached SUCCESS or ERROR is never overwritten
    and ``finalized_at`` is written exactly once.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory
        self.logger = logger.bind(service="job_repository")

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        factory = self._session_factory or get_session_maker()
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def find_by_id(self, job_id: str) -> Optional[BlockchainJob]:
        async with self._session() as session:
            return await session.get(BlockchainJob, job_id)

    async def find_by_idempotency_key(self, idempotency_key: str) -> Optional[BlockchainJob]:
        async with self._session() as session:
            result = await session.execute(
                select(BlockchainJob).where(BlockchainJob.idempotency_key == idempotency_key)
            )
            return result.scalar_one_or_none()

    async def create(
        self,
        idempotency_key: str,
        event_type: ChainEventType,
        payload: Dict[str, Any],
    ) -> BlockchainJob:
        """
        Insert a new QUEUED job.

        Raises:
            DuplicateIdempotencyKeyError: if another request created a job
                with the same key first
        """
        job = BlockchainJob(
            id=str(uuid.uuid4()),
            idempotency_key=idempotency_key,
            event_type=event_type,
            payload_json=payload,
            status=BlockchainJobStatus.QUEUED,
            retry_count=0,
        )
        try:
            async with self._session() as session:
                session.add(job)
        except IntegrityError as e:
            raise DuplicateIdempotencyKeyError(idempotency_key) from e

        self.logger.info(
            "Blockchain job created",
            job_id=job.id,
            event_type=event_type.value,
            idempotency_key=idempotency_key,
        )
        return job

    async def mark_submitted(self, job_id: str) -> Optional[BlockchainJob]:
        """Move a non-terminal job to SUBMITTED and count the attempt."""
        return await self._transition(
            job_id,
            status=BlockchainJobStatus.SUBMITTED,
            retry_count=BlockchainJob.retry_count + 1,
        )

    async def mark_succeeded(self, job_id: str) -> Optional[BlockchainJob]:
        return await self._transition(
            job_id,
            status=BlockchainJobStatus.SUCCESS,
            error_message=None,
            finalized_at=utcnow(),
        )

    async def mark_failed(self, job_id: str, error_message: str) -> Optional[BlockchainJob]:
        return await self._transition(
            job_id,
            status=BlockchainJobStatus.ERROR,
            error_message=error_message,
            finalized_at=utcnow(),
        )

    async def _transition(self, job_id: str, **values: Any) -> Optional[BlockchainJob]:
        """
        Apply ``values`` unless the job is already terminal.

        Returns the updated job, or None when no row changed (unknown id or
        already finalized).
        """
        try:
            async with self._session() as session:
                result = await session.execute(
                    update(BlockchainJob)
                    .where(
                        BlockchainJob.id == job_id,
                        BlockchainJob.status.not_in(TERMINAL_STATUSES),
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    return None

                refreshed = await session.execute(
                    select(BlockchainJob)
                    .where(BlockchainJob.id == job_id)
                    .execution_options(populate_existing=True)
                )
                return refreshed.scalar_one()
        except SQLAlchemyError as e:
            self.logger.error("Job status update failed", job_id=job_id, error=str(e))
            raise DatabaseError(
                f"Failed to update job {job_id}: {e}",
                {"job_id": job_id}
            ) from e
