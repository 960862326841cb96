"""
API routes for blockchain job intake and status.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, status
import structlog

from blockchain_service.api.dependencies import get_job_service
from blockchain_service.schemas.jobs import (
    CreateBlockchainJobRequest,
    CreateBlockchainJobResponse,
    GetJobResponse,
)
from blockchain_service.services.job_service import BlockchainJobService


logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post(
    "",
    response_model=CreateBlockchainJobResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Create blockchain job",
)
async def create_job(
    request: CreateBlockchainJobRequest,
    idempotency_key: Optional[str] = Header(default=None, alias="X-Idempotency-Key"),
    job_service: BlockchainJobService = Depends(get_job_service),
):
    """
    Queue a business event for on-chain execution.

    Replaying an idempotency key returns the job created by the first request
    with that key, whatever the new body contains.
    """
    job = await job_service.create_job(
        idempotency_key=idempotency_key,
        event_type=request.event_type,
        tx_id=request.tx_id,
        payload=request.payload,
    )
    return CreateBlockchainJobResponse(job_id=job.id, status=job.status)


@router.get(
    "/{job_id}",
    response_model=GetJobResponse,
    response_model_by_alias=True,
    summary="Get job status",
)
async def get_job(
    job_id: str,
    job_service: BlockchainJobService = Depends(get_job_service),
):
    job = await job_service.get_job(job_id)
    return GetJobResponse(job_id=job.id, status=job.status, error=job.error_message)
