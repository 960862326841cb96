"""
Request and response schemas for the jobs API.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from blockchain_service.models.blockchain_job import BlockchainJobStatus, ChainEventType


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateBlockchainJobRequest(CamelModel):
    """Inbound job creation request."""

    event_type: ChainEventType = Field(description="Business event to execute on-chain")
    tx_id: str = Field(min_length=1, description="Caller transaction id for correlation")
    # Shape is checked by the intake service so a replayed idempotency key
    # never reaches payload validation.
    payload: Any = Field(default=None, description="Event payload object")


class CreateBlockchainJobResponse(CamelModel):
    job_id: str
    status: BlockchainJobStatus


class GetJobResponse(CamelModel):
    job_id: str
    status: BlockchainJobStatus
    error: Optional[str] = None
