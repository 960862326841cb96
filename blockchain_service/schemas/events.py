"""
Finalized-event contract published to the platform topic exchange.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from blockchain_service.models.blockchain_job import BlockchainJob, ChainEventType


UNKNOWN = "unknown"


class ChainTransactionStatus(str, Enum):
    """Terminal outcome reported to downstream consumers."""
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


def format_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision, e.g. 2024-01-01T00:00:00.000Z."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


class TransactionFinalizedEvent(BaseModel):
    """One message per terminal job transition."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    job_id: str
    event_type: ChainEventType
    final_status: ChainTransactionStatus
    tx_hash: str
    block_number: str
    submitted_at: str
    finalized_at: str
    original_payload: Any
    error: Optional[str] = None
    event_output: Dict[str, Any] = {}

    @property
    def routing_key(self) -> str:
        return f"transactions.finalized.{self.final_status.value.lower()}"

    def to_message(self) -> Dict[str, Any]:
        """Wire representation with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_job(
        cls,
        job: BlockchainJob,
        final_status: ChainTransactionStatus,
        tx_hash: str = UNKNOWN,
        block_number: str = UNKNOWN,
        error: Optional[str] = None,
        event_output: Optional[Dict[str, Any]] = None,
    ) -> "TransactionFinalizedEvent":
        """Build the event for a job that just reached a terminal status."""
        return cls(
            id=str(job.tx_id),
            job_id=job.id,
            event_type=job.event_type,
            final_status=final_status,
            tx_hash=tx_hash,
            block_number=block_number,
            submitted_at=format_timestamp(job.created_at),
            finalized_at=format_timestamp(job.finalized_at),
            original_payload=job.payload_json,
            error=error,
            event_output=event_output or {},
        )
