"""
Blockchain job model - one queued unit of on-chain work per business event.
"""

from datetime import datetime
from typing import Optional, Dict, Any
from enum import Enum

from sqlalchemy import String, Integer, Text, Index, JSON, DateTime, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class ChainEventType(str, Enum):
    """Business events that map to an on-chain transaction sequence."""

    CREATE_ORG_CONTRACT = "CREATE_ORG_CONTRACT"
    CREATE_ASSET = "CREATE_ASSET"
    LICENSE_ASSET = "LICENSE_ASSET"
    FUND_USER_WALLET = "FUND_USER_WALLET"
    WITHDRAW_ORG_EARNINGS = "WITHDRAW_ORG_EARNINGS"
    GRANT_CREATOR_ROLE = "GRANT_CREATOR_ROLE"
    REVOKE_CREATOR_ROLE = "REVOKE_CREATOR_ROLE"
    VERIFY_ASSET = "VERIFY_ASSET"


class BlockchainJobStatus(str, Enum):
    """Job lifecycle: QUEUED -> SUBMITTED -> SUCCESS | ERROR."""

    QUEUED = "QUEUED"
    SUBMITTED = "SUBMITTED"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self in (BlockchainJobStatus.SUCCESS, BlockchainJobStatus.ERROR)


class BlockchainJob(BaseModel, TimestampMixin):
    """Persistent ledger record of a blockchain job."""

    __tablename__ = "blockchain_jobs"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        comment="Job id, also used as the queue message id"
    )

    idempotency_key: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        comment="Caller-supplied deduplication key"
    )

    event_type: Mapped[ChainEventType] = mapped_column(
        SQLEnum(ChainEventType, name="chaineventtype"),
        comment="Business event driving the transaction sequence"
    )

    payload_json: Mapped[Dict[str, Any]] = mapped_column(
        JSON,
        comment="Event payload including the caller txId"
    )

    status: Mapped[BlockchainJobStatus] = mapped_column(
        SQLEnum(BlockchainJobStatus, name="blockchainjobstatus"),
        default=BlockchainJobStatus.QUEUED,
        comment="Lifecycle status"
    )

    error_message: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Failure cause when status is ERROR"
    )

    retry_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        comment="Number of processing attempts started"
    )

    finalized_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When a terminal status was reached"
    )

    __table_args__ = (
        Index("idx_blockchain_job_status_created", "status", "created_at"),
        Index("idx_blockchain_job_event_type", "event_type"),
    )

    def __repr__(self) -> str:
        return f"<BlockchainJob(id={self.id}, type={self.event_type.value}, status={self.status.value})>"

    @property
    def tx_id(self) -> Optional[str]:
        """Caller correlation id carried in the payload."""
        return (self.payload_json or {}).get("txId")

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

