"""
Database models for the blockchain service.
"""

from .base import Base, BaseModel, TimestampMixin
from .blockchain_job import BlockchainJob, BlockchainJobStatus, ChainEventType
from .organization import Organization

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "BlockchainJob",
    "BlockchainJobStatus",
    "ChainEventType",
    "Organization",
]
