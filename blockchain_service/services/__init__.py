"""
Service layer: job intake, queueing, key retrieval, event publication and
read-only chain queries.
"""

from .event_publisher import EventPublisher
from .job_queue import JobQueue, MessageState
from .job_service import BlockchainJobService
from .kms_client import KMSClient
from .rpc_service import RpcService

__all__ = [
    "EventPublisher",
    "JobQueue",
    "MessageState",
    "BlockchainJobService",
    "KMSClient",
    "RpcService",
]
