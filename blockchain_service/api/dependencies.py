"""
API dependencies for FastAPI endpoints.
Services are created once per process by the lifespan hook and shared
through ``app.state.services``.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import structlog

from blockchain_service.core.redis import RedisClient
from blockchain_service.services.event_publisher import EventPublisher
from blockchain_service.services.job_queue import JobQueue
from blockchain_service.services.job_service import BlockchainJobService
from blockchain_service.services.rpc_service import RpcService


logger = structlog.get_logger(__name__)


@dataclass
class ServiceContainer:
    """Process-wide service instances."""
    session_factory: async_sessionmaker[AsyncSession]
    redis: RedisClient
    publisher: EventPublisher
    queue: JobQueue
    job_service: BlockchainJobService
    rpc_service: RpcService


def get_services(request: Request) -> ServiceContainer:
    services: Optional[ServiceContainer] = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Services not initialized")
    return services


def get_job_service(request: Request) -> BlockchainJobService:
    """Get job intake service dependency."""
    return get_services(request).job_service


def get_rpc_service(request: Request) -> RpcService:
    """Get chain query service dependency."""
    return get_services(request).rpc_service
