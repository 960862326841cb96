"""
Main FastAPI application for the Empressa blockchain service.
Configures the API server with routes, middleware, and the in-process job worker.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
import structlog

from blockchain_service.api.dependencies import ServiceContainer
from blockchain_service.api.middleware import add_exception_handlers, add_middleware
from blockchain_service.api.routes import health, jobs, rpc
from blockchain_service.blockchain.client import ChainClient
from blockchain_service.blockchain.registry import ContractRegistry
from blockchain_service.core.config import settings
from blockchain_service.core.database import close_database, init_database
from blockchain_service.core.exceptions import PublisherError
from blockchain_service.core.logging import setup_logging
from blockchain_service.core.redis import RedisClient
from blockchain_service.processing.processor import create_processor
from blockchain_service.repositories.job_repository import JobRepository
from blockchain_service.services.event_publisher import EventPublisher
from blockchain_service.services.job_queue import JobQueue
from blockchain_service.services.job_service import BlockchainJobService
from blockchain_service.services.rpc_service import RpcService


logger = structlog.get_logger(__name__)


async def build_services() -> ServiceContainer:
    """Connect to the store, Redis and the event bus and wire the services."""
    session_factory = await init_database()

    redis = RedisClient()
    await redis.connect()

    publisher = EventPublisher()
    try:
        await publisher.connect()
    except PublisherError:
        # Jobs are still accepted; each publish retries the connection
        logger.critical("Starting without event bus connection")

    queue = JobQueue(redis.client)
    jobs_repository = JobRepository(session_factory)
    chain = ChainClient(settings)

    return ServiceContainer(
        session_factory=session_factory,
        redis=redis,
        publisher=publisher,
        queue=queue,
        job_service=BlockchainJobService(jobs_repository, queue),
        rpc_service=RpcService(chain, ContractRegistry(settings)),
    )


async def shutdown_services(services: ServiceContainer) -> None:
    await services.queue.stop()
    await services.publisher.close()
    await services.redis.disconnect()
    await close_database()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting blockchain service API", environment=settings.environment)

    services = await build_services()
    app.state.services = services

    if settings.run_worker_in_api:
        processor = create_processor(
            JobRepository(services.session_factory),
            services.publisher,
        )
        await services.queue.start(processor.process)
        logger.info("In-process job worker started", concurrency=settings.worker_concurrency)

    yield

    logger.info("Shutting down blockchain service API")
    await shutdown_services(services)


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    When ``services`` is given the lifespan hook is skipped and the app
    serves from the supplied container.
    """
    setup_logging()

    app = FastAPI(
        title=settings.app_name,
        description="Queues marketplace business events as signed EVM transactions "
                    "and exposes read-only chain queries.",
        version=settings.app_version,
        lifespan=None if services is not None else lifespan,
    )
    if services is not None:
        app.state.services = services

    add_middleware(app)
    add_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(jobs.router, prefix="/jobs", tags=["Jobs"])
    app.include_router(rpc.router, prefix="/rpc", tags=["RPC"])

    logger.info("FastAPI application created successfully")
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        create_app(),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower()
    )
