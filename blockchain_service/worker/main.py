"""
Main entry point for the standalone job worker.

    python -m blockchain_service.worker.main
"""

import asyncio
import signal
from typing import Optional

import structlog

from blockchain_service.core.config import settings
from blockchain_service.core.database import close_database, get_session_maker, init_database
from blockchain_service.core.logging import setup_logging
from blockchain_service.core.redis import RedisClient
from blockchain_service.processing.processor import BlockchainJobProcessor, create_processor
from blockchain_service.repositories.job_repository import JobRepository
from blockchain_service.services.event_publisher import EventPublisher
from blockchain_service.services.job_queue import JobQueue


logger = structlog.get_logger(__name__)


class WorkerMain:
    """
    Job worker service coordinator.

    Owns the database, Redis and event bus connections and runs the queue
    consumers until asked to stop.
    """

    def __init__(self):
        self.redis: Optional[RedisClient] = None
        self.publisher: Optional[EventPublisher] = None
        self.queue: Optional[JobQueue] = None
        self.processor: Optional[BlockchainJobProcessor] = None
        self._stop_event = asyncio.Event()

    async def initialize(self):
        """Connect to backing services and build the processor."""
        try:
            logger.info("Initializing job worker")

            await init_database()

            self.redis = RedisClient()
            await self.redis.connect()

            # Fail fast: a worker without the event bus would drop every event
            self.publisher = EventPublisher()
            await self.publisher.connect()

            self.queue = JobQueue(self.redis.client)
            self.processor = create_processor(
                JobRepository(get_session_maker()),
                self.publisher,
            )

            logger.info("Job worker initialized", queue=self.queue.name)

        except Exception as e:
            logger.error("Failed to initialize job worker", error=str(e))
            raise

    async def start(self):
        """Run queue consumers until stop() is called."""
        logger.info("Starting job worker", concurrency=settings.worker_concurrency)
        await self.queue.start(self.processor.process, settings.worker_concurrency)
        await self._stop_event.wait()

    def request_stop(self):
        self._stop_event.set()

    async def stop(self):
        """Drain in-flight jobs and close connections."""
        logger.info("Stopping job worker")
        self._stop_event.set()

        if self.queue:
            await self.queue.stop()
        if self.publisher:
            await self.publisher.close()
        if self.redis:
            await self.redis.disconnect()
        await close_database()

        logger.info("Job worker stopped")


async def main():
    """Main function to run the worker service."""
    setup_logging()

    worker = WorkerMain()

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, worker.request_stop)

    try:
        await worker.initialize()
        await worker.start()
    except Exception as e:
        logger.error("Worker service failed", error=str(e))
        raise
    finally:
        await worker.stop()


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
