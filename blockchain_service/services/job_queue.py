"""
Durable job queue on Redis.

Layout under ``<redis_prefix><queue_name>:``
- ``waiting``   list of message ids ready to run (LPUSH, FIFO)
- ``delayed``   sorted set of message ids scored by due time (backoff)
- ``active``    list of message ids claimed by a worker; BLMOVE from
                ``waiting`` so a claimed id is always in one of the two
- ``msg:<id>``  hash with the message data and delivery bookkeeping

The message id is the job id, so a job occupies at most one queue slot no
matter how many times it is enqueued.
"""

import asyncio
import json
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from redis.asyncio import Redis
import structlog

from blockchain_service.core.config import settings
from blockchain_service.core.exceptions import QueueError


logger = structlog.get_logger(__name__)

MessageHandler = Callable[[Dict[str, Any]], Awaitable[None]]


class MessageState:
    WAITING = "waiting"
    ACTIVE = "active"
    DELAYED = "delayed"
    COMPLETED = "completed"
    FAILED = "failed"
    STALLED = "stalled"


class JobQueue:
    """At-least-once queue with exponential backoff and dead-lettering."""

    def __init__(
        self,
        redis: Redis,
        name: Optional[str] = None,
        prefix: Optional[str] = None,
        poll_timeout: Optional[int] = None,
        retention: Optional[int] = None,
    ):
        self.redis = redis
        self.name = name or settings.queue_name
        self._base = f"{prefix if prefix is not None else settings.redis_prefix}{self.name}:"
        self.poll_timeout = poll_timeout if poll_timeout is not None else settings.queue_poll_timeout
        self.retention = retention or settings.queue_retention
        self._running = False
        self._tasks: List[asyncio.Task] = []
        self.logger = logger.bind(service="job_queue", queue=self.name)

    # Keys
    @property
    def waiting_key(self) -> str:
        return f"{self._base}waiting"

    @property
    def delayed_key(self) -> str:
        return f"{self._base}delayed"

    @property
    def active_key(self) -> str:
        return f"{self._base}active"

    def message_key(self, message_id: str) -> str:
        return f"{self._base}msg:{message_id}"

    # Producer side
    async def enqueue(
        self,
        message_id: str,
        data: Dict[str, Any],
        attempts: Optional[int] = None,
        backoff_delay: Optional[float] = None,
    ) -> bool:
        """
        Add a message unless one with the same id already exists.

        Returns:
            True if the message was queued, False if it was a duplicate
        """
        key = self.message_key(message_id)
        try:
            created = await self.redis.hsetnx(key, "data", json.dumps(data))
            if not created:
                self.logger.info("Duplicate message ignored", message_id=message_id)
                return False

            await self.redis.hset(key, mapping={
                "attempts": attempts or settings.queue_attempts,
                "backoff_delay": backoff_delay if backoff_delay is not None else settings.queue_backoff_delay,
                "attempts_made": 0,
                "state": MessageState.WAITING,
                "created_at": time.time(),
            })
            await self.redis.lpush(self.waiting_key, message_id)
        except Exception as e:
            self.logger.error("Failed to enqueue message", message_id=message_id, error=str(e))
            raise QueueError(f"Failed to enqueue message {message_id}: {e}") from e

        self.logger.info("Message enqueued", message_id=message_id)
        return True

    async def get_message(self, message_id: str) -> Optional[Dict[str, str]]:
        data = await self.redis.hgetall(self.message_key(message_id))
        return data or None

    async def get_counts(self) -> Dict[str, int]:
        return {
            "waiting": await self.redis.llen(self.waiting_key),
            "delayed": await self.redis.zcard(self.delayed_key),
            "active": await self.redis.llen(self.active_key),
        }

    # Consumer side
    async def promote_delayed(self, now: Optional[float] = None) -> int:
        """Move delayed messages whose backoff has elapsed back to waiting."""
        now = now if now is not None else time.time()
        due = await self.redis.zrangebyscore(self.delayed_key, 0, now)
        promoted = 0
        for message_id in due:
            # zrem doubles as a claim when several workers promote at once
            if await self.redis.zrem(self.delayed_key, message_id):
                await self.redis.hset(self.message_key(message_id), "state", MessageState.WAITING)
                await self.redis.lpush(self.waiting_key, message_id)
                promoted += 1
        if promoted:
            self.logger.debug("Delayed messages promoted", count=promoted)
        return promoted

    async def claim_next(self, timeout: Optional[int] = None) -> Optional[str]:
        """Atomically move the oldest waiting message to active and return its id."""
        return await self.redis.blmove(
            self.waiting_key,
            self.active_key,
            self.poll_timeout if timeout is None else timeout,
            "RIGHT",
            "LEFT",
        )

    async def process_message(
        self,
        message_id: str,
        handler: MessageHandler,
        now: Optional[float] = None,
    ) -> str:
        """
        Run ``handler`` for a claimed message and record the outcome.

        Returns the new state; the id leaves the active list either way.
        """
        key = self.message_key(message_id)
        message = await self.redis.hgetall(key)
        if not message:
            await self.redis.lrem(self.active_key, 1, message_id)
            self.logger.warning("Message record missing, skipping", message_id=message_id)
            return MessageState.FAILED

        attempts_made = await self.redis.hincrby(key, "attempts_made", 1)
        await self.redis.hset(key, "state", MessageState.ACTIVE)

        try:
            await handler(json.loads(message["data"]))
        except Exception as e:
            return await self._handle_failure(message_id, message, attempts_made, e, now)
        else:
            await self.redis.hset(key, mapping={
                "state": MessageState.COMPLETED,
                "finished_at": time.time(),
            })
            await self.redis.expire(key, self.retention)
            self.logger.debug("Message completed", message_id=message_id, attempt=attempts_made)
            return MessageState.COMPLETED
        finally:
            await self.redis.lrem(self.active_key, 1, message_id)

    async def _handle_failure(
        self,
        message_id: str,
        message: Dict[str, str],
        attempts_made: int,
        error: Exception,
        now: Optional[float],
    ) -> str:
        key = self.message_key(message_id)
        max_attempts = int(message.get("attempts") or settings.queue_attempts)

        if attempts_made >= max_attempts:
            await self.redis.hset(key, mapping={
                "state": MessageState.FAILED,
                "last_error": str(error),
                "finished_at": time.time(),
            })
            await self.redis.expire(key, self.retention)
            self.logger.error(
                "Message failed permanently",
                message_id=message_id,
                attempts=attempts_made,
                error=str(error),
            )
            return MessageState.FAILED

        delay = self.backoff_delay(float(message.get("backoff_delay") or 0), attempts_made)
        due = (now if now is not None else time.time()) + delay
        await self.redis.hset(key, mapping={"state": MessageState.DELAYED, "last_error": str(error)})
        await self.redis.zadd(self.delayed_key, {message_id: due})
        self.logger.warning(
            "Message failed, retry scheduled",
            message_id=message_id,
            attempt=attempts_made,
            max_attempts=max_attempts,
            retry_in=delay,
            error=str(error),
        )
        return MessageState.DELAYED

    @staticmethod
    def backoff_delay(base_delay: float, attempts_made: int) -> float:
        """Exponential backoff: base, 2*base, 4*base, ..."""
        return base_delay * (2 ** (attempts_made - 1))

    async def recover_stalled(self) -> List[str]:
        """
        Clear messages left active by a crashed worker.

        They are flagged as stalled and not requeued, their jobs stay in
        SUBMITTED for manual inspection.
        """
        stalled = list(await self.redis.lrange(self.active_key, 0, -1))
        for message_id in stalled:
            await self.redis.hset(self.message_key(message_id), "state", MessageState.STALLED)
            await self.redis.lrem(self.active_key, 1, message_id)
            self.logger.warning("Stalled message found from previous run", message_id=message_id)
        return stalled

    # Worker lifecycle
    async def start(self, handler: MessageHandler, concurrency: Optional[int] = None) -> None:
        if self._running:
            return
        self._running = True
        await self.recover_stalled()

        concurrency = concurrency or settings.worker_concurrency
        for slot in range(concurrency):
            self._tasks.append(asyncio.create_task(self._worker_loop(slot, handler)))
        self.logger.info("Queue workers started", concurrency=concurrency)

    async def stop(self) -> None:
        """Stop taking new messages and wait for in-flight ones to finish."""
        if not self._running:
            return
        self._running = False
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self.logger.info("Queue workers stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    async def _worker_loop(self, slot: int, handler: MessageHandler) -> None:
        while self._running:
            try:
                await self.promote_delayed()
                message_id = await self.claim_next()
                if message_id is None:
                    continue
                await self.process_message(message_id, handler)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.error("Queue worker error", slot=slot, error=str(e))
                await asyncio.sleep(1)
