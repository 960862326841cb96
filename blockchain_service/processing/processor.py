"""
Blockchain job processor.

Consumes ``{"jobId": ...}`` queue messages, drives each job through
QUEUED -> SUBMITTED -> SUCCESS | ERROR and publishes exactly one finalized
event per terminal transition.
"""

from typing import Any, Awaitable, Callable, Dict, Optional

import structlog

from blockchain_service.blockchain.client import ChainClient, ReceiptInfo
from blockchain_service.blockchain.registry import ContractRegistry
from blockchain_service.core.config import Settings, settings as default_settings
from blockchain_service.core.exceptions import ConfigurationError
from blockchain_service.models.blockchain_job import BlockchainJob, ChainEventType
from blockchain_service.repositories.job_repository import JobRepository
from blockchain_service.repositories.organization_repository import OrganizationRepository
from blockchain_service.schemas.events import ChainTransactionStatus, TransactionFinalizedEvent
from blockchain_service.schemas.payloads import JobPayload, get_typed_payload
from blockchain_service.services.event_publisher import EventPublisher
from blockchain_service.services.kms_client import KMSClient
from .handlers import (
    AssetHandlers,
    EventOutput,
    HandlerContext,
    OrganizationHandlers,
    WalletHandlers,
)


logger = structlog.get_logger(__name__)

EventHandler = Callable[[JobPayload, EventOutput], Awaitable[ReceiptInfo]]


class BlockchainJobProcessor:
    """
    Runs one job per queue message.

    Handler failures are recorded on the job and published as FAILED; they
    are not re-raised, so the queue never retries a job whose chain sequence
    already failed. Only errors outside the handler (store unavailable, ...)
    propagate to the queue's retry policy.
    """

    def __init__(
        self,
        jobs: JobRepository,
        publisher: EventPublisher,
        context: HandlerContext,
    ):
        self.jobs = jobs
        self.publisher = publisher
        self.logger = logger.bind(service="job_processor")

        self._organization_handlers = OrganizationHandlers(context)
        self._asset_handlers = AssetHandlers(context)
        self._wallet_handlers = WalletHandlers(context)

        self._event_handlers: Dict[ChainEventType, EventHandler] = {}
        self._setup_event_handlers()

    def _setup_event_handlers(self):
        """Setup event type to handler mappings."""
        self._event_handlers = {
            # Organization events
            ChainEventType.CREATE_ORG_CONTRACT: self._organization_handlers.handle_create_org_contract,
            ChainEventType.WITHDRAW_ORG_EARNINGS: self._organization_handlers.handle_withdraw_org_earnings,
            ChainEventType.GRANT_CREATOR_ROLE: self._organization_handlers.handle_grant_creator_role,
            ChainEventType.REVOKE_CREATOR_ROLE: self._organization_handlers.handle_revoke_creator_role,

            # Asset events
            ChainEventType.CREATE_ASSET: self._asset_handlers.handle_create_asset,
            ChainEventType.LICENSE_ASSET: self._asset_handlers.handle_license_asset,
            ChainEventType.VERIFY_ASSET: self._asset_handlers.handle_verify_asset,

            # Wallet events
            ChainEventType.FUND_USER_WALLET: self._wallet_handlers.handle_fund_user_wallet,
        }

        missing = set(ChainEventType) - set(self._event_handlers)
        if missing:
            raise ConfigurationError(
                "Event types without a handler",
                {"event_types": sorted(event_type.value for event_type in missing)}
            )

    async def process(self, data: Dict[str, Any]) -> None:
        """Queue message entry point."""
        job_id = data.get("jobId")
        self.logger.info("Processing job", job_id=job_id)

        job = await self.jobs.find_by_id(job_id) if job_id else None
        if job is None:
            self.logger.error("Job not found in database, skipping", job_id=job_id)
            return

        if job.is_terminal:
            self.logger.warning(
                "Job already finalized, skipping redelivery",
                job_id=job.id,
                status=job.status.value,
            )
            return

        submitted = await self.jobs.mark_submitted(job.id)
        if submitted is None:
            self.logger.warning("Job finalized concurrently, skipping", job_id=job.id)
            return

        event_output: EventOutput = {}
        try:
            receipt = await self._run_handler(submitted, event_output)
        except Exception as e:
            await self._finalize_failed(submitted, e)
        else:
            await self._finalize_succeeded(submitted, receipt, event_output)

    async def _run_handler(self, job: BlockchainJob, event_output: EventOutput) -> ReceiptInfo:
        handler = self._event_handlers.get(job.event_type)
        if handler is None:
            raise ConfigurationError(
                f"Unsupported event type: {job.event_type}",
                {"job_id": job.id}
            )

        payload = get_typed_payload(job.event_type, job.payload_json)
        self.logger.info(
            "Executing chain sequence",
            job_id=job.id,
            event_type=job.event_type.value,
            tx_id=payload.tx_id,
        )
        return await handler(payload, event_output)

    async def _finalize_succeeded(
        self,
        job: BlockchainJob,
        receipt: ReceiptInfo,
        event_output: EventOutput,
    ) -> None:
        finalized = await self.jobs.mark_succeeded(job.id)
        if finalized is None:
            self.logger.warning("Job finalized concurrently, not publishing", job_id=job.id)
            return

        self.logger.info(
            "Job succeeded",
            job_id=job.id,
            event_type=job.event_type.value,
            tx_hash=receipt.tx_hash,
            block_number=receipt.block_number,
        )
        await self.publisher.publish_transaction_finalized(
            TransactionFinalizedEvent.from_job(
                finalized,
                ChainTransactionStatus.CONFIRMED,
                tx_hash=receipt.tx_hash,
                block_number=str(receipt.block_number),
                event_output=event_output,
            )
        )

    async def _finalize_failed(self, job: BlockchainJob, error: Exception) -> None:
        error_message = str(error) or error.__class__.__name__
        self.logger.error(
            "Job failed",
            job_id=job.id,
            event_type=job.event_type.value,
            error=error_message,
            error_type=error.__class__.__name__,
        )

        finalized = await self.jobs.mark_failed(job.id, error_message)
        if finalized is None:
            self.logger.warning("Job finalized concurrently, not publishing", job_id=job.id)
            return

        # Partial event output is not carried on failure
        await self.publisher.publish_transaction_finalized(
            TransactionFinalizedEvent.from_job(
                finalized,
                ChainTransactionStatus.FAILED,
                error=error_message,
            )
        )


def create_processor(
    jobs: JobRepository,
    publisher: EventPublisher,
    chain: Optional[ChainClient] = None,
    kms: Optional[KMSClient] = None,
    organizations: Optional[OrganizationRepository] = None,
    config: Optional[Settings] = None,
) -> BlockchainJobProcessor:
    """Wire a processor with default collaborators."""
    config = config or default_settings
    context = HandlerContext(
        chain=chain or ChainClient(config),
        registry=ContractRegistry(config),
        kms=kms or KMSClient(),
        organizations=organizations or OrganizationRepository(),
        config=config,
    )
    return BlockchainJobProcessor(jobs, publisher, context)
