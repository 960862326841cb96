"""
Shared collaborators for the transaction-sequence handlers.
"""

from dataclasses import dataclass
from typing import Any, Dict

import structlog

from blockchain_service.blockchain.client import ChainClient
from blockchain_service.blockchain.registry import ContractRegistry
from blockchain_service.core.config import Settings
from blockchain_service.repositories.organization_repository import OrganizationRepository
from blockchain_service.services.kms_client import KMSClient


logger = structlog.get_logger(__name__)

# Extra data merged into the finalized event, filled in by handlers
EventOutput = Dict[str, Any]


@dataclass
class HandlerContext:
    """Everything a handler needs to drive its chain calls."""
    chain: ChainClient
    registry: ContractRegistry
    kms: KMSClient
    organizations: OrganizationRepository
    config: Settings


class BaseHandlers:
    """
    Base class for handler groups.

    Each ``handle_*`` coroutine runs one event type's fixed sequence of chain
    calls, records identifiers recovered from logs in ``event_output`` and
    returns the receipt of its primary transaction. Any failure is raised.
    """

    service_name = "handlers"

    def __init__(self, context: HandlerContext):
        self.ctx = context
        self.chain = context.chain
        self.registry = context.registry
        self.kms = context.kms
        self.organizations = context.organizations
        self.logger = logger.bind(service=self.service_name)
