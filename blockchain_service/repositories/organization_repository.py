"""
Read-only organization directory used to resolve org contract addresses.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from blockchain_service.core.database import get_session_maker
from blockchain_service.core.exceptions import ChainError, OrganizationNotFoundError
from blockchain_service.models.organization import Organization


logger = structlog.get_logger(__name__)


class OrganizationRepository:
    """Lookups against the organizations table."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory
        self.logger = logger.bind(service="organization_repository")

    async def find_by_id(self, organization_id: str) -> Optional[Organization]:
        factory = self._session_factory or get_session_maker()
        async with factory() as session:
            return await session.get(Organization, organization_id)

    async def find_by_site_address(self, site_address: str) -> Optional[Organization]:
        factory = self._session_factory or get_session_maker()
        async with factory() as session:
            result = await session.execute(
                select(Organization).where(Organization.site_address == site_address)
            )
            return result.scalar_one_or_none()

    async def get_contract_address_by_id(self, organization_id: str) -> str:
        """
        Raises:
            OrganizationNotFoundError: unknown organization id
            ChainError: organization has no deployed contract yet
        """
        organization = await self.find_by_id(organization_id)
        if organization is None:
            raise OrganizationNotFoundError(
                f"Organization {organization_id} not found.",
                {"organization_id": organization_id}
            )
        if not organization.contract_address:
            raise ChainError(
                f"Organization {organization_id} does not have a contract address.",
                {"organization_id": organization_id}
            )
        return organization.contract_address

    async def get_contract_address_by_site(self, site_address: str) -> str:
        organization = await self.find_by_site_address(site_address)
        if organization is None:
            raise OrganizationNotFoundError(
                f"Org at site {site_address} not found.",
                {"site_address": site_address}
            )
        if not organization.contract_address:
            raise ChainError(
                f"Org at site {site_address} has no contract address.",
                {"site_address": site_address}
            )
        return organization.contract_address
