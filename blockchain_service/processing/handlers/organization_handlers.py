"""
Handlers for organization contract events.
"""

from blockchain_service.blockchain.abis import FACTORY_ABI, ContractName
from blockchain_service.blockchain.client import ReceiptInfo
from blockchain_service.blockchain.logs import find_event_log
from blockchain_service.core.exceptions import TransactionRevertedError
from blockchain_service.schemas.payloads import (
    ZERO_ADDRESS,
    CreateOrgContractPayload,
    GrantCreatorRolePayload,
    RevokeCreatorRolePayload,
    WithdrawOrgEarningsPayload,
)
from .base import BaseHandlers, EventOutput


class OrganizationHandlers(BaseHandlers):
    """Org contract deployment, creator roles and revenue withdrawal."""

    service_name = "organization_handlers"

    async def handle_create_org_contract(
        self,
        payload: CreateOrgContractPayload,
        event_output: EventOutput,
    ) -> ReceiptInfo:
        """
        Deploy an org contract through the factory as the platform admin.

        The primary receipt is the factory call. A reverted verifier grant
        that follows is the only failure in the service that does not fail
        the job.
        """
        factory = self.chain.get_contract(ContractName.FACTORY, self.registry.factory_address())
        create_tx = await factory.transact(
            "createOrgContract",
            payload.principal_wallet_address,
            ZERO_ADDRESS,
        )
        receipt = await self.chain.wait_for_success(create_tx, "create org contract")

        created = find_event_log(receipt, FACTORY_ABI, "OrgContractCreated")
        org_contract_address = created.args["orgContract"]
        event_output["contractAddress"] = org_contract_address
        self.logger.info(
            "Org contract created",
            organization_id=payload.organization_id,
            org_contract=org_contract_address,
            tx_hash=receipt.tx_hash,
        )

        verifier = payload.verifier_address
        if verifier:
            await self._grant_verifier_creator_role(payload, org_contract_address, verifier)

        return receipt

    async def _grant_verifier_creator_role(
        self,
        payload: CreateOrgContractPayload,
        org_contract_address: str,
        verifier: str,
    ) -> None:
        try:
            async with self.kms.user_private_key(payload.principal_user_id) as private_key:
                org = self.chain.get_contract_for_user(
                    ContractName.ORG_CONTRACT, org_contract_address, private_key
                )
                grant_tx = await org.transact("addCreator", verifier)
            await self.chain.wait_for_success(grant_tx, "grant verifier creator role")
        except TransactionRevertedError as e:
            # Org contract exists on-chain; role is fixed up manually.
            # Key or submission failures still fail the job.
            self.logger.critical(
                "Failed to grant verifier creator role on new org contract, manual intervention required",
                organization_id=payload.organization_id,
                org_contract=org_contract_address,
                verifier=verifier,
                error=e.message,
            )
            return

        self.logger.info(
            "Verifier creator role granted",
            org_contract=org_contract_address,
            verifier=verifier,
            tx_hash=grant_tx.tx_hash,
        )

    async def handle_withdraw_org_earnings(
        self,
        payload: WithdrawOrgEarningsPayload,
        event_output: EventOutput,
    ) -> ReceiptInfo:
        """Withdraw all pending org earnings from its revenue distributor as the principal."""
        org_contract_address = await self.organizations.get_contract_address_by_id(payload.organization_id)

        org = self.chain.get_contract(ContractName.ORG_CONTRACT, org_contract_address)
        distributor_address = await org.call("revenueDistributor")

        async with self.kms.user_private_key(payload.principal_user_id) as private_key:
            distributor = self.chain.get_contract_for_user(
                ContractName.REVENUE_DISTRIBUTOR, distributor_address, private_key
            )
            tx = await distributor.transact("withdrawAllOrgEarnings", org_contract_address)

        return await self.chain.wait_for_success(tx, "withdraw earnings")

    async def handle_grant_creator_role(
        self,
        payload: GrantCreatorRolePayload,
        event_output: EventOutput,
    ) -> ReceiptInfo:
        org_contract_address = await self.organizations.get_contract_address_by_id(payload.organization_id)
        org = self.chain.get_contract(ContractName.ORG_CONTRACT, org_contract_address)
        tx = await org.transact("addCreator", payload.user_wallet_address)
        return await self.chain.wait_for_success(tx, "grant creator role")

    async def handle_revoke_creator_role(
        self,
        payload: RevokeCreatorRolePayload,
        event_output: EventOutput,
    ) -> ReceiptInfo:
        org_contract_address = await self.organizations.get_contract_address_by_id(payload.organization_id)
        org = self.chain.get_contract(ContractName.ORG_CONTRACT, org_contract_address)
        tx = await org.transact("removeCreator", payload.user_wallet_address)
        return await self.chain.wait_for_success(tx, "revoke creator role")
