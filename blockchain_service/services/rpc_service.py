"""
Read-only chain queries exposed to the marketplace services.
"""

import asyncio
from typing import Any, Dict, Optional

from hexbytes import HexBytes
from web3 import Web3
import structlog

from blockchain_service.blockchain.abis import ContractName
from blockchain_service.blockchain.client import ChainClient, ContractHandle
from blockchain_service.blockchain.registry import ContractRegistry
from blockchain_service.core.exceptions import ChainError, ValidationError
from blockchain_service.schemas.payloads import ZERO_ADDRESS


logger = structlog.get_logger(__name__)


def _checked_address(value: str) -> str:
    if not Web3.is_address(value):
        raise ValidationError(f"Invalid address: {value}")
    return Web3.to_checksum_address(value)


class RpcService:
    """Balances, receipts and contract state lookups. Amounts are returned as strings."""

    def __init__(self, chain: ChainClient, registry: ContractRegistry):
        self.chain = chain
        self.registry = registry
        self.logger = logger.bind(service="rpc_service")

    async def get_wallet_balance(self, wallet_address: str) -> Dict[str, str]:
        wallet_address = _checked_address(wallet_address)
        self.logger.info("Fetching wallet balances", wallet=wallet_address)
        usdc = self.chain.get_read_contract(ContractName.STABLECOIN, self.registry.usdc_address())
        native_balance, usdc_balance = await asyncio.gather(
            self.chain.get_balance(wallet_address),
            usdc.call("balanceOf", wallet_address),
        )
        return {
            "nativeBalance": str(native_balance),
            "usdcBalance": str(usdc_balance),
        }

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        self.logger.info("Fetching transaction receipt", tx_hash=tx_hash)
        return await self.chain.get_transaction_receipt(tx_hash)

    async def check_asset_hash(self, asset_hash: str) -> Dict[str, bool]:
        self.logger.info("Checking asset hash", asset_hash=asset_hash)
        try:
            hash_bytes = HexBytes(asset_hash)
        except ValueError as e:
            raise ValidationError(f"Invalid asset hash: {asset_hash}") from e
        if len(hash_bytes) != 32:
            raise ValidationError(f"Asset hash must be 32 bytes: {asset_hash}")

        registry = self.chain.get_read_contract(
            ContractName.ASSET_REGISTRY, self.registry.asset_registry_address()
        )
        exists = await registry.call("globalAssetHashExists", bytes(hash_bytes))
        return {"exists": bool(exists)}

    async def get_platform_fees(self) -> Dict[str, str]:
        factory = self.chain.get_read_contract(ContractName.FACTORY, self.registry.factory_address())
        integrator_fee, empressa_fee = await factory.call("getPlatformFees")
        return {
            "integratorFee": str(integrator_fee),
            "EmpressaFee": str(empressa_fee),
        }

    async def get_integration_partner(self, org_contract_address: str) -> Dict[str, str]:
        org_contract_address = _checked_address(org_contract_address)
        org = self.chain.get_read_contract(ContractName.ORG_CONTRACT, org_contract_address)
        return {"integrationPartner": await org.call("integrationPartner")}

    async def get_organization_earnings(self, org_contract_address: str) -> Dict[str, str]:
        org_contract_address = _checked_address(org_contract_address)
        distributor = await self._revenue_distributor(org_contract_address, required=True)
        pending = await distributor.call("getOrgPendingTotal", org_contract_address)
        return {"pendingEarnings": str(pending)}

    async def get_revenue_stats(self, org_contract_address: str) -> Dict[str, str]:
        org_contract_address = _checked_address(org_contract_address)
        distributor = await self._revenue_distributor(org_contract_address, required=True)
        total, creator_total, empressa_total, integrator_total = await distributor.call(
            "getRevenueStats", org_contract_address
        )
        return {
            "total": str(total),
            "creatorTotal": str(creator_total),
            "EmpressaTotal": str(empressa_total),
            "integratorTotal": str(integrator_total),
        }

    async def get_org_earnings_breakdown(self, org_contract_address: str) -> Dict[str, str]:
        org_contract_address = _checked_address(org_contract_address)
        distributor = await self._revenue_distributor(org_contract_address, required=True)
        values = await distributor.call("getOrgEarnings", org_contract_address)
        keys = (
            "pendingEmpressa",
            "pendingIntegrator",
            "pendingCreators",
            "distributedEmpressa",
            "distributedIntegrator",
            "distributedCreators",
        )
        return {key: str(value) for key, value in zip(keys, values)}

    async def get_custom_fees(self, org_contract_address: str) -> Dict[str, Any]:
        """Org-specific fee split, falling back to platform defaults."""
        org_contract_address = _checked_address(org_contract_address)
        platform_fees = await self.get_platform_fees()
        distributor = await self._revenue_distributor(org_contract_address, required=False)
        if distributor is None:
            return {
                "EmpressaFeePct": platform_fees["EmpressaFee"],
                "integratorFeePct": platform_fees["integratorFee"],
                "hasCustomFees": False,
            }

        empressa_fee, integrator_fee = await distributor.call("getCustomFees", org_contract_address)
        return {
            "EmpressaFeePct": str(empressa_fee),
            "integratorFeePct": str(integrator_fee),
            "hasCustomFees": (
                str(empressa_fee) != platform_fees["EmpressaFee"]
                or str(integrator_fee) != platform_fees["integratorFee"]
            ),
        }

    async def _revenue_distributor(
        self,
        org_contract_address: str,
        required: bool,
    ) -> Optional[ContractHandle]:
        org_contract_address = _checked_address(org_contract_address)
        org = self.chain.get_read_contract(ContractName.ORG_CONTRACT, org_contract_address)
        address = await org.call("revenueDistributor")
        if not address or address.lower() == ZERO_ADDRESS:
            if required:
                raise ChainError(
                    "Organization has no revenue distributor configured",
                    {"org_contract": org_contract_address}
                )
            return None
        return self.chain.get_read_contract(ContractName.REVENUE_DISTRIBUTOR, address)
