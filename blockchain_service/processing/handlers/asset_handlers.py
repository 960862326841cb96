"""
Handlers for asset lifecycle events on org contracts.
"""

from typing import Dict, Optional

from hexbytes import HexBytes

from blockchain_service.blockchain.abis import ASSET_REGISTRY_ABI, ContractName
from blockchain_service.blockchain.client import ReceiptInfo
from blockchain_service.blockchain.logs import find_event_log
from blockchain_service.core.exceptions import PayloadValidationError
from blockchain_service.schemas.payloads import (
    AssetCategory,
    AssetType,
    CreateAssetPayload,
    LicenseAssetPayload,
    ProductionStatus,
    StoragePool,
    VerifyAssetPayload,
)
from .base import BaseHandlers, EventOutput


# Solidity enum indices on the org contract
FX_POOL_INDEX: Dict[StoragePool, int] = {
    StoragePool.VDAS: 0,
    StoragePool.PII: 1,
    StoragePool.DT: 2,
}

ASSET_TYPE_INDEX: Dict[AssetType, int] = {
    AssetType.LEASE: 0,
    AssetType.WORKING_INTEREST: 1,
    AssetType.MINERAL: 2,
    AssetType.OVERRIDE: 3,
}

ASSET_CATEGORY_INDEX: Dict[AssetCategory, int] = {
    AssetCategory.A: 0,
    AssetCategory.B: 1,
    AssetCategory.C: 2,
}

PRODUCTION_STATUS_INDEX: Dict[ProductionStatus, int] = {
    ProductionStatus.ACTIVE: 0,
    ProductionStatus.PENDING: 1,
    ProductionStatus.AVAILABLE: 2,
    ProductionStatus.DRILLING: 3,
    ProductionStatus.PRODUCING: 4,
    ProductionStatus.IDLE: 5,
    ProductionStatus.EXPIRED: 6,
}


def _index_or_default(mapping: Dict, value: Optional[object]) -> int:
    """Optional O&G attributes fall back to the first enum member."""
    if value is None:
        return 0
    return mapping.get(value, 0)


def _asset_hash_bytes(asset_hash: str) -> bytes:
    try:
        value = HexBytes(asset_hash)
    except ValueError as e:
        raise PayloadValidationError(f"assetHash is not valid hex: {asset_hash}") from e
    if len(value) != 32:
        raise PayloadValidationError(f"assetHash must be 32 bytes, got {len(value)}")
    return bytes(value)


class AssetHandlers(BaseHandlers):
    """Asset creation, licensing and verification."""

    service_name = "asset_handlers"

    async def handle_create_asset(
        self,
        payload: CreateAssetPayload,
        event_output: EventOutput,
    ) -> ReceiptInfo:
        """
        Register an asset on the creator's org contract, signed by the creator.

        The asset id is assigned by the asset registry and recovered from its
        AssetRegistered log in the same receipt.
        """
        org_contract_address = await self.organizations.get_contract_address_by_site(payload.site_address)
        fx_pool_index = FX_POOL_INDEX.get(payload.fx_pool)
        if fx_pool_index is None:
            raise PayloadValidationError(f"Unsupported fxPool type: {payload.fx_pool}")
        asset_hash = _asset_hash_bytes(payload.asset_hash)

        async with self.kms.user_private_key(payload.user_id) as private_key:
            org = self.chain.get_contract_for_user(
                ContractName.ORG_CONTRACT, org_contract_address, private_key
            )
            tx = await org.transact(
                "createAsset",
                payload.asset_cid,
                payload.metadata_hash,
                asset_hash,
                payload.price,
                payload.is_encrypted,
                payload.can_be_licensed,
                fx_pool_index,
                payload.time_stamp,
                [],
                _index_or_default(ASSET_TYPE_INDEX, payload.asset_type),
                _index_or_default(ASSET_CATEGORY_INDEX, payload.category),
                _index_or_default(PRODUCTION_STATUS_INDEX, payload.production_status),
                payload.basin or "",
                payload.acreage or 0,
                payload.state or "",
                payload.county or "",
                payload.location or "",
                payload.projected_roi or 0,
            )

        receipt = await self.chain.wait_for_success(tx, "create asset")

        registered = find_event_log(receipt, ASSET_REGISTRY_ABI, "AssetRegistered")
        asset_id = str(registered.args["assetId"])
        event_output["onChainAssetId"] = asset_id
        self.logger.info(
            "Asset registered on-chain",
            on_chain_asset_id=asset_id,
            org_contract=org_contract_address,
            tx_hash=receipt.tx_hash,
        )
        return receipt

    async def handle_license_asset(
        self,
        payload: LicenseAssetPayload,
        event_output: EventOutput,
    ) -> ReceiptInfo:
        """
        Buy a license as the buyer.

        Approves the license manager for exactly the price when the current
        stablecoin allowance is short, then calls licenseAsset. Both
        transactions come from one nonce sequence; the license call is the
        primary receipt.
        """
        org_contract_address = await self.organizations.get_contract_address_by_site(payload.site_address)
        usdc_address = self.registry.usdc_address()

        async with self.kms.user_private_key(payload.user_id) as private_key:
            usdc = self.chain.get_contract_for_user(ContractName.STABLECOIN, usdc_address, private_key)
            org = self.chain.get_contract_for_user(ContractName.ORG_CONTRACT, org_contract_address, private_key)

            buyer = org.signer_address
            license_manager = await org.call("licenseManager")
            nonces = await self.chain.start_nonce(buyer)

            allowance = await usdc.call("allowance", buyer, license_manager)
            self.logger.info(
                "Checked license allowance",
                buyer=buyer,
                required=payload.price,
                allowance=allowance,
                nonce=nonces.current,
            )

            if allowance < payload.price:
                approve_tx = await usdc.transact(
                    "approve", license_manager, payload.price, nonce=nonces.current
                )
                nonces.advance(approve_tx.nonce)
                await self.chain.wait_for_success(approve_tx, "approve license payment")
            else:
                self.logger.info("Sufficient allowance, skipping approve", buyer=buyer)

            license_tx = await org.transact(
                "licenseAsset",
                payload.on_chain_asset_id,
                [int(permission) for permission in payload.permissions],
                payload.reseller_fee,
                nonce=nonces.current,
            )
            nonces.advance(license_tx.nonce)

        return await self.chain.wait_for_success(license_tx, "license asset")

    async def handle_verify_asset(
        self,
        payload: VerifyAssetPayload,
        event_output: EventOutput,
    ) -> ReceiptInfo:
        org_contract_address = await self.organizations.get_contract_address_by_site(payload.site_address)

        async with self.kms.platform_verifier_private_key() as private_key:
            org = self.chain.get_contract_for_user(
                ContractName.ORG_CONTRACT, org_contract_address, private_key
            )
            tx = await org.transact("verifyAsset", payload.on_chain_asset_id)

        return await self.chain.wait_for_success(tx, "verify asset")
