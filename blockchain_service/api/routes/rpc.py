"""
API routes for read-only chain queries.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends
import structlog

from blockchain_service.api.dependencies import get_rpc_service
from blockchain_service.core.exceptions import NotFoundError
from blockchain_service.services.rpc_service import RpcService


logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/wallets/{wallet_address}/balance", summary="Wallet balances")
async def get_wallet_balance(
    wallet_address: str,
    rpc: RpcService = Depends(get_rpc_service),
) -> Dict[str, str]:
    """Native and stablecoin balances in base units."""
    return await rpc.get_wallet_balance(wallet_address)


@router.get("/receipts/{tx_hash}", summary="Transaction receipt")
async def get_transaction_receipt(
    tx_hash: str,
    rpc: RpcService = Depends(get_rpc_service),
) -> Dict[str, Any]:
    receipt = await rpc.get_transaction_receipt(tx_hash)
    if receipt is None:
        raise NotFoundError(f"Receipt for transaction {tx_hash} not found.", {"tx_hash": tx_hash})
    return receipt


@router.get("/assets/check-hash/{asset_hash}", summary="Asset hash registered")
async def check_asset_hash(
    asset_hash: str,
    rpc: RpcService = Depends(get_rpc_service),
) -> Dict[str, bool]:
    return await rpc.check_asset_hash(asset_hash)


@router.get("/factory/fees", summary="Platform fees")
async def get_platform_fees(rpc: RpcService = Depends(get_rpc_service)) -> Dict[str, str]:
    return await rpc.get_platform_fees()


@router.get("/orgs/{org_contract_address}/integrator", summary="Org integration partner")
async def get_integration_partner(
    org_contract_address: str,
    rpc: RpcService = Depends(get_rpc_service),
) -> Dict[str, str]:
    return await rpc.get_integration_partner(org_contract_address)


@router.get("/orgs/{org_contract_address}/earnings", summary="Org pending earnings")
async def get_organization_earnings(
    org_contract_address: str,
    rpc: RpcService = Depends(get_rpc_service),
) -> Dict[str, str]:
    return await rpc.get_organization_earnings(org_contract_address)


@router.get("/revenue-distributor/stats/{org_contract_address}", summary="Org revenue stats")
async def get_revenue_stats(
    org_contract_address: str,
    rpc: RpcService = Depends(get_rpc_service),
) -> Dict[str, str]:
    return await rpc.get_revenue_stats(org_contract_address)


@router.get("/revenue-distributor/earnings/{org_contract_address}", summary="Org earnings breakdown")
async def get_org_earnings_breakdown(
    org_contract_address: str,
    rpc: RpcService = Depends(get_rpc_service),
) -> Dict[str, str]:
    return await rpc.get_org_earnings_breakdown(org_contract_address)


@router.get("/revenue-distributor/fees/{org_contract_address}", summary="Org fee split")
async def get_custom_fees(
    org_contract_address: str,
    rpc: RpcService = Depends(get_rpc_service),
) -> Dict[str, Any]:
    """Org-specific fee split, or the platform defaults when none is set."""
    return await rpc.get_custom_fees(org_contract_address)
