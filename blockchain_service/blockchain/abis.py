"""
ABI fragments for the Empressa contract suite.

Only the functions and events this service calls or decodes are listed.
"""

from enum import Enum
from typing import Any, Dict, List


class ContractName(str, Enum):
    """Logical contract names, matching the compiled artifact names."""
    FACTORY = "EmpressaContractFactoryUpgradeable"
    ORG_CONTRACT = "EmpressaOrgContract"
    REVENUE_DISTRIBUTOR = "EmpressaRevenueDistributor"
    ASSET_REGISTRY = "EmpressaAssetRegistry"
    STABLECOIN = "MockUSDC"


def _param(name: str, type_: str, indexed: bool = None) -> Dict[str, Any]:
    param = {"name": name, "type": type_, "internalType": type_}
    if indexed is not None:
        param["indexed"] = indexed
    return param


def _function(
    name: str,
    inputs: List[Dict[str, Any]],
    outputs: List[Dict[str, Any]] = None,
    mutability: str = "nonpayable",
) -> Dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": inputs,
        "outputs": outputs or [],
        "stateMutability": mutability,
    }


def _view(name: str, inputs: List[Dict[str, Any]], outputs: List[Dict[str, Any]]) -> Dict[str, Any]:
    return _function(name, inputs, outputs, mutability="view")


def _event(name: str, inputs: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"type": "event", "name": name, "inputs": inputs, "anonymous": False}


FACTORY_ABI = [
    _function(
        "createOrgContract",
        [_param("principal", "address"), _param("integrationPartner", "address")],
        [_param("", "address")],
    ),
    _view(
        "getPlatformFees",
        [],
        [_param("integratorFee", "uint256"), _param("EmpressaFee", "uint256")],
    ),
    _event(
        "OrgContractCreated",
        [
            _param("orgContract", "address", indexed=True),
            _param("principal", "address", indexed=True),
            _param("integrationPartner", "address", indexed=False),
        ],
    ),
]

ORG_CONTRACT_ABI = [
    _function("addCreator", [_param("creator", "address")]),
    _function("removeCreator", [_param("creator", "address")]),
    _function(
        "createAsset",
        [
            _param("assetCID", "string"),
            _param("metadataHash", "string"),
            _param("assetHash", "bytes32"),
            _param("price", "uint256"),
            _param("isEncrypted", "bool"),
            _param("canBeLicensed", "bool"),
            _param("fxPool", "uint8"),
            _param("timeStamp", "uint256"),
            _param("geoRestrictions", "string[]"),
            _param("assetType", "uint8"),
            _param("category", "uint8"),
            _param("productionStatus", "uint8"),
            _param("basin", "string"),
            _param("acreage", "uint256"),
            _param("state", "string"),
            _param("county", "string"),
            _param("location", "string"),
            _param("projectedROI", "uint256"),
        ],
        [_param("assetId", "uint256")],
    ),
    _function(
        "licenseAsset",
        [
            _param("assetId", "uint256"),
            _param("permissions", "uint8[]"),
            _param("resellerFee", "uint256"),
        ],
    ),
    _function("verifyAsset", [_param("assetId", "uint256")]),
    _view("licenseManager", [], [_param("", "address")]),
    _view("revenueDistributor", [], [_param("", "address")]),
    _view("integrationPartner", [], [_param("", "address")]),
]

REVENUE_DISTRIBUTOR_ABI = [
    _function("withdrawAllOrgEarnings", [_param("orgContract", "address")]),
    _view("getOrgPendingTotal", [_param("orgContract", "address")], [_param("", "uint256")]),
    _view(
        "getRevenueStats",
        [_param("orgContract", "address")],
        [
            _param("total", "uint256"),
            _param("creatorTotal", "uint256"),
            _param("EmpressaTotal", "uint256"),
            _param("integratorTotal", "uint256"),
        ],
    ),
    _view(
        "getOrgEarnings",
        [_param("orgContract", "address")],
        [
            _param("pendingEmpressa", "uint256"),
            _param("pendingIntegrator", "uint256"),
            _param("pendingCreators", "uint256"),
            _param("distributedEmpressa", "uint256"),
            _param("distributedIntegrator", "uint256"),
            _param("distributedCreators", "uint256"),
        ],
    ),
    _view(
        "getCustomFees",
        [_param("orgContract", "address")],
        [_param("EmpressaFeePct", "uint256"), _param("integratorFeePct", "uint256")],
    ),
]

ASSET_REGISTRY_ABI = [
    _view("globalAssetHashExists", [_param("assetHash", "bytes32")], [_param("", "bool")]),
    _event(
        "AssetRegistered",
        [
            _param("orgContract", "address", indexed=True),
            _param("assetId", "uint256", indexed=True),
            _param("creator", "address", indexed=True),
            _param("assetHash", "bytes32", indexed=False),
        ],
    ),
]

STABLECOIN_ABI = [
    _function(
        "approve",
        [_param("spender", "address"), _param("amount", "uint256")],
        [_param("", "bool")],
    ),
    _function(
        "transfer",
        [_param("to", "address"), _param("amount", "uint256")],
        [_param("", "bool")],
    ),
    _view(
        "allowance",
        [_param("owner", "address"), _param("spender", "address")],
        [_param("", "uint256")],
    ),
    _view("balanceOf", [_param("account", "address")], [_param("", "uint256")]),
]


ABIS: Dict[ContractName, List[Dict[str, Any]]] = {
    ContractName.FACTORY: FACTORY_ABI,
    ContractName.ORG_CONTRACT: ORG_CONTRACT_ABI,
    ContractName.REVENUE_DISTRIBUTOR: REVENUE_DISTRIBUTOR_ABI,
    ContractName.ASSET_REGISTRY: ASSET_REGISTRY_ABI,
    ContractName.STABLECOIN: STABLECOIN_ABI,
}


def get_abi(name: ContractName) -> List[Dict[str, Any]]:
    return ABIS[ContractName(name)]
