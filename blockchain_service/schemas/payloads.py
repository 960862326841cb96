"""
Typed job payloads, one model per chain event type.

Payloads arrive as camelCase JSON from the marketplace services. Each model
validates exactly what its transaction sequence needs and lets the remaining
keys (release ids, peer ids, ...) pass through untouched.
"""

from enum import Enum, IntEnum
from typing import Annotated, Any, Dict, List, Optional, Type

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from web3 import Web3

from blockchain_service.core.exceptions import PayloadValidationError
from blockchain_service.models.blockchain_job import ChainEventType


ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def _checksum_address(value: str) -> str:
    if not Web3.is_address(value):
        raise ValueError(f"Invalid address: {value}")
    return Web3.to_checksum_address(value)


EthAddress = Annotated[str, AfterValidator(_checksum_address)]
Uint256 = Annotated[int, Field(ge=0)]


class StoragePool(str, Enum):
    """IPFS storage pool an asset was pinned to."""
    VDAS = "VDAS"
    PII = "PII"
    DT = "DT"


class AssetType(str, Enum):
    """O&G asset types available in the marketplace."""
    LEASE = "Lease"
    WORKING_INTEREST = "WorkingInterest"
    MINERAL = "Mineral"
    OVERRIDE = "Override"


class AssetCategory(str, Enum):
    A = "A"
    B = "B"
    C = "C"


class ProductionStatus(str, Enum):
    """Current production status of an O&G asset."""
    ACTIVE = "Active"
    PENDING = "Pending"
    AVAILABLE = "Available"
    DRILLING = "Drilling"
    PRODUCING = "Producing"
    IDLE = "Idle"
    EXPIRED = "Expired"


class LicensePermission(IntEnum):
    """License rights, encoded as uint8 on the org contract."""
    VIEW = 0
    RESELL = 1


class JobPayload(BaseModel):
    """Common payload fields. Every payload carries the caller's txId."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    tx_id: str = Field(min_length=1)


class CreateOrgContractPayload(JobPayload):
    organization_id: str
    principal_user_id: str
    principal_wallet_address: EthAddress
    platform_verifier_wallet_address: Optional[str] = None

    @property
    def verifier_address(self) -> Optional[str]:
        """Verifier to grant the creator role to, if one was supplied."""
        address = self.platform_verifier_wallet_address
        if not address or address.lower() == ZERO_ADDRESS:
            return None
        return _checksum_address(address)


class CreateAssetPayload(JobPayload):
    user_id: str
    site_address: str
    asset_cid: str = Field(alias="assetCID")
    metadata_hash: str
    asset_hash: str
    price: Uint256
    is_encrypted: bool
    can_be_licensed: bool
    fx_pool: StoragePool
    time_stamp: Uint256

    # O&G-specific fields
    asset_type: Optional[AssetType] = None
    category: Optional[AssetCategory] = None
    production_status: Optional[ProductionStatus] = None
    basin: Optional[str] = None
    acreage: Optional[Uint256] = None
    state: Optional[str] = None
    county: Optional[str] = None
    location: Optional[str] = None
    projected_roi: Optional[Uint256] = Field(default=None, alias="projectedROI")


class LicenseAssetPayload(JobPayload):
    user_id: str
    site_address: str
    on_chain_asset_id: Uint256
    price: Uint256
    permissions: List[LicensePermission]
    reseller_fee: Uint256

    @field_validator("permissions", mode="before")
    @classmethod
    def parse_permission_names(cls, value: Any) -> Any:
        """Accept permission names ("View") as well as their uint8 codes."""
        if not isinstance(value, list):
            return value
        parsed = []
        for item in value:
            if isinstance(item, str) and item.upper() in LicensePermission.__members__:
                parsed.append(LicensePermission[item.upper()])
            else:
                parsed.append(item)
        return parsed


class FundUserWalletPayload(JobPayload):
    recipient_address: EthAddress


class WithdrawOrgEarningsPayload(JobPayload):
    organization_id: str
    principal_user_id: str


class CreatorRolePayload(JobPayload):
    organization_id: str
    user_wallet_address: EthAddress


class GrantCreatorRolePayload(CreatorRolePayload):
    pass


class RevokeCreatorRolePayload(CreatorRolePayload):
    pass


class VerifyAssetPayload(JobPayload):
    site_address: str
    on_chain_asset_id: Uint256


PAYLOAD_MODELS: Dict[ChainEventType, Type[JobPayload]] = {
    ChainEventType.CREATE_ORG_CONTRACT: CreateOrgContractPayload,
    ChainEventType.CREATE_ASSET: CreateAssetPayload,
    ChainEventType.LICENSE_ASSET: LicenseAssetPayload,
    ChainEventType.FUND_USER_WALLET: FundUserWalletPayload,
    ChainEventType.WITHDRAW_ORG_EARNINGS: WithdrawOrgEarningsPayload,
    ChainEventType.GRANT_CREATOR_ROLE: GrantCreatorRolePayload,
    ChainEventType.REVOKE_CREATOR_ROLE: RevokeCreatorRolePayload,
    ChainEventType.VERIFY_ASSET: VerifyAssetPayload,
}


def _describe_errors(error: PydanticValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "payload"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


def get_typed_payload(event_type: ChainEventType, payload: Any) -> JobPayload:
    """
    Validate a raw job payload against the model for its event type.

    Raises:
        PayloadValidationError: if the payload is not an object or does not
            match the shape required by ``event_type``.
    """
    model = PAYLOAD_MODELS.get(event_type)
    if model is None:
        raise PayloadValidationError(
            f"No payload model registered for event type {event_type}",
            {"event_type": str(event_type)}
        )

    if not isinstance(payload, dict):
        raise PayloadValidationError(
            f"Payload for {event_type.value} must be an object",
            {"event_type": event_type.value}
        )

    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        raise PayloadValidationError(
            f"Invalid payload for {event_type.value}: {_describe_errors(e)}",
            {"event_type": event_type.value}
        ) from e
