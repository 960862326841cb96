"""
Contract registry - resolves logical contract names to deployed addresses.
"""

from typing import Optional

from web3 import Web3

from blockchain_service.core.config import Settings, settings as default_settings
from blockchain_service.core.exceptions import ConfigurationError, MissingConfigurationError
from .abis import ContractName


class ContractRegistry:
    """
    Fixed-address contracts read from configuration.

    Org contracts and revenue distributors are per-organization and are
    resolved at runtime (organization directory and ``revenueDistributor()``),
    so they have no entry here.
    """

    _SETTINGS_KEYS = {
        ContractName.FACTORY: ("factory_proxy_contract_address", "FACTORY_PROXY_CONTRACT_ADDRESS"),
        ContractName.ASSET_REGISTRY: ("asset_registry_contract_address", "ASSET_REGISTRY_CONTRACT_ADDRESS"),
        ContractName.STABLECOIN: ("usdc_contract_address", "USDC_CONTRACT_ADDRESS"),
    }

    def __init__(self, config: Optional[Settings] = None):
        self._config = config or default_settings

    def address_of(self, name: ContractName) -> str:
        """Return the checksummed address for ``name`` or fail fast."""
        try:
            attribute, env_name = self._SETTINGS_KEYS[ContractName(name)]
        except KeyError:
            raise ConfigurationError(
                f"Contract {name} has no configured address",
                {"contract": str(name)}
            )

        value = getattr(self._config, attribute, None)
        if not value:
            raise MissingConfigurationError(env_name)
        if not Web3.is_address(value):
            raise ConfigurationError(
                f"Invalid address configured for {env_name}: {value}",
                {"key": env_name}
            )
        return Web3.to_checksum_address(value)

    def factory_address(self) -> str:
        return self.address_of(ContractName.FACTORY)

    def asset_registry_address(self) -> str:
        return self.address_of(ContractName.ASSET_REGISTRY)

    def usdc_address(self) -> str:
        return self.address_of(ContractName.STABLECOIN)
