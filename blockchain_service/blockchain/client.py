"""
EVM chain client for the Empressa contract suite.
Wraps an AsyncWeb3 JSON-RPC connection and hands out signer-bound contract handles.
"""

from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field

from eth_account import Account
from eth_account.signers.local import LocalAccount
from hexbytes import HexBytes
from web3 import AsyncWeb3, AsyncHTTPProvider, Web3
from web3.contract import AsyncContract
from web3.exceptions import TimeExhausted, TransactionNotFound, Web3Exception
import structlog

from blockchain_service.core.config import Settings, settings as default_settings
from blockchain_service.core.exceptions import (
    ChainError,
    MissingConfigurationError,
    TransactionRevertedError,
)
from .abis import ContractName, get_abi
from .nonce import NonceTracker


logger = structlog.get_logger(__name__)


@dataclass
class SubmittedTransaction:
    """A signed transaction accepted by the node's pending pool."""
    tx_hash: str
    nonce: int
    sender: str
    description: str


@dataclass
class ReceiptInfo:
    """Normalized transaction receipt."""
    tx_hash: str
    block_number: int
    status: int
    logs: List[Dict[str, Any]] = field(default_factory=list)
    gas_used: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @classmethod
    def from_web3(cls, receipt: Any) -> "ReceiptInfo":
        logs = []
        for entry in receipt.get("logs") or []:
            logs.append({
                "address": entry.get("address"),
                "topics": [HexBytes(topic) for topic in entry.get("topics") or []],
                "data": HexBytes(entry.get("data") or b""),
            })
        return cls(
            tx_hash=Web3.to_hex(HexBytes(receipt["transactionHash"])),
            block_number=int(receipt["blockNumber"]),
            status=int(receipt["status"]),
            logs=logs,
            gas_used=receipt.get("gasUsed"),
        )


class ContractHandle:
    """A deployed contract bound to an optional signing account."""

    def __init__(
        self,
        client: "ChainClient",
        name: ContractName,
        contract: AsyncContract,
        signer: Optional[LocalAccount] = None,
    ):
        self._client = client
        self.name = ContractName(name)
        self.contract = contract
        self._signer = signer

    @property
    def address(self) -> str:
        return self.contract.address

    @property
    def signer_address(self) -> Optional[str]:
        return self._signer.address if self._signer else None

    async def call(self, function_name: str, *args: Any) -> Any:
        """Execute a read-only contract call."""
        function = getattr(self.contract.functions, function_name)(*args)
        params = {"from": self._signer.address} if self._signer else {}
        try:
            return await function.call(params)
        except Web3Exception as e:
            raise ChainError(
                f"Call to {self.name.value}.{function_name} failed: {e}",
                {"contract": self.address, "function": function_name}
            ) from e

    async def transact(
        self,
        function_name: str,
        *args: Any,
        nonce: Optional[int] = None,
        value: Optional[int] = None,
    ) -> SubmittedTransaction:
        """Build, sign and submit a state-changing call."""
        if self._signer is None:
            raise ChainError(
                f"Contract handle for {self.name.value} has no signer",
                {"contract": self.address, "function": function_name}
            )

        if nonce is None:
            nonce = await self._client.get_nonce(self._signer.address)

        tx_params: Dict[str, Any] = {"from": self._signer.address, "nonce": nonce}
        if value:
            tx_params["value"] = value

        description = f"{self.name.value}.{function_name}"
        try:
            built_tx = await getattr(self.contract.functions, function_name)(*args).build_transaction(tx_params)
        except Web3Exception as e:
            raise ChainError(
                f"Failed to build transaction for {description}: {e}",
                {"contract": self.address, "function": function_name}
            ) from e

        return await self._client.send_signed(self._signer, built_tx, description)


class ChainClient:
    """
    Async EVM client.

    Provides:
    - Contract handles signed by the platform admin, the faucet, or an
      ephemeral account built from caller-supplied key material
    - Native-value transfers
    - Receipt polling with revert detection
    - Direct provider access for balance and receipt queries
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        w3: Optional[AsyncWeb3] = None,
    ):
        self._config = config or default_settings
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(self._config.rpc_url))
        self._admin_account: Optional[LocalAccount] = None
        self._faucet_account: Optional[LocalAccount] = None
        self.logger = logger.bind(service="chain_client")

    def get_provider(self) -> AsyncWeb3:
        return self.w3

    @property
    def admin_account(self) -> LocalAccount:
        if self._admin_account is None:
            key = self._config.admin_wallet_private_key
            if key is None or not key.get_secret_value():
                raise MissingConfigurationError("ADMIN_WALLET_PRIVATE_KEY")
            self._admin_account = Account.from_key(key.get_secret_value())
        return self._admin_account

    @property
    def faucet_account(self) -> LocalAccount:
        if self._faucet_account is None:
            key = self._config.faucet_wallet_private_key
            if key is None or not key.get_secret_value():
                raise MissingConfigurationError("FAUCET_WALLET_PRIVATE_KEY")
            self._faucet_account = Account.from_key(key.get_secret_value())
        return self._faucet_account

    def _bind(self, name: ContractName, address: str) -> AsyncContract:
        return self.w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(address),
            abi=get_abi(name),
        )

    def get_contract(
        self,
        name: ContractName,
        address: str,
        signer: Optional[LocalAccount] = None,
    ) -> ContractHandle:
        """Contract handle signed by ``signer`` or, by default, the platform admin."""
        return ContractHandle(self, name, self._bind(name, address), signer or self.admin_account)

    def get_read_contract(self, name: ContractName, address: str) -> ContractHandle:
        """Unsigned contract handle for pure reads."""
        return ContractHandle(self, name, self._bind(name, address))

    def get_contract_for_user(
        self,
        name: ContractName,
        address: str,
        private_key: str,
    ) -> ContractHandle:
        """Contract handle signed by an ephemeral account built from ``private_key``."""
        return ContractHandle(self, name, self._bind(name, address), Account.from_key(private_key))

    async def get_nonce(self, address: str) -> int:
        """Next nonce for ``address``, counting transactions still pending."""
        return await self.w3.eth.get_transaction_count(
            AsyncWeb3.to_checksum_address(address), "pending"
        )

    async def start_nonce(self, address: str) -> NonceTracker:
        """Seed a handler-local nonce sequence with a single query."""
        start = await self.get_nonce(address)
        self.logger.debug("Nonce sequence started", address=address, nonce=start)
        return NonceTracker(address, start)

    async def send_signed(
        self,
        signer: LocalAccount,
        tx: Dict[str, Any],
        description: str,
    ) -> SubmittedTransaction:
        """Sign ``tx`` locally and broadcast it."""
        try:
            signed = signer.sign_transaction(tx)
            tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except Web3Exception as e:
            raise ChainError(
                f"Failed to submit transaction for {description}: {e}",
                {"sender": signer.address, "nonce": tx.get("nonce")}
            ) from e

        submitted = SubmittedTransaction(
            tx_hash=Web3.to_hex(tx_hash),
            nonce=int(tx["nonce"]),
            sender=signer.address,
            description=description,
        )
        self.logger.info(
            "Transaction submitted",
            action=description,
            tx_hash=submitted.tx_hash,
            sender=submitted.sender,
            nonce=submitted.nonce,
        )
        return submitted

    async def send_native(
        self,
        signer: LocalAccount,
        to: str,
        value: int,
        nonce: Optional[int] = None,
    ) -> SubmittedTransaction:
        """Plain native-currency transfer."""
        if nonce is None:
            nonce = await self.get_nonce(signer.address)

        tx = {
            "to": AsyncWeb3.to_checksum_address(to),
            "value": value,
            "nonce": nonce,
            "gas": 21000,
            "gasPrice": await self.w3.eth.gas_price,
            "chainId": await self.w3.eth.chain_id,
        }
        return await self.send_signed(signer, tx, f"native transfer to {tx['to']}")

    async def wait_for_receipt(self, tx: SubmittedTransaction) -> ReceiptInfo:
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                HexBytes(tx.tx_hash),
                timeout=self._config.receipt_timeout,
                poll_latency=self._config.receipt_poll_interval,
            )
        except TimeExhausted as e:
            raise ChainError(
                f"Transaction {tx.tx_hash} ({tx.description}) was not mined within {self._config.receipt_timeout}s",
                {"tx_hash": tx.tx_hash}
            ) from e
        return ReceiptInfo.from_web3(receipt)

    async def wait_for_success(self, tx: SubmittedTransaction, action: str) -> ReceiptInfo:
        """
        Wait for ``tx`` to be mined and require a successful status.

        Raises:
            TransactionRevertedError: if the transaction was mined with status 0
        """
        receipt = await self.wait_for_receipt(tx)
        if not receipt.succeeded:
            self.logger.error(
                "Transaction reverted",
                action=action,
                tx_hash=receipt.tx_hash,
                block_number=receipt.block_number,
            )
            raise TransactionRevertedError(action, receipt.tx_hash)

        self.logger.info(
            "Transaction confirmed",
            action=action,
            tx_hash=receipt.tx_hash,
            block_number=receipt.block_number,
            gas_used=receipt.gas_used,
        )
        return receipt

    async def get_balance(self, address: str) -> int:
        try:
            return await self.w3.eth.get_balance(AsyncWeb3.to_checksum_address(address))
        except Web3Exception as e:
            raise ChainError(f"Failed to get balance: {e}", {"address": address}) from e

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Raw receipt as JSON-compatible data, or None if not mined yet."""
        try:
            receipt = await self.w3.eth.get_transaction_receipt(HexBytes(tx_hash))
        except TransactionNotFound:
            return None
        return json_safe(receipt)


def json_safe(value: Any) -> Any:
    """Convert web3 AttributeDicts and HexBytes into plain JSON types."""
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(value)
    if hasattr(value, "items"):
        return {key: json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(item) for item in value]
    return value
