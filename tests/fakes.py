"""
In-memory doubles for the chain, the KMS and the AMQP exchange.
"""

from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from eth_abi import encode as abi_encode
from eth_account import Account
from eth_utils import event_abi_to_log_topic
from hexbytes import HexBytes
from web3 import Web3

from blockchain_service.blockchain.abis import ContractName
from blockchain_service.blockchain.client import ReceiptInfo, SubmittedTransaction
from blockchain_service.blockchain.logs import get_event_abi
from blockchain_service.blockchain.nonce import NonceTracker
from blockchain_service.core.exceptions import ChainError, KMSError, TransactionRevertedError


# Well-known local development keys
ADMIN_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
FAUCET_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"
USER_KEY = "0x5de4111afa1a4b94908f83103eb1f1706367c2e68ca870fc3fb9a804cdab365a"
VERIFIER_KEY = "0x7c852118294e51e653712a81e05800f419141751be58f605c371e15141b007a6"

ADMIN_ADDRESS = Account.from_key(ADMIN_KEY).address
FAUCET_ADDRESS = Account.from_key(FAUCET_KEY).address
USER_ADDRESS = Account.from_key(USER_KEY).address
VERIFIER_ADDRESS = Account.from_key(VERIFIER_KEY).address

FACTORY_ADDRESS = Web3.to_checksum_address("0x5fbdb2315678afecb367f032d93f642f64180aa3")
ASSET_REGISTRY_ADDRESS = Web3.to_checksum_address("0xe7f1725e7734ce288f8367e1bb143e90bb3f0512")
USDC_ADDRESS = Web3.to_checksum_address("0x9fe46736679d2d9a65f0992f2272de9f3c7fa6e0")
ORG_CONTRACT_ADDRESS = Web3.to_checksum_address("0xcf7ed3acca5a467e9e704c703e8d87f634fb0fc9")
LICENSE_MANAGER_ADDRESS = Web3.to_checksum_address("0xdc64a140aa3e981100a9beca4e685f962f0cf6c9")
DISTRIBUTOR_ADDRESS = Web3.to_checksum_address("0x5fc8d32690cc91d4c39d9d3abcbd16989f875707")


def action(name: ContractName, function_name: str) -> str:
    """Description the chain client gives a contract call."""
    return f"{name.value}.{function_name}"


def encode_event_log(abi: List[Dict[str, Any]], event_name: str, address: str, **values: Any) -> Dict[str, Any]:
    """Build a receipt log the way a node would emit it."""
    event_abi = get_event_abi(abi, event_name)
    topics = [HexBytes(event_abi_to_log_topic(event_abi))]
    data_types, data_values = [], []
    for arg in event_abi["inputs"]:
        if arg.get("indexed"):
            topics.append(HexBytes(abi_encode([arg["type"]], [values[arg["name"]]])))
        else:
            data_types.append(arg["type"])
            data_values.append(values[arg["name"]])
    return {
        "address": address,
        "topics": topics,
        "data": HexBytes(abi_encode(data_types, data_values)),
    }


@dataclass
class SentTransaction:
    sender: str
    description: str
    args: Tuple[Any, ...]
    nonce: int
    tx_hash: str
    value: Optional[int] = None


class FakeContract:
    """Contract handle double recording calls against a FakeChain."""

    def __init__(self, chain: "FakeChain", name: ContractName, address: str, signer=None):
        self._chain = chain
        self.name = ContractName(name)
        self.address = address
        self._signer = signer

    @property
    def signer_address(self) -> Optional[str]:
        return self._signer.address if self._signer else None

    async def call(self, function_name: str, *args: Any) -> Any:
        key = action(self.name, function_name)
        self._chain.calls.append((key, args))
        result = self._chain.call_results[key]
        return result(*args) if callable(result) else result

    async def transact(self, function_name: str, *args: Any, nonce: Optional[int] = None, value: Optional[int] = None):
        if self._signer is None:
            raise ChainError(f"Contract handle for {self.name.value} has no signer")
        if nonce is None:
            nonce = await self._chain.get_nonce(self._signer.address)
        await self._chain.before_submit_hook()
        return self._chain.submit(self._signer, action(self.name, function_name), args, nonce, value)


class FakeChain:
    """
    Chain client double.

    Tracks a pending nonce per sender and rejects submissions that do not use
    it, the way a node's pending pool would.
    """

    def __init__(self):
        self.admin_account = Account.from_key(ADMIN_KEY)
        self.faucet_account = Account.from_key(FAUCET_KEY)
        self.pending_nonces: Dict[str, int] = defaultdict(int)
        self.sent: List[SentTransaction] = []
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self.call_results: Dict[str, Any] = {}
        self.receipt_logs: Dict[str, List[Dict[str, Any]]] = {}
        self.reverting: Set[str] = set()
        self.nonce_queries = 0
        self.block_number = 100
        self.balances: Dict[str, int] = {}
        self.receipts: Dict[str, Dict[str, Any]] = {}
        self.before_submit: Optional[Callable[[], Awaitable[None]]] = None

    def get_contract(self, name: ContractName, address: str, signer=None) -> FakeContract:
        return FakeContract(self, name, address, signer or self.admin_account)

    def get_read_contract(self, name: ContractName, address: str) -> FakeContract:
        return FakeContract(self, name, address)

    def get_contract_for_user(self, name: ContractName, address: str, private_key: str) -> FakeContract:
        return FakeContract(self, name, address, Account.from_key(private_key))

    async def get_nonce(self, address: str) -> int:
        self.nonce_queries += 1
        return self.pending_nonces[address]

    async def start_nonce(self, address: str) -> NonceTracker:
        return NonceTracker(address, await self.get_nonce(address))

    async def before_submit_hook(self) -> None:
        if self.before_submit is not None:
            await self.before_submit()

    def submit(self, signer, description: str, args: Tuple[Any, ...], nonce: int, value: Optional[int] = None):
        expected = self.pending_nonces[signer.address]
        if nonce != expected:
            raise ChainError(f"nonce mismatch for {signer.address}: got {nonce}, pending {expected}")
        self.pending_nonces[signer.address] += 1

        tx_hash = "0x" + f"{len(self.sent) + 1:064x}"
        self.sent.append(SentTransaction(signer.address, description, args, nonce, tx_hash, value))
        return SubmittedTransaction(tx_hash=tx_hash, nonce=nonce, sender=signer.address, description=description)

    async def send_native(self, signer, to: str, value: int, nonce: Optional[int] = None):
        if nonce is None:
            nonce = await self.get_nonce(signer.address)
        await self.before_submit_hook()
        return self.submit(signer, "native transfer", (to,), nonce, value)

    async def wait_for_success(self, tx: SubmittedTransaction, action_name: str) -> ReceiptInfo:
        self.block_number += 1
        status = 0 if tx.description in self.reverting else 1
        receipt = ReceiptInfo(
            tx_hash=tx.tx_hash,
            block_number=self.block_number,
            status=status,
            logs=self.receipt_logs.get(tx.description, []),
        )
        if not receipt.succeeded:
            raise TransactionRevertedError(action_name, tx.tx_hash)
        return receipt

    async def get_balance(self, address: str) -> int:
        return self.balances.get(address, 0)

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return self.receipts.get(tx_hash)

    def sent_by(self, description: str) -> List[SentTransaction]:
        return [tx for tx in self.sent if tx.description == description]


class FakeKMS:
    """KMS double handing out keys from a dict."""

    def __init__(self, user_keys: Optional[Dict[str, str]] = None, verifier_key: Optional[str] = VERIFIER_KEY):
        self.user_keys = dict(user_keys or {})
        self.verifier_key = verifier_key
        self.requests: List[str] = []
        self.open_scopes = 0

    @asynccontextmanager
    async def user_private_key(self, user_id: str):
        self.requests.append(f"user:{user_id}")
        key = self.user_keys.get(user_id)
        if key is None:
            raise KMSError(f"Failed to retrieve private key for user {user_id}: 404")
        self.open_scopes += 1
        try:
            yield key
        finally:
            self.open_scopes -= 1

    @asynccontextmanager
    async def platform_verifier_private_key(self):
        self.requests.append("verifier")
        if self.verifier_key is None:
            raise KMSError("Failed to retrieve private key for platform verifier: 404")
        self.open_scopes += 1
        try:
            yield self.verifier_key
        finally:
            self.open_scopes -= 1


@dataclass
class PublishedMessage:
    routing_key: str
    body: bytes
    content_type: Optional[str]
    delivery_mode: Any
    message_id: Optional[str]


@dataclass
class FakeExchange:
    """Stands in for an aio-pika exchange."""
    published: List[PublishedMessage] = field(default_factory=list)
    fail_with: Optional[Exception] = None

    async def publish(self, message, routing_key: str, **kwargs):
        if self.fail_with is not None:
            raise self.fail_with
        self.published.append(PublishedMessage(
            routing_key=routing_key,
            body=message.body,
            content_type=message.content_type,
            delivery_mode=message.delivery_mode,
            message_id=message.message_id,
        ))
