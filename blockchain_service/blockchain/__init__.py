"""
EVM integration: contract registry, chain client, nonce tracking and log decoding.
"""

from .abis import ContractName
from .client import ChainClient, ContractHandle, ReceiptInfo, SubmittedTransaction
from .logs import DecodedEvent, find_event_log
from .nonce import NonceTracker
from .registry import ContractRegistry

__all__ = [
    "ContractName",
    "ChainClient",
    "ContractHandle",
    "ReceiptInfo",
    "SubmittedTransaction",
    "DecodedEvent",
    "find_event_log",
    "NonceTracker",
    "ContractRegistry",
]
