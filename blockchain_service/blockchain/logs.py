"""
Receipt log decoding for identifiers assigned on-chain.
"""

from dataclasses import dataclass
from typing import Any, Dict, List

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from eth_utils import event_abi_to_log_topic
from hexbytes import HexBytes
from web3 import Web3

from blockchain_service.core.exceptions import ConfigurationError, EventLogNotFoundError
from .client import ReceiptInfo


@dataclass
class DecodedEvent:
    """An event log decoded against its ABI."""
    name: str
    address: str
    args: Dict[str, Any]
    log_index: int


def get_event_abi(abi: List[Dict[str, Any]], event_name: str) -> Dict[str, Any]:
    for item in abi:
        if item.get("type") == "event" and item.get("name") == event_name:
            return item
    raise ConfigurationError(
        f"Event {event_name} is not part of the contract ABI",
        {"event_name": event_name}
    )


def _normalize(type_: str, value: Any) -> Any:
    if type_ == "address":
        return Web3.to_checksum_address(value)
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(value)
    return value


def decode_event_log(event_abi: Dict[str, Any], log: Dict[str, Any], log_index: int = 0) -> DecodedEvent:
    """Decode indexed arguments from topics and the rest from log data."""
    topics = [HexBytes(topic) for topic in log.get("topics") or []]
    indexed = [arg for arg in event_abi["inputs"] if arg.get("indexed")]
    non_indexed = [arg for arg in event_abi["inputs"] if not arg.get("indexed")]

    if len(topics) != len(indexed) + 1:
        raise DecodingError(
            f"expected {len(indexed) + 1} topics, got {len(topics)}"
        )

    args: Dict[str, Any] = {}
    for arg, topic in zip(indexed, topics[1:]):
        (value,) = abi_decode([arg["type"]], bytes(topic))
        args[arg["name"]] = _normalize(arg["type"], value)

    values = abi_decode([arg["type"] for arg in non_indexed], bytes(HexBytes(log.get("data") or b"")))
    for arg, value in zip(non_indexed, values):
        args[arg["name"]] = _normalize(arg["type"], value)

    return DecodedEvent(
        name=event_abi["name"],
        address=log.get("address"),
        args=args,
        log_index=log_index,
    )


def find_event_log(
    receipt: ReceiptInfo,
    abi: List[Dict[str, Any]],
    event_name: str,
) -> DecodedEvent:
    """
    Return the first log in ``receipt`` that matches ``event_name``.

    The match is on topic0, the keccak hash of the event signature. A missing
    or undecodable log is an error; callers never fall back to a guessed value.

    Raises:
        EventLogNotFoundError: if no log matches or the match cannot be decoded
    """
    event_abi = get_event_abi(abi, event_name)
    topic = HexBytes(event_abi_to_log_topic(event_abi))

    for index, log in enumerate(receipt.logs):
        topics = log.get("topics") or []
        if not topics or HexBytes(topics[0]) != topic:
            continue
        try:
            return decode_event_log(event_abi, log, index)
        except (DecodingError, ValueError) as e:
            raise EventLogNotFoundError(event_name, receipt.tx_hash, reason=f"undecodable log: {e}") from e

    raise EventLogNotFoundError(event_name, receipt.tx_hash)
