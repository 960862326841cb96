"""
Empressa Blockchain Service

Turns marketplace business events into signed on-chain transactions:
- Idempotent job intake with a durable Redis-backed queue
- Per-event transaction-sequence handlers with manual nonce tracking
- Receipt log decoding to recover on-chain identifiers
- Finalized-event publishing to the platform topic exchange
"""

__version__ = "0.1.0"
