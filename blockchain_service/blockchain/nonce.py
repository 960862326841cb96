"""
Handler-local nonce bookkeeping for multi-transaction sequences.
"""

from blockchain_service.core.exceptions import ChainError


class NonceTracker:
    """
    Sequential nonces for one signer within one handler invocation.

    Seeded once from the node's pending transaction count; the next nonce is
    only handed out after the previous transaction was submitted. Not shared
    across jobs.
    """

    def __init__(self, address: str, start: int):
        self.address = address
        self.start = start
        self._next = start

    @property
    def current(self) -> int:
        """Nonce for the next transaction."""
        return self._next

    def advance(self, submitted_nonce: int) -> int:
        """Record that ``submitted_nonce`` reached the node and move on."""
        if submitted_nonce != self._next:
            raise ChainError(
                f"Nonce mismatch for {self.address}: submitted {submitted_nonce}, expected {self._next}",
                {"address": self.address, "submitted": submitted_nonce, "expected": self._next}
            )
        self._next += 1
        return self._next

    def __repr__(self) -> str:
        return f"<NonceTracker(address={self.address}, start={self.start}, next={self._next})>"
