"""
Job processing: handler dispatch and terminal-state publication.
"""

from .processor import BlockchainJobProcessor, create_processor

__all__ = ["BlockchainJobProcessor", "create_processor"]
