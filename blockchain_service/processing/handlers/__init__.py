"""
Per-event transaction-sequence handlers.
"""

from .base import BaseHandlers, EventOutput, HandlerContext
from .asset_handlers import AssetHandlers
from .organization_handlers import OrganizationHandlers
from .wallet_handlers import WalletHandlers

__all__ = [
    "BaseHandlers",
    "EventOutput",
    "HandlerContext",
    "AssetHandlers",
    "OrganizationHandlers",
    "WalletHandlers",
]
