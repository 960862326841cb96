"""
Handlers for platform faucet transfers.
"""

from blockchain_service.blockchain.abis import ContractName
from blockchain_service.blockchain.client import ReceiptInfo
from blockchain_service.schemas.payloads import FundUserWalletPayload
from .base import BaseHandlers, EventOutput


class WalletHandlers(BaseHandlers):
    """Faucet funding of new user wallets."""

    service_name = "wallet_handlers"

    async def handle_fund_user_wallet(
        self,
        payload: FundUserWalletPayload,
        event_output: EventOutput,
    ) -> ReceiptInfo:
        """
        Send gas money then test stablecoin from the faucet wallet.

        The stablecoin transfer uses the native transfer's nonce + 1 and is
        the primary receipt.
        """
        faucet = self.chain.faucet_account
        recipient = payload.recipient_address
        native_amount = self.ctx.config.faucet_native_amount
        usdc_amount = self.ctx.config.faucet_usdc_amount

        nonces = await self.chain.start_nonce(faucet.address)

        native_tx = await self.chain.send_native(faucet, recipient, native_amount, nonce=nonces.current)
        nonces.advance(native_tx.nonce)
        self.logger.info(
            "Native funding sent",
            recipient=recipient,
            amount=native_amount,
            nonce=native_tx.nonce,
            tx_hash=native_tx.tx_hash,
        )
        await self.chain.wait_for_success(native_tx, "fund native currency")

        usdc = self.chain.get_contract(ContractName.STABLECOIN, self.registry.usdc_address(), signer=faucet)
        usdc_tx = await usdc.transact("transfer", recipient, usdc_amount, nonce=nonces.current)
        nonces.advance(usdc_tx.nonce)
        self.logger.info(
            "Stablecoin funding sent",
            recipient=recipient,
            amount=usdc_amount,
            nonce=usdc_tx.nonce,
            tx_hash=usdc_tx.tx_hash,
        )
        return await self.chain.wait_for_success(usdc_tx, "transfer stablecoin")
