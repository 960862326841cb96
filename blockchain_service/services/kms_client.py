"""
Client for the key management service.

Private keys are handed out through async context managers so that key
material only lives for the duration of the ``async with`` block that signs
with it. Keys are never cached, stored on the client, or logged.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import aiohttp
import structlog

from blockchain_service.core.config import settings
from blockchain_service.core.exceptions import KMSError


logger = structlog.get_logger(__name__)


class KMSClient:
    """HTTP client for the wallet key endpoints of the KMS."""

    VERIFIER_KEY_PATH = "/wallets/platform/verifier-private-key"

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[int] = None):
        self.base_url = (base_url or settings.kms_service_url).rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout or settings.http_timeout)
        self.logger = logger.bind(service="kms_client")

    @asynccontextmanager
    async def user_private_key(self, user_id: str) -> AsyncIterator[str]:
        """Scoped private key of a marketplace user."""
        key = await self._fetch_private_key(
            f"/wallets/users/{user_id}/private-key",
            owner=f"user {user_id}",
        )
        try:
            yield key
        finally:
            del key

    @asynccontextmanager
    async def platform_verifier_private_key(self) -> AsyncIterator[str]:
        """Scoped private key of the dedicated platform verifier."""
        key = await self._fetch_private_key(self.VERIFIER_KEY_PATH, owner="platform verifier")
        try:
            yield key
        finally:
            del key

    async def _fetch_private_key(self, path: str, owner: str) -> str:
        url = f"{self.base_url}{path}"
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(url) as response:
                    if not 200 <= response.status < 300:
                        self.logger.error(
                            "KMS request failed",
                            owner=owner,
                            status=response.status,
                        )
                        raise KMSError(
                            f"Failed to retrieve private key for {owner}: KMS responded {response.status}",
                            {"owner": owner, "status": response.status}
                        )
                    data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error("KMS unreachable", owner=owner, error=str(e))
            raise KMSError(
                f"Failed to retrieve private key for {owner}: {e.__class__.__name__}",
                {"owner": owner}
            ) from e
        except ValueError as e:
            raise KMSError(
                f"Failed to retrieve private key for {owner}: invalid KMS response",
                {"owner": owner}
            ) from e

        key = data.get("privateKey") if isinstance(data, dict) else None
        if not key or not isinstance(key, str):
            raise KMSError(
                f"Failed to retrieve private key for {owner}: response has no key",
                {"owner": owner}
            )

        self.logger.debug("Signing key retrieved", owner=owner)
        return key
