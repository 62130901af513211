import logging
import time
from typing import Optional

from app.core.aptos_auth import generate_nonce, is_well_formed_nonce
from app.core.config import settings
from app.core.kv_store import KeyValueStore, cache_key
from app.schemas.auth import NonceResponse

logger = logging.getLogger(__name__)


def nonce_key(nonce: str) -> str:
    return cache_key("aptos-nonce", nonce)


class NonceStore:
    """
    Single-use sign-in challenges. A nonce lives in the key-value store for
    the authentication window and is valid until consumed or expired.
    """

    def __init__(self, kv: KeyValueStore, ttl_seconds: Optional[int] = None):
        self.kv = kv
        self.ttl_seconds = ttl_seconds or settings.NONCE_EXPIRY_SECONDS

    async def issue(self) -> NonceResponse:
        nonce = generate_nonce()
        created_at = int(time.time() * 1000)
        expires_at = created_at + self.ttl_seconds * 1000
        await self.kv.set(
            nonce_key(nonce),
            {"nonce": nonce, "createdAt": created_at, "expiresAt": expires_at},
            self.ttl_seconds,
        )
        logger.info("generated nonce: %s...", nonce[:8])
        return NonceResponse(nonce=nonce, expiresAt=expires_at)

    async def validate(self, nonce: str) -> bool:
        if not is_well_formed_nonce(nonce):
            return False
        return await self.kv.exists(nonce_key(nonce))

    async def consume(self, nonce: str) -> None:
        if not is_well_formed_nonce(nonce):
            return
        await self.kv.delete(nonce_key(nonce))

    async def claim(self, nonce: str) -> bool:
        """Validate and consume in one atomic step; only one caller can win."""
        if not is_well_formed_nonce(nonce):
            return False
        return await self.kv.getdel(nonce_key(nonce)) is not None
