import logging
from dataclasses import dataclass
from typing import Optional

import jwt

from app.core.aptos_auth import normalize_address
from app.core.config import settings
from app.core.errors import RefreshTokenInvalid, RefreshTokenMissing
from app.core.jwt_utils import (
    DEFAULT_ACCESS_TOKEN_SECONDS,
    DEFAULT_REFRESH_TOKEN_SECONDS,
    build_claims,
    create_token,
    decode_token,
    parse_duration,
)
from app.core.kv_store import KeyValueStore, cache_key

logger = logging.getLogger(__name__)


def refresh_token_key(wallet_address: str) -> str:
    return cache_key("refresh-token", normalize_address(wallet_address))


@dataclass(frozen=True)
class TokenIdentity:
    wallet_address: str
    user_id: str


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


class TokenService:
    """
    Access/refresh token lifecycle.

    One refresh token is kept per wallet address; issuing a new pair replaces
    it. Concurrent logins or refreshes for the same address race on that slot
    and the last write wins.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        access_expire: Optional[str] = None,
        refresh_expire: Optional[str] = None,
    ):
        self.kv = kv
        self.access_ttl = parse_duration(
            access_expire or settings.JWT_ACCESS_TOKEN_EXPIRE, DEFAULT_ACCESS_TOKEN_SECONDS
        )
        self.refresh_ttl = parse_duration(
            refresh_expire or settings.JWT_REFRESH_TOKEN_EXPIRE, DEFAULT_REFRESH_TOKEN_SECONDS
        )

    def access_token_ttl_seconds(self) -> int:
        return self.access_ttl

    def _claims(self, identity: TokenIdentity) -> dict:
        return build_claims(normalize_address(identity.wallet_address), identity.user_id)

    async def issue_pair(self, identity: TokenIdentity) -> TokenPair:
        claims = self._claims(identity)
        access_token = create_token(claims, self.access_ttl)
        refresh_token = create_token(claims, self.refresh_ttl)
        await self.kv.set(refresh_token_key(identity.wallet_address), refresh_token, self.refresh_ttl)
        return TokenPair(access_token=access_token, refresh_token=refresh_token)

    def issue_access_token(self, identity: TokenIdentity) -> str:
        return create_token(self._claims(identity), self.access_ttl)

    async def refresh(self, claimed_address: str) -> str:
        """
        Mint a new access token from the stored refresh token. A stored token
        that no longer verifies, or belongs to another address, is deleted so
        the caller has to sign in again.
        """
        address = normalize_address(claimed_address)
        key = refresh_token_key(address)
        stored = await self.kv.get(key)
        if not stored or not isinstance(stored, str):
            raise RefreshTokenMissing()

        try:
            payload = decode_token(stored)
        except jwt.InvalidTokenError as exc:
            await self.kv.delete(key)
            logger.info("removed invalid refresh token for %s: %s", address, exc)
            raise RefreshTokenInvalid() from exc

        if normalize_address(payload["walletAddress"]) != address:
            await self.kv.delete(key)
            logger.warning("refresh token address mismatch for %s", address)
            raise RefreshTokenInvalid()

        sub = payload.get("sub")
        user_id = str(sub.get("userId", "")) if isinstance(sub, dict) else ""
        return self.issue_access_token(TokenIdentity(wallet_address=address, user_id=user_id))

    async def revoke(self, wallet_address: str) -> None:
        removed = await self.kv.delete(refresh_token_key(wallet_address))
        if not removed:
            logger.info("logout for %s without an active session", normalize_address(wallet_address))
