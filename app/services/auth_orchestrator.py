import logging
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from app.core.aptos_auth import normalize_address
from app.core.config import settings
from app.core.errors import NonceNotFoundOrExpired, UserNotFound
from app.services.message_verifier import MessageVerifier
from app.services.nonce_store import NonceStore
from app.services.token_service import TokenIdentity, TokenPair, TokenService
from app.services.user_store import UserRecord, UserStore
from app.services.wallet_provisioner import WalletProvisioner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginResult:
    tokens: TokenPair
    user: UserRecord
    expires_in: int


class AuthOrchestrator:
    """
    End-to-end sign-in, refresh and logout.

    login: verify -> nonce check -> upsert user -> provision wallet -> issue
    tokens -> consume nonce. The nonce is consumed last, so a login that fails
    after verification can be retried with the same signed message. Two
    concurrent logins presenting the same nonce can both pass the existence
    check in that mode; strict_single_use claims the nonce atomically up front
    instead, at the cost of burning it when a later step fails.
    """

    def __init__(
        self,
        nonces: NonceStore,
        verifier: MessageVerifier,
        tokens: TokenService,
        users: UserStore,
        provisioner: WalletProvisioner,
        allow_legacy: Optional[bool] = None,
        strict_single_use: Optional[bool] = None,
    ):
        self.nonces = nonces
        self.verifier = verifier
        self.tokens = tokens
        self.users = users
        self.provisioner = provisioner
        self.allow_legacy = settings.AUTH_ALLOW_LEGACY_MESSAGES if allow_legacy is None else allow_legacy
        self.strict_single_use = (
            settings.AUTH_STRICT_SINGLE_USE_NONCE if strict_single_use is None else strict_single_use
        )

    async def login(self, payload: Any) -> LoginResult:
        verified = self.verifier.verify(payload, allow_legacy=self.allow_legacy)
        if verified.variant == "legacy":
            logger.warning("deprecated legacy SIWA message accepted for %s", verified.wallet_address)

        if self.strict_single_use:
            if not await self.nonces.claim(verified.nonce):
                raise NonceNotFoundOrExpired()
        elif not await self.nonces.validate(verified.nonce):
            raise NonceNotFoundOrExpired()

        user = await self.users.upsert_by_wallet_address(verified.wallet_address)
        await self.provisioner.provision_if_absent(user.id)

        tokens = await self.tokens.issue_pair(
            TokenIdentity(wallet_address=user.wallet_address, user_id=user.id)
        )

        if not self.strict_single_use:
            await self.nonces.consume(verified.nonce)

        logger.info("successful authentication for address: %s", user.wallet_address)
        return LoginResult(tokens=tokens, user=user, expires_in=self.tokens.access_token_ttl_seconds())

    async def refresh_session(self, claimed_address: str) -> Tuple[str, int]:
        access_token = await self.tokens.refresh(claimed_address)
        user = await self.users.get_by_wallet_address(claimed_address)
        if user is None:
            raise UserNotFound()
        logger.info("token refreshed for address: %s", normalize_address(claimed_address))
        return access_token, self.tokens.access_token_ttl_seconds()

    async def logout(self, wallet_address: str) -> None:
        await self.tokens.revoke(wallet_address)
        logger.info("user logged out: %s", normalize_address(wallet_address))
