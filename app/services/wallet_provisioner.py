import logging
from datetime import datetime, timezone
from typing import Optional

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, NoEncryption, PrivateFormat, PublicFormat

from app.core.aptos_auth import derive_aptos_address
from app.core.config import settings
from app.core.custodial_secret import CustodialSecret
from app.core.errors import InfrastructureUnavailable, ProvisioningFailure, UserNotFound
from app.services.key_cipher import KeyCipher
from app.services.user_store import UserStore, WalletProfile

logger = logging.getLogger(__name__)


class WalletProvisioner:
    """
    Creates the embedded (custodial) Aptos wallet of a user, once.

    The profile is written with a conditional update, so when two first logins
    race only one generated key is stored; the loser's key is discarded.
    """

    def __init__(self, users: UserStore, cipher: KeyCipher, network: Optional[str] = None):
        self.users = users
        self.cipher = cipher
        self.network = network or settings.APTOS_NETWORK

    def _generate_profile(self) -> WalletProfile:
        signing_key = Ed25519PrivateKey.generate()
        public_key = signing_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        raw = signing_key.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption())
        secret = CustodialSecret(raw)
        # only the wipeable copy stays referenced
        del raw, signing_key
        with secret.reveal() as private_key:
            encrypted = self.cipher.encrypt(private_key)
        return WalletProfile(
            wallet_address=derive_aptos_address(public_key),
            network=self.network,
            encrypted_private_key=encrypted,
            created_at=datetime.now(timezone.utc),
        )

    async def provision_if_absent(self, user_id: str) -> bool:
        """Return True when a wallet was created by this call."""
        user = await self.users.get_by_id(user_id)
        if user is None:
            raise UserNotFound()
        if user.wallet_profile is not None:
            return False

        try:
            profile = self._generate_profile()
            created = await self.users.set_wallet_profile_if_absent(user_id, profile)
        except InfrastructureUnavailable:
            raise
        except Exception as exc:
            logger.exception("failed to create embedded wallet for user %s", user_id)
            raise ProvisioningFailure() from exc

        if created:
            logger.info("created embedded wallet for user: %s", user_id)
        else:
            logger.info("embedded wallet for user %s was created concurrently", user_id)
        return created

    async def reveal_private_key(self, user_id: str) -> CustodialSecret:
        """Decrypt the embedded wallet key. Callers use it inside ``with secret.reveal()``."""
        user = await self.users.get_by_id(user_id)
        if user is None:
            raise UserNotFound()
        if user.wallet_profile is None:
            raise ProvisioningFailure("User has no embedded wallet")
        return self.cipher.decrypt(user.wallet_profile.encrypted_private_key)
