"""
Symmetric encryption for custodial private keys.

Uses Fernet (AES-128-CBC + HMAC-SHA256). WALLET_ENCRYPTION_KEY may be a Fernet
key or any passphrase; a passphrase is stretched with SHA-256 into a key.

KEY ROTATION SUPPORT:
- WALLET_ENCRYPTION_KEY: primary key, used for all NEW encryptions
- WALLET_ENCRYPTION_KEY_OLD: comma separated previous keys, decryption only
"""

import base64
import binascii
import hashlib
import logging
from typing import List, Optional

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from app.core.config import settings
from app.core.custodial_secret import CustodialSecret

logger = logging.getLogger(__name__)


class KeyCipherError(Exception):
    """Raised when key material cannot be encrypted or decrypted."""


def _to_fernet(secret: str) -> Fernet:
    secret = secret.strip()
    try:
        if len(base64.urlsafe_b64decode(secret.encode())) == 32:
            return Fernet(secret.encode())
    except (binascii.Error, ValueError):
        pass
    derived = base64.urlsafe_b64encode(hashlib.sha256(secret.encode("utf-8")).digest())
    return Fernet(derived)


class KeyCipher:
    def __init__(self, primary_key: Optional[str] = None, old_keys: Optional[List[str]] = None):
        primary_key = primary_key or settings.WALLET_ENCRYPTION_KEY
        if not primary_key:
            raise KeyCipherError("WALLET_ENCRYPTION_KEY is not configured")
        if old_keys is None:
            old_keys = [k for k in settings.WALLET_ENCRYPTION_KEY_OLD.split(",") if k.strip()]
        self._cipher = MultiFernet([_to_fernet(primary_key)] + [_to_fernet(k) for k in old_keys])

    def encrypt(self, plaintext: bytes) -> str:
        return self._cipher.encrypt(bytes(plaintext)).decode("ascii")

    def decrypt(self, token: str) -> CustodialSecret:
        try:
            return CustodialSecret(self._cipher.decrypt(token.encode("ascii")))
        except InvalidToken as exc:
            logger.error("custodial key could not be decrypted with any configured key")
            raise KeyCipherError("invalid encrypted key") from exc

    def rotate(self, token: str) -> str:
        """Re-encrypt a token under the primary key."""
        return self._cipher.rotate(token.encode("ascii")).decode("ascii")
