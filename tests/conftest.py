import os

os.environ.setdefault("ENCODE_KEY", "test-encode-key")
os.environ.setdefault("WALLET_ENCRYPTION_KEY", "test-wallet-encryption-key")
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["REDIS_HOST"] = ""

from datetime import datetime, timezone
from typing import Generator, Optional

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from app.core.aptos_auth import build_sign_in_message, derive_aptos_address, sign_in_signing_message
from app.core.config import settings
from app.core.dependencies import get_key_cipher, get_user_store
from app.core.kv_store import MemoryKeyValueStore, get_kv_store
from app.db.base import Base
from app.models.users import User  # noqa: F401  registers the users table
from app.services.auth_orchestrator import AuthOrchestrator
from app.services.key_cipher import KeyCipher
from app.services.message_verifier import MessageVerifier
from app.services.nonce_store import NonceStore
from app.services.token_service import TokenService
from app.services.user_store import UserStore
from app.services.wallet_provisioner import WalletProvisioner


class FakeClock:
    """Controllable time source for TTL tests"""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def iso_now(offset_seconds: int = 0) -> str:
    ts = datetime.now(timezone.utc).timestamp() + offset_seconds
    return datetime.fromtimestamp(ts, timezone.utc).isoformat().replace("+00:00", "Z")


class WalletSigner:
    """An Aptos Ed25519 account that signs SIWA outputs like a browser wallet"""

    def __init__(self):
        self.key = Ed25519PrivateKey.generate()
        self.public_key = self.key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        self.address = derive_aptos_address(self.public_key)

    @property
    def public_key_hex(self) -> str:
        return "0x" + self.public_key.hex()

    def structured_output(
        self,
        nonce: str,
        domain: Optional[str] = None,
        statement: Optional[str] = None,
        address: Optional[str] = None,
        issued_at: Optional[str] = None,
        **extra,
    ) -> dict:
        domain = domain or settings.AUTH_MESSAGE_DOMAIN
        input = {
            "nonce": nonce,
            "domain": domain,
            "statement": statement if statement is not None else settings.AUTH_MESSAGE_STATEMENT,
            "address": address or self.address,
            "chainId": 1,
            "issuedAt": issued_at or iso_now(),
            "uri": f"https://{domain}",
            "version": "1",
            **extra,
        }
        message = build_sign_in_message(input)
        signature = self.key.sign(sign_in_signing_message(message))
        return {
            "version": "2",
            "type": "ed25519",
            "input": input,
            "signature": "0x" + signature.hex(),
            "publicKey": self.public_key_hex,
        }

    def legacy_message(self, nonce: str, address: Optional[str] = None) -> str:
        return "\n".join([
            "relay-agent.io wants you to sign in with your Aptos account:",
            address or self.address,
            "",
            "URI: https://relay-agent.io",
            "Version: 1",
            f"Nonce: {nonce}",
        ])

    def legacy_output(self, nonce: str, message: Optional[str] = None) -> dict:
        message = message if message is not None else self.legacy_message(nonce)
        signature = self.key.sign(message.encode("utf-8"))
        return {
            "version": "1",
            "type": "ed25519",
            "message": message,
            "signature": "0x" + signature.hex(),
            "publicKey": self.public_key_hex,
        }


def tamper(signature_hex: str) -> str:
    """Flip the last byte of a 0x-prefixed hex signature"""
    raw = bytearray(bytes.fromhex(signature_hex[2:]))
    raw[-1] ^= 0x01
    return "0x" + raw.hex()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def session_factory() -> Generator:
    """Fresh in-memory SQLite database per test"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def user_store(session_factory) -> UserStore:
    return UserStore(session_factory)


@pytest.fixture
def cipher() -> KeyCipher:
    return KeyCipher("test-wallet-encryption-key", old_keys=[])


@pytest.fixture
def nonce_store(kv) -> NonceStore:
    return NonceStore(kv, ttl_seconds=300)


@pytest.fixture
def token_service(kv) -> TokenService:
    return TokenService(kv, access_expire="15m", refresh_expire="30d")


@pytest.fixture
def verifier() -> MessageVerifier:
    return MessageVerifier(
        domain="relay-agent.io",
        statement=settings.AUTH_MESSAGE_STATEMENT,
        require_key_address_match=True,
        signature_max_age=300,
    )


@pytest.fixture
def provisioner(user_store, cipher) -> WalletProvisioner:
    return WalletProvisioner(user_store, cipher, network="testnet")


@pytest.fixture
def orchestrator(nonce_store, verifier, token_service, user_store, provisioner) -> AuthOrchestrator:
    return AuthOrchestrator(
        nonces=nonce_store,
        verifier=verifier,
        tokens=token_service,
        users=user_store,
        provisioner=provisioner,
        allow_legacy=True,
        strict_single_use=False,
    )


@pytest.fixture
def wallet() -> WalletSigner:
    return WalletSigner()


@pytest.fixture
def client(kv, user_store, cipher, monkeypatch) -> TestClient:
    """Create a test client for the FastAPI application"""
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", False)
    app.dependency_overrides[get_kv_store] = lambda: kv
    app.dependency_overrides[get_user_store] = lambda: user_store
    app.dependency_overrides[get_key_cipher] = lambda: cipher
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
