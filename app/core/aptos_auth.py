"""
Aptos Wallet Authentication Utilities

This module handles Aptos-specific cryptographic operations for Sign-In-With-Aptos (SIWA).

Authentication Flow:
1. Backend generates a random nonce -> generate_nonce()
2. Frontend builds the SIWA message around the nonce and signs it with the wallet
3. Frontend sends the serialized sign-in output (version "1" or "2")
4. Backend rebuilds the signed bytes and verifies them -> verify_ed25519()

Message layout (the line after the greeting always carries the address):

    relay-agent.io wants you to sign in with your Aptos account:
    0x<address>

    <statement>

    URI: https://relay-agent.io
    Version: 1
    Chain ID: 1
    Nonce: <64 hex>
    Issued At: 2025-01-01T00:00:00.000Z
    [Expiration Time, Not Before, Request ID, Resources: "- item" lines]

Version "2" wallets sign sha3_256("SIGN_IN_WITH_APTOS::") + message bytes,
version "1" wallets sign the raw message bytes.
"""

import base64
import binascii
import hashlib
import secrets
from typing import Any, Mapping, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey


NONCE_NUM_BYTES = 32  # 32 bytes = 64 hex characters
SIGN_IN_DOMAIN_SEPARATOR = b"SIGN_IN_WITH_APTOS::"
ED25519_SCHEME = b"\x00"


def generate_nonce(num_bytes: int = NONCE_NUM_BYTES) -> str:
    """
    Generate a cryptographically secure random nonce for wallet authentication.

    Args:
        num_bytes: Number of random bytes to generate (default: 32 = 64 hex chars)

    Returns:
        Hex-encoded random string (e.g., "a1b2c3d4...")
    """
    if num_bytes <= 0:
        num_bytes = NONCE_NUM_BYTES
    return secrets.token_hex(num_bytes)


def is_well_formed_nonce(value: Any) -> bool:
    if not isinstance(value, str) or len(value) != NONCE_NUM_BYTES * 2:
        return False
    try:
        bytes.fromhex(value)
    except ValueError:
        return False
    return True


def _decode_hex(value: str) -> bytes:
    """Helper: Decode hex string (with or without 0x) to bytes."""
    if value[:2].lower() == "0x":
        value = value[2:]
    return binascii.unhexlify(value.encode())


def _decode_base64(value: str) -> bytes:
    """Helper: Decode base64 string to bytes."""
    return base64.b64decode(value, validate=True)


def decode_hex_or_base64(value: str) -> bytes:
    """
    Decode hex or base64 string to bytes.

    Aptos wallets send 0x-prefixed hex, older adapters send base64, so we support both.
    """
    value = value.strip()
    try:
        return _decode_hex(value)
    except (binascii.Error, ValueError):
        try:
            return _decode_base64(value)
        except (binascii.Error, ValueError):
            raise ValueError("Value must be hex or base64 encoded")


def verify_ed25519(public_key: bytes, signature: bytes, message: bytes) -> bool:
    """Return True when signature is a valid Ed25519 signature of message under public_key."""
    try:
        Ed25519PublicKey.from_public_bytes(public_key).verify(signature, message)
    except (InvalidSignature, ValueError):
        return False
    return True


def normalize_address(address: str) -> str:
    return address.strip().lower()


def derive_aptos_address(public_key: bytes) -> str:
    """Account address of a single-key Ed25519 account: sha3_256(public_key || 0x00)."""
    return "0x" + hashlib.sha3_256(public_key + ED25519_SCHEME).hexdigest()


def build_sign_in_message(input: Mapping[str, Any]) -> str:
    """Render the SIWA text message a wallet displays and signs for the given input."""
    lines = [
        f"{input['domain']} wants you to sign in with your Aptos account:",
        input["address"],
    ]
    if input.get("statement"):
        lines += ["", input["statement"]]
    lines.append("")

    fields = [
        ("URI", input.get("uri")),
        ("Version", input.get("version")),
        ("Chain ID", input.get("chainId")),
        ("Nonce", input.get("nonce")),
        ("Issued At", input.get("issuedAt")),
        ("Expiration Time", input.get("expirationTime")),
        ("Not Before", input.get("notBefore")),
        ("Request ID", input.get("requestId")),
    ]
    lines += [f"{label}: {value}" for label, value in fields if value is not None]

    resources = input.get("resources")
    if resources:
        lines.append("Resources:")
        lines += [f"- {resource}" for resource in resources]
    return "\n".join(lines)


def sign_in_signing_message(message: str) -> bytes:
    """Bytes signed by version "2" wallets for a SIWA message."""
    prefix = hashlib.sha3_256(SIGN_IN_DOMAIN_SEPARATOR).digest()
    return prefix + message.encode("utf-8")


def extract_nonce_from_message(message: str) -> Optional[str]:
    for line in message.split("\n"):
        if line.startswith("Nonce: "):
            return line[len("Nonce: "):].strip()
    return None


def extract_address_from_message(message: str) -> Optional[str]:
    lines = message.split("\n")
    if len(lines) >= 2:
        address = lines[1].strip()
        if address.startswith("0x"):
            return address
    return None
