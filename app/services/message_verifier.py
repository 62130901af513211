"""
Signed sign-in message verification.

A verification call moves through
RECEIVED -> PARSE -> DISPATCH -> SIGNATURE_CHECK -> [CONTENT_CHECK] -> VERIFIED | REJECTED.

PARSE reads the payload as a version "2" (structured) output. Version "1"
(legacy, free-text message) payloads are only accepted when the caller asks
for legacy mode; anything else is rejected as UnsupportedMessageFormat. There
is no path that skips the signature check.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from pydantic import ValidationError

from app.core.aptos_auth import (
    build_sign_in_message,
    decode_hex_or_base64,
    derive_aptos_address,
    extract_address_from_message,
    extract_nonce_from_message,
    normalize_address,
    sign_in_signing_message,
    verify_ed25519,
)
from app.core.config import settings
from app.core.errors import MessageContentMismatch, SignatureInvalid, UnsupportedMessageFormat
from app.schemas.auth import LegacySignInOutput, SignInOutput, StructuredSignInOutput

logger = logging.getLogger(__name__)

ISSUED_AT_FUTURE_SKEW_SECONDS = 60


@dataclass(frozen=True)
class VerifiedSignIn:
    nonce: str
    wallet_address: str
    variant: str


def _long_form(address: str) -> str:
    address = normalize_address(address)
    if address.startswith("0x"):
        address = address[2:]
    return "0x" + address.zfill(64)


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class MessageVerifier:
    def __init__(
        self,
        domain: Optional[str] = None,
        statement: Optional[str] = None,
        require_key_address_match: Optional[bool] = None,
        signature_max_age: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.domain = domain if domain is not None else settings.AUTH_MESSAGE_DOMAIN
        self.statement = statement if statement is not None else settings.AUTH_MESSAGE_STATEMENT
        self.require_key_address_match = (
            settings.AUTH_REQUIRE_KEY_ADDRESS_MATCH
            if require_key_address_match is None
            else require_key_address_match
        )
        self.signature_max_age = (
            settings.SIGNATURE_EXPIRES_IN if signature_max_age is None else signature_max_age
        )
        self.clock = clock

    def parse(self, payload: Any, allow_legacy: bool = False) -> SignInOutput:
        try:
            return StructuredSignInOutput.model_validate(payload)
        except ValidationError as exc:
            if allow_legacy:
                try:
                    return LegacySignInOutput.model_validate(payload)
                except ValidationError:
                    pass
            logger.warning("rejecting sign-in output: %s", exc.errors()[0].get("msg", "invalid"))
            raise UnsupportedMessageFormat() from exc

    def verify(
        self,
        payload: Any,
        expected_nonce: Optional[str] = None,
        allow_legacy: bool = False,
    ) -> VerifiedSignIn:
        output = self.parse(payload, allow_legacy=allow_legacy)
        if isinstance(output, StructuredSignInOutput):
            return self._verify_structured(output, expected_nonce)
        return self._verify_legacy(output, expected_nonce)

    def _check_signature(self, public_key: str, signature: str, message: bytes) -> bytes:
        try:
            public_key_bytes = decode_hex_or_base64(public_key)
            signature_bytes = decode_hex_or_base64(signature)
        except ValueError as exc:
            raise SignatureInvalid() from exc
        if not verify_ed25519(public_key_bytes, signature_bytes, message):
            raise SignatureInvalid()
        return public_key_bytes

    def _check_key_owns_address(self, public_key: bytes, address: str) -> None:
        if self.require_key_address_match and derive_aptos_address(public_key) != _long_form(address):
            raise MessageContentMismatch("Public key does not match address")

    def _verify_legacy(self, output: LegacySignInOutput, expected_nonce: Optional[str]) -> VerifiedSignIn:
        message = output.message
        nonce = extract_nonce_from_message(message)
        if not nonce:
            raise UnsupportedMessageFormat("Invalid SIWA message: nonce not found")
        address = extract_address_from_message(message)
        if not address:
            raise UnsupportedMessageFormat("Invalid SIWA message: address not found")

        public_key = self._check_signature(output.publicKey, output.signature, message.encode("utf-8"))

        # legacy messages carry no domain or statement to compare
        if expected_nonce is not None and nonce != expected_nonce:
            raise MessageContentMismatch("Nonce mismatch")
        self._check_key_owns_address(public_key, address)

        return VerifiedSignIn(nonce=nonce, wallet_address=normalize_address(address), variant="legacy")

    def _verify_structured(
        self, output: StructuredSignInOutput, expected_nonce: Optional[str]
    ) -> VerifiedSignIn:
        input = output.input
        message = build_sign_in_message(input.model_dump())
        public_key = self._check_signature(
            output.publicKey, output.signature, sign_in_signing_message(message)
        )

        if expected_nonce is not None and input.nonce != expected_nonce:
            raise MessageContentMismatch("Nonce mismatch")
        if input.domain != self.domain:
            raise MessageContentMismatch("Domain mismatch")
        if input.statement != self.statement:
            raise MessageContentMismatch("Statement mismatch")
        self._check_issued_at(input.issuedAt)
        self._check_validity_window(input.expirationTime, input.notBefore)
        self._check_key_owns_address(public_key, input.address)

        return VerifiedSignIn(
            nonce=input.nonce, wallet_address=normalize_address(input.address), variant="structured"
        )

    def _check_issued_at(self, issued_at: str) -> None:
        if self.signature_max_age <= 0:
            return
        try:
            issued = _parse_timestamp(issued_at).timestamp()
        except ValueError as exc:
            raise MessageContentMismatch("Invalid issuedAt") from exc
        now = self.clock()
        if issued > now + ISSUED_AT_FUTURE_SKEW_SECONDS:
            raise MessageContentMismatch("Message issued in the future")
        if issued + self.signature_max_age < now:
            raise MessageContentMismatch("Signature expired")

    def _check_validity_window(self, expiration_time: Optional[str], not_before: Optional[str]) -> None:
        now = self.clock()
        try:
            expires = _parse_timestamp(expiration_time).timestamp() if expiration_time else None
            starts = _parse_timestamp(not_before).timestamp() if not_before else None
        except ValueError as exc:
            raise MessageContentMismatch("Invalid expirationTime or notBefore") from exc
        if expires is not None and expires <= now:
            raise MessageContentMismatch("Message expired")
        if starts is not None and starts > now:
            raise MessageContentMismatch("Message not yet valid")
