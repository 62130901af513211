import pytest

from app.core.aptos_auth import generate_nonce
from app.core.errors import MessageContentMismatch, SignatureInvalid, UnsupportedMessageFormat
from tests.conftest import WalletSigner, iso_now, tamper


class TestStructuredMessages:
    """Test cases for version "2" sign-in outputs"""

    def test_valid_output_verifies(self, verifier, wallet):
        nonce = generate_nonce()
        result = verifier.verify(wallet.structured_output(nonce), expected_nonce=nonce)

        assert result.nonce == nonce
        assert result.wallet_address == wallet.address
        assert result.variant == "structured"

    def test_address_is_lower_cased(self, verifier, wallet):
        mixed = "0x" + wallet.address[2:].upper()
        result = verifier.verify(wallet.structured_output(generate_nonce(), address=mixed))
        assert result.wallet_address == wallet.address

    def test_tampered_signature(self, verifier, wallet):
        output = wallet.structured_output(generate_nonce())
        output["signature"] = tamper(output["signature"])
        with pytest.raises(SignatureInvalid):
            verifier.verify(output)

    def test_tampered_input_breaks_signature(self, verifier, wallet):
        output = wallet.structured_output(generate_nonce())
        output["input"]["nonce"] = generate_nonce()
        with pytest.raises(SignatureInvalid):
            verifier.verify(output)

    def test_undecodable_signature(self, verifier, wallet):
        output = wallet.structured_output(generate_nonce())
        output["signature"] = "***"
        with pytest.raises(SignatureInvalid):
            verifier.verify(output)

    @pytest.mark.parametrize(
        "override",
        [{"domain": "evil.example"}, {"statement": "Sign in to something else"}],
    )
    def test_signed_but_wrong_domain_or_statement(self, verifier, wallet, override):
        """Valid signature with mismatched content is a content error, not a signature error"""
        output = wallet.structured_output(generate_nonce(), **override)
        with pytest.raises(MessageContentMismatch):
            verifier.verify(output)

    def test_expected_nonce_mismatch(self, verifier, wallet):
        output = wallet.structured_output(generate_nonce())
        with pytest.raises(MessageContentMismatch):
            verifier.verify(output, expected_nonce=generate_nonce())

    def test_stale_issued_at(self, verifier, wallet):
        output = wallet.structured_output(generate_nonce(), issued_at=iso_now(-3600))
        with pytest.raises(MessageContentMismatch):
            verifier.verify(output)

    def test_issued_in_future(self, verifier, wallet):
        output = wallet.structured_output(generate_nonce(), issued_at=iso_now(3600))
        with pytest.raises(MessageContentMismatch):
            verifier.verify(output)

    def test_expired_message(self, verifier, wallet):
        output = wallet.structured_output(generate_nonce(), expirationTime=iso_now(-120))
        with pytest.raises(MessageContentMismatch, match="expired"):
            verifier.verify(output)

    def test_not_before_in_future(self, verifier, wallet):
        output = wallet.structured_output(generate_nonce(), notBefore=iso_now(600))
        with pytest.raises(MessageContentMismatch, match="not yet valid"):
            verifier.verify(output)

    def test_unparseable_expiration_time(self, verifier, wallet):
        output = wallet.structured_output(generate_nonce(), expirationTime="tomorrow")
        with pytest.raises(MessageContentMismatch):
            verifier.verify(output)

    def test_all_optional_fields_verify(self, verifier, wallet):
        """Every signed SIWA field is rendered back, so a full wallet output verifies"""
        nonce = generate_nonce()
        output = wallet.structured_output(
            nonce,
            expirationTime=iso_now(600),
            notBefore=iso_now(-10),
            requestId="req-42",
            resources=["aptosconnect.app.email", "https://relay-agent.io/terms"],
        )
        result = verifier.verify(output, expected_nonce=nonce)
        assert result.wallet_address == wallet.address

    def test_unknown_input_field_rejected(self, verifier, wallet):
        output = wallet.structured_output(generate_nonce(), favouriteColour="teal")
        with pytest.raises(UnsupportedMessageFormat):
            verifier.verify(output)

    def test_public_key_must_own_address(self, verifier, wallet):
        other = WalletSigner()
        output = wallet.structured_output(generate_nonce(), address=other.address)
        with pytest.raises(MessageContentMismatch):
            verifier.verify(output)


class TestLegacyMessages:
    """Test cases for version "1" free-text sign-in outputs"""

    def test_valid_legacy_output_without_domain_check(self, verifier, wallet):
        nonce = generate_nonce()
        message = "\n".join(["some other greeting", wallet.address, "", f"Nonce: {nonce}"])
        result = verifier.verify(wallet.legacy_output(nonce, message=message), allow_legacy=True)

        assert result.nonce == nonce
        assert result.wallet_address == wallet.address
        assert result.variant == "legacy"

    def test_legacy_rejected_unless_requested(self, verifier, wallet):
        with pytest.raises(UnsupportedMessageFormat):
            verifier.verify(wallet.legacy_output(generate_nonce()))

    def test_tampered_legacy_signature(self, verifier, wallet):
        output = wallet.legacy_output(generate_nonce())
        output["signature"] = tamper(output["signature"])
        with pytest.raises(SignatureInvalid):
            verifier.verify(output, allow_legacy=True)

    def test_legacy_missing_nonce(self, verifier, wallet):
        message = "greeting\n" + wallet.address
        with pytest.raises(UnsupportedMessageFormat):
            verifier.verify(wallet.legacy_output("", message=message), allow_legacy=True)

    def test_legacy_missing_address(self, verifier, wallet):
        nonce = generate_nonce()
        message = f"greeting\nnot-an-address\nNonce: {nonce}"
        with pytest.raises(UnsupportedMessageFormat):
            verifier.verify(wallet.legacy_output(nonce, message=message), allow_legacy=True)


class TestUnsupportedFormats:
    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"version": "3", "signature": "0x00", "publicKey": "0x00"},
            {"version": "2", "signature": "0x00", "publicKey": "0x00", "input": {"nonce": "x"}},
            "not an object",
            None,
        ],
    )
    def test_unparseable_payload_fails_closed(self, verifier, payload):
        with pytest.raises(UnsupportedMessageFormat):
            verifier.verify(payload, allow_legacy=True)
