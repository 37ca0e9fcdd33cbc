"""
Tests for webhook signature verification.
"""

import hashlib
import hmac
import time

import pytest

from app.api.modules.v1.payments.service.signature import (
    HmacSignatureVerifier,
    StripeSignatureVerifier,
    build_signature_verifier,
    compute_signature,
    verify,
)

SECRET = b"whsec_unit_secret"
BODY = b'{"id":"evt_1","type":"invoice.paid"}'


def _flip_bit(data: bytes, index: int) -> bytes:
    mutated = bytearray(data)
    mutated[index // 8] ^= 1 << (index % 8)
    return bytes(mutated)


def _stripe_header(payload: bytes, secret: str, timestamp: int) -> str:
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


class TestVerify:
    def test_valid_signature_passes(self):
        assert verify(BODY, compute_signature(BODY, SECRET), SECRET) is True

    def test_prefixed_signature_passes(self):
        assert verify(BODY, "sha256=" + compute_signature(BODY, SECRET), SECRET) is True

    def test_digest_matches_hmac_sha256(self):
        expected = hmac.new(SECRET, BODY, hashlib.sha256).hexdigest()
        assert compute_signature(BODY, SECRET) == expected

    def test_any_single_bit_flip_in_body_fails(self):
        signature = compute_signature(BODY, SECRET)
        for bit in range(len(BODY) * 8):
            assert verify(_flip_bit(BODY, bit), signature, SECRET) is False, bit

    def test_any_single_bit_flip_in_signature_fails(self):
        signature = compute_signature(BODY, SECRET).encode("ascii")
        for bit in range(len(signature) * 8):
            mutated = _flip_bit(signature, bit).decode("latin-1")
            assert verify(BODY, mutated, SECRET) is False, bit

    @pytest.mark.parametrize(
        "body,signature",
        [
            (None, "abc"),
            (b"", "abc"),
            (BODY, None),
            (BODY, ""),
            (BODY, "sha256="),
            (BODY, "not-hex-at-all"),
        ],
    )
    def test_missing_or_garbage_inputs_fail(self, body, signature):
        assert verify(body, signature, SECRET) is False

    def test_wrong_secret_fails(self):
        signature = compute_signature(BODY, b"some_other_secret")
        assert verify(BODY, signature, SECRET) is False

    def test_empty_secret_fails_even_with_matching_digest(self):
        signature = compute_signature(BODY, b"")
        assert verify(BODY, signature, b"") is False

    def test_comparison_is_case_sensitive(self):
        assert verify(BODY, compute_signature(BODY, SECRET).upper(), SECRET) is False

    def test_prefix_must_match_exactly(self):
        signature = compute_signature(BODY, SECRET)
        assert verify(BODY, "SHA256=" + signature, SECRET) is False
        assert verify(BODY, "sha256=sha256=" + signature, SECRET) is False


class TestVerifiers:
    def test_hmac_verifier_accepts_str_secret(self):
        verifier = HmacSignatureVerifier("whsec_unit_secret", header_name="X-Sig")
        assert verifier.header_name == "X-Sig"
        assert verifier.verify(BODY, compute_signature(BODY, SECRET)) is True
        assert verifier.verify(BODY, None) is False

    def test_stripe_verifier_accepts_valid_header(self):
        verifier = StripeSignatureVerifier("whsec_unit_secret", tolerance=300)
        header = _stripe_header(BODY, "whsec_unit_secret", int(time.time()))
        assert verifier.header_name == "Stripe-Signature"
        assert verifier.verify(BODY, header) is True

    def test_stripe_verifier_rejects_tampered_body(self):
        verifier = StripeSignatureVerifier("whsec_unit_secret")
        header = _stripe_header(BODY, "whsec_unit_secret", int(time.time()))
        assert verifier.verify(BODY.replace(b"evt_1", b"evt_2"), header) is False

    def test_stripe_verifier_rejects_stale_timestamp(self):
        verifier = StripeSignatureVerifier("whsec_unit_secret", tolerance=60)
        header = _stripe_header(BODY, "whsec_unit_secret", int(time.time()) - 3600)
        assert verifier.verify(BODY, header) is False

    def test_stripe_verifier_rejects_garbage_header(self):
        verifier = StripeSignatureVerifier("whsec_unit_secret")
        assert verifier.verify(BODY, "garbage") is False
        assert verifier.verify(BODY, None) is False

    def test_stripe_verifier_without_secret_fails(self):
        verifier = StripeSignatureVerifier("")
        header = _stripe_header(BODY, "", int(time.time()))
        assert verifier.verify(BODY, header) is False

    def test_build_signature_verifier_by_scheme(self):
        assert isinstance(build_signature_verifier("hmac_sha256", "s"), HmacSignatureVerifier)
        assert isinstance(build_signature_verifier("stripe", "s"), StripeSignatureVerifier)

    def test_build_signature_verifier_rejects_unknown_scheme(self):
        with pytest.raises(ValueError):
            build_signature_verifier("md5", "s")
