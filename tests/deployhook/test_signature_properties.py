"""Property-based tests for webhook signature verification.

Verifies that a signature computed with the shared secret over the exact
request body is accepted, and that any change to the body, the secret or
the header format is rejected.
"""

import pytest
from hypothesis import given, settings, strategies as st, assume

from src.deployhook.webhook.signature import (
    AuthenticationFailure,
    SignatureVerifier,
    compute_signature,
    verify_signature,
)


secrets = st.text(min_size=1, max_size=64)
payloads = st.binary(min_size=0, max_size=512)


@settings(max_examples=100)
@given(payload=payloads, secret=secrets)
def test_correct_signature_verifies(payload: bytes, secret: str):
    """A signature over the raw body with the shared secret verifies."""
    header = compute_signature(payload, secret)

    assert header.startswith("sha256=")
    assert len(header) == len("sha256=") + 64
    assert verify_signature(payload, header, secret)


@settings(max_examples=100)
@given(
    payload=payloads.filter(lambda b: len(b) > 0),
    secret=secrets,
    data=st.data(),
)
def test_modified_payload_is_rejected(payload: bytes, secret: str, data):
    """Flipping any byte of the body invalidates the signature."""
    header = compute_signature(payload, secret)
    index = data.draw(st.integers(min_value=0, max_value=len(payload) - 1))
    tampered = bytearray(payload)
    tampered[index] ^= 0x01

    assert not verify_signature(bytes(tampered), header, secret)


@settings(max_examples=100)
@given(payload=payloads, secret=secrets, other=secrets)
def test_wrong_secret_is_rejected(payload: bytes, secret: str, other: str):
    """A signature made with a different secret does not verify."""
    assume(secret != other)
    header = compute_signature(payload, other)

    assert not verify_signature(payload, header, secret)


@settings(max_examples=50)
@given(payload=payloads, secret=secrets)
def test_header_without_prefix_is_rejected(payload: bytes, secret: str):
    """The bare hex digest without ``sha256=`` fails closed."""
    digest = compute_signature(payload, secret)[len("sha256="):]

    assert not verify_signature(payload, digest, secret)
    assert not verify_signature(payload, f"sha1={digest}", secret)


class TestSignatureVerifier:
    """Unit tests for SignatureVerifier."""

    def test_missing_header_is_rejected(self):
        verifier = SignatureVerifier(secret="topsecret")

        assert verifier.verify(b"{}", None) is False
        with pytest.raises(AuthenticationFailure) as exc_info:
            verifier.require(b"{}", None)
        assert "Missing" in exc_info.value.message

    def test_empty_secret_never_verifies(self):
        payload = b'{"ref": "refs/heads/main"}'
        header = compute_signature(payload, "")

        assert SignatureVerifier(secret="").verify(payload, header) is False

    def test_require_accepts_valid_signature(self):
        payload = b'{"zen": "Keep it logically awesome."}'
        verifier = SignatureVerifier(secret="topsecret")

        verifier.require(payload, compute_signature(payload, "topsecret"))

    def test_require_rejects_invalid_signature(self):
        verifier = SignatureVerifier(secret="topsecret")

        with pytest.raises(AuthenticationFailure) as exc_info:
            verifier.require(b"{}", "sha256=" + "0" * 64)
        assert exc_info.value.message == "Invalid webhook signature"

    def test_reserialized_body_does_not_verify(self):
        """Verification runs on raw bytes, not a re-encoding of them."""
        raw = b'{"a": 1,  "b": 2}'
        header = compute_signature(raw, "topsecret")

        assert verify_signature(raw, header, "topsecret")
        assert not verify_signature(b'{"a":1,"b":2}', header, "topsecret")

    def test_uppercase_hex_is_rejected(self):
        payload = b"{}"
        header = compute_signature(payload, "topsecret")
        upper = "sha256=" + header[len("sha256="):].upper()

        assert not verify_signature(payload, upper, "topsecret")
