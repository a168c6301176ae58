"""Tests for outcome integrity signatures."""

import base64
import json

import pytest

from clearverify.signing import HMACSigner


class TestHMACSigner:
    """Tests for signing and verification."""

    def test_sign_and_verify(self, signer) -> None:
        payload = {"verification_id": "v-1", "status": "verified"}

        assert signer.verify(signer.sign(payload)) == payload

    def test_signature_format(self, signer) -> None:
        encoded, digest = signer.sign({"a": 1}).split(".")
        envelope = json.loads(base64.urlsafe_b64decode(encoded))

        assert set(envelope) == {"data", "timestamp", "nonce"}
        assert len(digest) == 64

    def test_fresh_nonce_per_signature(self, signer) -> None:
        assert signer.sign({"a": 1}) != signer.sign({"a": 1})

    def test_tampered_data_rejected(self, signer) -> None:
        encoded, digest = signer.sign({"amount": 10}).split(".")
        envelope = json.loads(base64.urlsafe_b64decode(encoded))
        envelope["data"]["amount"] = 0
        forged = base64.urlsafe_b64encode(
            json.dumps(envelope, sort_keys=True, separators=(",", ":")).encode()
        ).decode()

        assert signer.verify(f"{forged}.{digest}") is None

    def test_other_key_rejected(self, signer) -> None:
        signature = HMACSigner("another-key").sign({"a": 1})
        assert signer.verify(signature) is None

    @pytest.mark.parametrize("signature", ["", "no-dot", "abc.", ".abc", "!!!.zz"])
    def test_garbage_rejected(self, signer, signature) -> None:
        assert signer.verify(signature) is None

    def test_empty_key_rejected(self) -> None:
        with pytest.raises(ValueError, match="CLEARVERIFY_SIGNING_KEY"):
            HMACSigner("")

    def test_from_env(self, monkeypatch) -> None:
        monkeypatch.setenv("CLEARVERIFY_SIGNING_KEY", "env-key")

        signer = HMACSigner.from_env()
        assert signer.verify(HMACSigner("env-key").sign({"a": 1})) == {"a": 1}

    def test_from_env_missing(self, monkeypatch) -> None:
        monkeypatch.delenv("CLEARVERIFY_SIGNING_KEY", raising=False)

        with pytest.raises(ValueError, match="not configured"):
            HMACSigner.from_env()
