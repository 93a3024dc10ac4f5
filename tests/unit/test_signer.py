import base64
import json

import pytest

from src.gateway_simulator.signer import WebhookSigner
from src.utils.crypto import decrypt


class TestWebhookSigner:
    """Tests for the simulated gateway's encrypt-and-sign step."""

    @pytest.mark.unit
    def test_sealed_body_decrypts_to_payload(self, signer):
        payload = {"id": "evt_1", "type": "payment.success"}
        sealed = signer.seal(payload)

        iv = base64.b64decode(sealed.headers["x-axcess-iv"])
        plaintext = decrypt(base64.b64decode(sealed.body), signer.key, iv)

        assert json.loads(plaintext) == payload
        assert signer.verify(plaintext, sealed.headers["x-axcess-signature"]) is True

    @pytest.mark.unit
    def test_each_seal_uses_a_fresh_iv(self, signer):
        first = signer.seal({"id": "a"})
        second = signer.seal({"id": "a"})
        assert first.headers["x-axcess-iv"] != second.headers["x-axcess-iv"]
        assert first.body != second.body

    @pytest.mark.unit
    def test_plaintext_mode(self, signer):
        sealed = signer.seal({"id": "b"}, encrypted=False)
        assert json.loads(sealed.body) == {"id": "b"}
        assert "x-axcess-iv" not in sealed.headers
        assert sealed.headers["Content-Type"] == "application/json"

    @pytest.mark.unit
    def test_unsigned_mode(self, signer):
        assert "x-axcess-signature" not in signer.seal({"id": "c"}, signed=False).headers

    @pytest.mark.unit
    def test_signers_with_different_secrets_disagree(self, signer):
        other = WebhookSigner("another-secret")
        assert other.verify(b"{}", signer.sign(b"{}")) is False
