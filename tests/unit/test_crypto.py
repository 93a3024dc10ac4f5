import base64
import hashlib

import pytest

from src.utils.crypto import (
    IV_SIZE,
    KEY_SIZE,
    coerce_key,
    decrypt,
    encrypt,
    generate_signature,
    verify_signature,
)


class TestCoerceKey:
    """Tests for turning a configured secret into an AES-256 key."""

    @pytest.mark.unit
    def test_base64_secret_of_32_bytes_is_used_verbatim(self):
        raw = bytes(range(32))
        assert coerce_key(base64.b64encode(raw).decode()) == raw

    @pytest.mark.unit
    def test_hex_secret_of_32_bytes_is_used_verbatim(self):
        raw = bytes(range(32))
        assert coerce_key(raw.hex()) == raw

    @pytest.mark.unit
    def test_hex_secret_accepts_0x_prefix(self):
        raw = bytes(range(32))
        assert coerce_key("0x" + raw.hex()) == raw

    @pytest.mark.unit
    def test_urlsafe_base64_secret_decodes_to_same_key(self):
        raw = b"\xfb\xff" * 16
        assert coerce_key(base64.urlsafe_b64encode(raw).decode().rstrip("=")) == raw

    @pytest.mark.unit
    def test_whitespace_around_base64_secret_is_ignored(self):
        raw = bytes(range(32))
        encoded = base64.b64encode(raw).decode()
        assert coerce_key(f"  {encoded[:20]}\n{encoded[20:]}\n") == raw

    @pytest.mark.unit
    def test_base64_of_wrong_length_falls_back_to_sha256(self):
        secret = base64.b64encode(b"short").decode()
        assert coerce_key(secret) == hashlib.sha256(secret.encode()).digest()

    @pytest.mark.unit
    def test_free_text_secret_is_hashed(self):
        assert coerce_key("hunter2") == hashlib.sha256(b"hunter2").digest()

    @pytest.mark.unit
    @pytest.mark.parametrize("secret", ["hunter2", "0x" + "ab" * 32, "a" * 100])
    def test_key_is_always_32_bytes(self, secret):
        assert len(coerce_key(secret)) == KEY_SIZE

    @pytest.mark.unit
    def test_empty_secret_raises(self):
        with pytest.raises(ValueError):
            coerce_key("")


class TestCipher:
    """Tests for AES-256-CBC with PKCS#7 padding."""

    @pytest.mark.unit
    def test_decrypt_inverts_encrypt(self):
        key = coerce_key("secret")
        iv = bytes(IV_SIZE)
        plaintext = b'{"id": "evt_1", "type": "payment.success"}'
        assert decrypt(encrypt(plaintext, key, iv), key, iv) == plaintext

    @pytest.mark.unit
    def test_ciphertext_is_block_aligned(self):
        key = coerce_key("secret")
        assert len(encrypt(b"x" * 16, key, bytes(IV_SIZE))) == 32

    @pytest.mark.unit
    def test_wrong_key_raises_value_error(self):
        iv = bytes(IV_SIZE)
        ciphertext = encrypt(b'{"a": 1}', coerce_key("right"), iv)
        with pytest.raises(ValueError):
            decrypt(ciphertext, coerce_key("wrong"), iv)

    @pytest.mark.unit
    def test_truncated_ciphertext_raises_value_error(self):
        key = coerce_key("secret")
        with pytest.raises(ValueError):
            decrypt(b"not-a-block", key, bytes(IV_SIZE))


class TestSignature:
    """Tests for HMAC-SHA256 signatures over the plaintext."""

    @pytest.mark.unit
    def test_signature_is_hex_sha256(self):
        signature = generate_signature(b"body", coerce_key("k"))
        assert len(signature) == 64
        int(signature, 16)

    @pytest.mark.unit
    def test_valid_signature_verifies(self):
        key = coerce_key("k")
        assert verify_signature(b"body", key, generate_signature(b"body", key)) is True

    @pytest.mark.unit
    def test_0x_prefixed_signature_verifies(self):
        key = coerce_key("k")
        assert verify_signature(b"body", key, "0x" + generate_signature(b"body", key)) is True

    @pytest.mark.unit
    def test_tampered_body_fails(self):
        key = coerce_key("k")
        assert verify_signature(b"other", key, generate_signature(b"body", key)) is False

    @pytest.mark.unit
    def test_non_hex_signature_fails_without_raising(self):
        assert verify_signature(b"body", coerce_key("k"), "zz-not-hex") is False
