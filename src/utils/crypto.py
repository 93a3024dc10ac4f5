import base64
import binascii
import hashlib
import hmac
from typing import Callable

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

KEY_SIZE = 32
IV_SIZE = 16

_URLSAFE_TO_STANDARD = str.maketrans("-_", "+/")


def _key_from_base64(secret: str) -> bytes | None:
    # Accepts the URL-safe alphabet, embedded whitespace and missing padding.
    value = "".join(secret.split()).translate(_URLSAFE_TO_STANDARD)
    value += "=" * (-len(value) % 4)
    try:
        key = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return None
    return key if len(key) == KEY_SIZE else None


def _key_from_hex(secret: str) -> bytes | None:
    value = secret[2:] if secret.lower().startswith("0x") else secret
    try:
        key = bytes.fromhex(value)
    except ValueError:
        return None
    return key if len(key) == KEY_SIZE else None


def _key_from_sha256(secret: str) -> bytes:
    # Always yields a key; short secrets give a low-entropy key.
    return hashlib.sha256(secret.encode("utf-8")).digest()


# Evaluated top to bottom; the last strategy never falls through.
KEY_STRATEGIES: tuple[Callable[[str], bytes | None], ...] = (
    _key_from_base64,
    _key_from_hex,
    _key_from_sha256,
)


def coerce_key(secret: str) -> bytes:
    """Turn a configured secret (base64, hex or free text) into a 32-byte key."""
    if not secret:
        raise ValueError("Missing secret key")
    for strategy in KEY_STRATEGIES:
        key = strategy(secret)
        if key is not None:
            return key
    raise AssertionError("unreachable: sha256 strategy always returns a key")


def encrypt(plaintext: bytes, key: bytes, iv: bytes) -> bytes:
    """AES-256-CBC with PKCS#7 padding."""
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plaintext) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    return encryptor.update(padded) + encryptor.finalize()


def decrypt(ciphertext: bytes, key: bytes, iv: bytes) -> bytes:
    """Inverse of :func:`encrypt`. Raises ValueError on bad padding, IV or length."""
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    return unpadder.update(padded) + unpadder.finalize()


def generate_signature(plaintext: bytes, key: bytes) -> str:
    """Hex HMAC-SHA256 of the plaintext body."""
    return hmac.new(key, plaintext, hashlib.sha256).hexdigest()


def verify_signature(plaintext: bytes, key: bytes, signature: str) -> bool:
    """Constant-time check of a hex signature, with or without a 0x prefix."""
    value = signature.strip()
    if value.lower().startswith("0x"):
        value = value[2:]
    try:
        provided = bytes.fromhex(value)
    except ValueError:
        return False
    expected = hmac.new(key, plaintext, hashlib.sha256).digest()
    return hmac.compare_digest(expected, provided)
