import base64
import json
import os
from dataclasses import dataclass

from src.config import DEFAULT_IV_HEADER, DEFAULT_SIGNATURE_HEADER
from src.utils.crypto import IV_SIZE, coerce_key, encrypt, generate_signature, verify_signature


@dataclass
class SealedWebhook:
    body: bytes
    headers: dict


class WebhookSigner:
    """Encrypts and signs webhook payloads the way the gateway does.

    The body is AES-256-CBC ciphertext in base64, the IV travels in its own
    header, and the HMAC-SHA256 signature covers the plaintext JSON.
    """

    def __init__(
        self,
        secret: str,
        iv_header_name: str = DEFAULT_IV_HEADER,
        sig_header_name: str = DEFAULT_SIGNATURE_HEADER,
    ):
        self.key = coerce_key(secret)
        self.iv_header_name = iv_header_name
        self.sig_header_name = sig_header_name

    def sign(self, plaintext: bytes) -> str:
        return generate_signature(plaintext, self.key)

    def verify(self, plaintext: bytes, signature: str) -> bool:
        return verify_signature(plaintext, self.key, signature)

    def seal(
        self,
        payload: dict,
        encrypted: bool = True,
        signed: bool = True,
        iv: bytes | None = None,
    ) -> SealedWebhook:
        plaintext = json.dumps(payload, default=str).encode("utf-8")
        headers = {"Content-Type": "text/plain" if encrypted else "application/json"}
        if signed:
            headers[self.sig_header_name] = self.sign(plaintext)
        if not encrypted:
            return SealedWebhook(body=plaintext, headers=headers)

        iv = iv or os.urandom(IV_SIZE)
        ciphertext = encrypt(plaintext, self.key, iv)
        headers[self.iv_header_name] = base64.b64encode(iv).decode("ascii")
        return SealedWebhook(body=base64.b64encode(ciphertext), headers=headers)
