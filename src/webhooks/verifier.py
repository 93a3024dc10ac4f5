import base64
import binascii
import json

import structlog

from src.config import WebhookConfig
from src.errors import WebhookCryptoError
from src.models.webhook import VerifiedWebhook
from src.utils.crypto import coerce_key, decrypt, verify_signature

IDEMPOTENCY_FIELDS = ("id", "eventId", "payloadId")


def extract_idempotency_key(payload: dict) -> str | None:
    for name in IDEMPOTENCY_FIELDS:
        value = payload.get(name)
        if value:
            return str(value)
    return None


def _header(headers: dict, name: str) -> str | None:
    if name in headers:
        return headers[name]
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


class WebhookVerifier:
    """Decrypts AES-256-CBC webhook bodies and checks their HMAC-SHA256 tag.

    Bodies whose trimmed text starts with ``{`` are taken as plaintext JSON
    and skip decryption. The signature, when present, is always computed
    over the plaintext. A delivery without a signature header is reported
    as verified unless ``require_signature`` is configured, so callers must
    not treat ``verified`` alone as proof of origin.
    """

    def __init__(self, config: WebhookConfig):
        self.config = config
        self._logger = structlog.get_logger(__name__).bind(component="webhook_verifier")

    def decrypt_and_verify(self, raw_body: bytes | str, headers: dict | None = None) -> VerifiedWebhook:
        headers = headers or {}
        if not self.config.secret_key:
            self._logger.error("webhook.crypto_failed", error="secret not configured")
            raise WebhookCryptoError("Webhook secret key is not configured")

        try:
            return self._decrypt_and_verify(raw_body, headers)
        except WebhookCryptoError as exc:
            self._logger.error("webhook.crypto_failed", error=str(exc))
            raise

    def _decrypt_and_verify(self, raw_body: bytes | str, headers: dict) -> VerifiedWebhook:
        key = coerce_key(self.config.secret_key)
        try:
            body = raw_body.decode("utf-8") if isinstance(raw_body, bytes) else str(raw_body or "")
        except UnicodeDecodeError as exc:
            raise WebhookCryptoError(f"Webhook body is not valid UTF-8: {exc}") from exc

        if body.strip().startswith("{"):
            plaintext = body.encode("utf-8")
        else:
            plaintext = self._decrypt_body(body, headers, key)

        signature = _header(headers, self.config.sig_header_name)
        if signature:
            verified = verify_signature(plaintext, key, signature)
        else:
            verified = not self.config.require_signature

        try:
            payload = json.loads(plaintext)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise WebhookCryptoError(f"Webhook payload is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise WebhookCryptoError("Webhook payload must be a JSON object")

        return VerifiedWebhook(
            decrypted_json=payload,
            idempotency_key=extract_idempotency_key(payload),
            verified=verified,
        )

    def _decrypt_body(self, body: str, headers: dict, key: bytes) -> bytes:
        iv_header = _header(headers, self.config.iv_header_name)
        if not iv_header:
            raise WebhookCryptoError("Missing IV header for webhook decryption")
        try:
            iv = base64.b64decode(iv_header.strip(), validate=True)
            ciphertext = base64.b64decode("".join(body.split()), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise WebhookCryptoError(f"Malformed base64 in webhook: {exc}") from exc
        try:
            return decrypt(ciphertext, key, iv)
        except ValueError as exc:
            raise WebhookCryptoError(f"Webhook decryption failed: {exc}") from exc
