from .crypto import coerce_key, decrypt, encrypt, generate_signature, verify_signature
from .factories import CardFactory, SessionFactory, WebhookPayloadFactory

__all__ = [
    "coerce_key", "decrypt", "encrypt",
    "generate_signature", "verify_signature",
    "CardFactory", "SessionFactory", "WebhookPayloadFactory",
]
