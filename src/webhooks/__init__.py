from .classifier import classify
from .processor import WebhookProcessor
from .router import EventRouter
from .server import WebhookReceiverServer
from .verifier import WebhookVerifier, extract_idempotency_key

__all__ = [
    "classify",
    "EventRouter",
    "WebhookProcessor",
    "WebhookReceiverServer",
    "WebhookVerifier",
    "extract_idempotency_key",
]
