from .api_server import FakeGatewayServer
from .engine import WebhookDeliveryEngine
from .logger import DeliveryLogger
from .retry import RetryManager
from .signer import SealedWebhook, WebhookSigner

__all__ = [
    "FakeGatewayServer",
    "WebhookDeliveryEngine",
    "DeliveryLogger",
    "RetryManager",
    "SealedWebhook",
    "WebhookSigner",
]
