import base64

import pytest

from src.config import GatewayConfig, WebhookConfig
from src.gateway.client import AxcessGateway
from src.gateway_simulator.api_server import FakeGatewayServer
from src.gateway_simulator.engine import WebhookDeliveryEngine
from src.gateway_simulator.logger import DeliveryLogger
from src.gateway_simulator.retry import RetryManager
from src.gateway_simulator.signer import WebhookSigner
from src.persistence.memory import InMemoryPersistence
from src.utils.factories import CardFactory, SessionFactory, WebhookPayloadFactory
from src.webhooks.processor import WebhookProcessor
from src.webhooks.server import WebhookReceiverServer


# 32 bytes, base64: used verbatim as the AES-256 key.
WEBHOOK_SECRET = base64.b64encode(b"0123456789abcdef0123456789abcdef").decode()
BEARER_TOKEN = "test-bearer-token"
ENTITY_ID = "8a8294174b7ecb28014b9699220015ca"


@pytest.fixture
def webhook_secret():
    return WEBHOOK_SECRET


@pytest.fixture
def webhook_config():
    return WebhookConfig(secret_key=WEBHOOK_SECRET)


@pytest.fixture
def signer():
    return WebhookSigner(WEBHOOK_SECRET)


@pytest.fixture
def persistence():
    return InMemoryPersistence()


@pytest.fixture
def processor(persistence, webhook_config):
    return WebhookProcessor(persistence, webhook_config)


@pytest.fixture
def receiver(processor):
    server = WebhookReceiverServer(processor)
    server.start()
    yield server
    server.stop()


@pytest.fixture
def retry_manager():
    return RetryManager()


@pytest.fixture
def delivery_logger():
    return DeliveryLogger()


@pytest.fixture
def engine(signer, retry_manager, delivery_logger):
    return WebhookDeliveryEngine(
        signer=signer,
        retry_manager=retry_manager,
        logger=delivery_logger,
        timeout_seconds=5,
    )


@pytest.fixture
def fake_gateway():
    server = FakeGatewayServer(bearer_token=BEARER_TOKEN)
    server.start()
    yield server
    server.stop()


@pytest.fixture
def gateway_config(fake_gateway, webhook_config):
    return GatewayConfig(
        environment="test",
        base_url=fake_gateway.url,
        entity_id=ENTITY_ID,
        bearer_token=BEARER_TOKEN,
        webhook=webhook_config,
        http_timeout_seconds=5,
    )


@pytest.fixture
def gateway(persistence, gateway_config):
    client = AxcessGateway(persistence, gateway_config)
    yield client
    client.close()


@pytest.fixture
def payload_factory():
    return WebhookPayloadFactory


@pytest.fixture
def session_factory():
    return SessionFactory


@pytest.fixture
def card():
    return CardFactory.create()
