"""E2E tests: the simulated gateway delivers encrypted webhooks to the receiver."""

import pytest

from src.config import WebhookConfig
from src.gateway_simulator.engine import WebhookDeliveryEngine
from src.gateway_simulator.retry import RetryManager
from src.gateway_simulator.signer import WebhookSigner
from src.models.payment import TransactionStatus
from src.models.subscription import ScheduleStatus
from src.persistence.memory import InMemoryPersistence
from src.utils.factories import WebhookPayloadFactory
from src.webhooks.processor import WebhookProcessor
from src.webhooks.server import WebhookReceiverServer


pytestmark = pytest.mark.e2e


class TestDelivery:
    """Happy-path deliveries through real HTTP."""

    def test_encrypted_payment_success(self, engine, receiver, persistence):
        attempts = engine.deliver_with_retry(
            WebhookPayloadFactory.payment(payment_id="T-100"), receiver.url, delay_factor=0,
        )

        assert len(attempts) == 1
        assert attempts[0].status_code == 200
        assert attempts[0].response_body == {"ok": True, "event": "payment_success"}
        assert persistence.transactions[0].gateway_txn_id == "T-100"
        assert persistence.transactions[0].status is TransactionStatus.SUCCESS
        assert len(persistence.grants) == 1

    def test_plaintext_delivery_is_accepted(self, engine, receiver, persistence):
        attempts = engine.deliver_with_retry(
            WebhookPayloadFactory.declined(), receiver.url, delay_factor=0, encrypted=False,
        )
        assert attempts[-1].status_code == 200
        assert len(persistence.denials) == 1

    def test_payment_lifecycle(self, engine, receiver, persistence):
        for payload in (
            WebhookPayloadFactory.pending(payment_id="T-200"),
            WebhookPayloadFactory.payment(payment_id="T-200", registration_id="reg_200"),
            WebhookPayloadFactory.refund(payment_id="T-200"),
        ):
            assert engine.deliver(payload, receiver.url).status_code == 200

        assert [t.status for t in persistence.transactions] == [
            TransactionStatus.PENDING,
            TransactionStatus.SUCCESS,
            TransactionStatus.REFUNDED,
        ]
        assert "reg_200" in persistence.tokens
        assert len(persistence.grants) == 1
        assert len(persistence.denials) == 1

    def test_out_of_order_success_after_refund_is_ignored(self, engine, receiver, persistence):
        engine.deliver(WebhookPayloadFactory.refund(payment_id="T-300"), receiver.url)
        engine.deliver(WebhookPayloadFactory.payment(payment_id="T-300"), receiver.url)

        assert len(persistence.transactions) == 1
        assert persistence.grants == []

    def test_schedule_events(self, engine, receiver, persistence):
        engine.deliver(WebhookPayloadFactory.schedule(schedule_id="sub_9"), receiver.url)
        engine.deliver(WebhookPayloadFactory.schedule("schedule.canceled", schedule_id="sub_9"), receiver.url)

        assert persistence.schedules["sub_9"].status is ScheduleStatus.CANCELED

    def test_unknown_path_is_404(self, engine, receiver):
        url = receiver.url.replace("/webhook", "/other")
        assert engine.deliver(WebhookPayloadFactory.payment(), url).status_code == 404


class TestIdempotency:
    """Redeliveries of the same notification are applied once."""

    def test_duplicate_webhook_processed_once(self, engine, receiver, persistence):
        payload = WebhookPayloadFactory.payment(id="evt_once")

        first = engine.deliver_with_retry(payload, receiver.url, delay_factor=0)
        second = engine.deliver_with_retry(payload, receiver.url, delay_factor=0)

        assert first[-1].status_code == 200
        assert second[-1].status_code == 200
        assert second[-1].response_body == {"ok": True, "duplicate": True}
        assert len(persistence.transactions) == 1
        assert len(persistence.grants) == 1
        assert len(persistence.webhooks) == 2

    def test_triple_delivery_single_processing(self, engine, receiver, persistence):
        payload = WebhookPayloadFactory.chargeback(id="evt_thrice")
        for _ in range(3):
            assert engine.deliver(payload, receiver.url).status_code == 200
        assert len(persistence.denials) == 1


class TestRejection:
    """Deliveries that must not be applied."""

    def test_wrong_secret_is_rejected(self, delivery_logger, receiver, persistence):
        forged = WebhookDeliveryEngine(
            signer=WebhookSigner("not-the-merchant-secret"),
            retry_manager=RetryManager(max_retries=0),
            logger=delivery_logger,
            timeout_seconds=5,
        )

        attempt = forged.deliver(WebhookPayloadFactory.payment(), receiver.url)

        assert attempt.status_code == 400
        assert persistence.transactions == []

    def test_bad_signature_is_401_and_audited(self, engine, signer, receiver, persistence):
        sealed = signer.seal(WebhookPayloadFactory.payment())
        sealed.headers["x-axcess-signature"] = "00" * 32

        attempt = engine.deliver({}, receiver.url, sealed=sealed)

        assert attempt.status_code == 401
        assert persistence.transactions == []
        assert persistence.webhooks[0].verified is False

    def test_missing_iv_is_400(self, engine, signer, receiver):
        sealed = signer.seal(WebhookPayloadFactory.payment())
        del sealed.headers["x-axcess-iv"]
        assert engine.deliver({}, receiver.url, sealed=sealed).status_code == 400

    def test_rejections_are_not_retried_when_terminal(self, delivery_logger, receiver):
        forged = WebhookDeliveryEngine(
            signer=WebhookSigner("forged"),
            retry_manager=RetryManager(max_retries=3, no_retry_codes={400, 401}),
            logger=delivery_logger,
        )

        attempts = forged.deliver_with_retry(WebhookPayloadFactory.payment(), receiver.url, delay_factor=0)

        assert len(attempts) == 1
        assert attempts[0].status_code == 400


class FlakyPersistence(InMemoryPersistence):
    """Fails the first ``failures`` grant calls."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures

    async def grant_access(self, record):
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError("entitlement store unavailable")
        await super().grant_access(record)


class TestRedelivery:
    """A receiver failure is answered 500 and the gateway redelivers."""

    @pytest.fixture
    def flaky(self, webhook_secret):
        store = FlakyPersistence(failures=2)
        server = WebhookReceiverServer(WebhookProcessor(store, WebhookConfig(secret_key=webhook_secret)))
        server.start()
        yield store, server
        server.stop()

    def test_retry_until_processed(self, engine, flaky):
        store, server = flaky

        attempts = engine.deliver_with_retry(WebhookPayloadFactory.payment(id="evt_flaky"), server.url, delay_factor=0)

        assert [a.status_code for a in attempts] == [500, 500, 200]
        assert len(store.grants) == 1
        assert len(store.webhooks) == 3

    def test_gives_up_after_schedule(self, signer, delivery_logger, webhook_secret):
        store = FlakyPersistence(failures=10)
        server = WebhookReceiverServer(WebhookProcessor(store, WebhookConfig(secret_key=webhook_secret)))
        server.start()
        try:
            eng = WebhookDeliveryEngine(signer, RetryManager(max_retries=2), delivery_logger)
            attempts = eng.deliver_with_retry(WebhookPayloadFactory.payment(), server.url, delay_factor=0)
        finally:
            server.stop()

        assert len(attempts) == 3
        assert all(a.status_code == 500 for a in attempts)
        assert len(delivery_logger.get_failed_attempts()) == 3

    def test_connection_error_is_recorded(self, engine):
        attempt = engine.deliver(WebhookPayloadFactory.payment(), "http://127.0.0.1:1/webhook")
        assert attempt.status_code is None
        assert attempt.error == "connection_error"
