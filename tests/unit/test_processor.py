import asyncio
import json
from datetime import timedelta

import pytest

from src.config import WebhookConfig
from src.errors import WebhookCryptoError, WebhookVerificationError
from src.gateway_simulator.signer import WebhookSigner
from src.models.payment import TransactionStatus
from src.persistence.memory import InMemoryPersistence
from src.utils.factories import WebhookPayloadFactory
from src.webhooks.processor import WebhookProcessor


pytestmark = [pytest.mark.unit, pytest.mark.asyncio]


class TestHandleWebhook:
    """Tests for WebhookProcessor.handle_webhook()."""

    async def test_payment_success_end_to_end(self, processor, persistence, signer):
        sealed = signer.seal(WebhookPayloadFactory.payment(payment_id="T-1"))

        result = await processor.handle_webhook(sealed.body, sealed.headers)

        assert result == {"ok": True, "event": "payment_success"}
        assert len(persistence.transactions) == 1
        assert persistence.transactions[0].status is TransactionStatus.SUCCESS
        assert len(persistence.grants) >= 1
        assert len(persistence.webhooks) == 1
        assert persistence.webhooks[0].verified is True

    async def test_redelivery_is_acknowledged_without_side_effects(self, processor, persistence, signer):
        sealed = signer.seal(WebhookPayloadFactory.payment(id="evt_dup"))

        await processor.handle_webhook(sealed.body, sealed.headers)
        result = await processor.handle_webhook(sealed.body, sealed.headers)

        assert result == {"ok": True, "duplicate": True}
        assert len(persistence.transactions) == 1
        assert len(persistence.grants) == 1
        assert [w.duplicate for w in persistence.webhooks] == [False, True]

    async def test_payload_without_key_is_processed_every_time(self, processor, persistence, signer):
        payload = WebhookPayloadFactory.payment()
        del payload["id"]
        sealed = signer.seal(payload)

        await processor.handle_webhook(sealed.body, sealed.headers)
        await processor.handle_webhook(sealed.body, sealed.headers)

        assert len(persistence.grants) == 2

    async def test_bad_signature_is_audited_then_rejected(self, processor, persistence):
        body = json.dumps(WebhookPayloadFactory.payment())

        with pytest.raises(WebhookVerificationError):
            await processor.handle_webhook(body, {"x-axcess-signature": "ab" * 32})

        assert len(persistence.webhooks) == 1
        assert persistence.webhooks[0].verified is False
        assert persistence.transactions == []

    async def test_unverified_is_processed_when_rejection_disabled(self, persistence, webhook_secret):
        processor = WebhookProcessor(
            persistence, WebhookConfig(secret_key=webhook_secret, reject_unverified=False),
        )
        body = json.dumps(WebhookPayloadFactory.payment())

        result = await processor.handle_webhook(body, {"x-axcess-signature": "ab" * 32})

        assert result["event"] == "payment_success"
        assert persistence.webhooks[0].verified is False

    async def test_crypto_failure_writes_nothing(self, processor, persistence):
        with pytest.raises(WebhookCryptoError):
            await processor.handle_webhook(b"garbage", {})
        assert persistence.webhooks == []

    async def test_routing_failure_leaves_key_unprocessed(self, webhook_config, signer):
        class FlakyStore(InMemoryPersistence):
            fail = True

            async def grant_access(self, record):
                if self.fail:
                    raise RuntimeError("db down")
                await super().grant_access(record)

        store = FlakyStore()
        processor = WebhookProcessor(store, webhook_config)
        sealed = signer.seal(WebhookPayloadFactory.payment(id="evt_retry"))

        with pytest.raises(RuntimeError):
            await processor.handle_webhook(sealed.body, sealed.headers)
        assert await store.is_webhook_processed("evt_retry") is False

        store.fail = False
        result = await processor.handle_webhook(sealed.body, sealed.headers)
        assert result["event"] == "payment_success"
        assert await store.is_webhook_processed("evt_retry") is True

    async def test_unknown_event_is_acknowledged(self, processor, persistence, signer):
        sealed = signer.seal({"id": "evt_x", "type": "invoice.paid"})
        result = await processor.handle_webhook(sealed.body, sealed.headers)
        assert result == {"ok": True, "event": "unknown"}
        assert len(persistence.webhooks) == 1

    async def test_custom_headers_round_trip(self, persistence, webhook_secret):
        config = WebhookConfig(secret_key=webhook_secret, iv_header_name="x-iv", sig_header_name="x-sig")
        signer = WebhookSigner(webhook_secret, iv_header_name="x-iv", sig_header_name="x-sig")
        sealed = signer.seal(WebhookPayloadFactory.declined())

        result = await WebhookProcessor(persistence, config).handle_webhook(sealed.body, sealed.headers)

        assert result["event"] == "payment_failed"


class TestIdempotencyTtl:
    async def test_processed_key_expires(self, persistence):
        await persistence.mark_webhook_processed("evt_old", timedelta(seconds=-1))
        assert await persistence.is_webhook_processed("evt_old") is False

    async def test_processed_key_is_remembered_within_ttl(self, persistence):
        await persistence.mark_webhook_processed("evt_new", timedelta(hours=48))
        assert await persistence.is_webhook_processed("evt_new") is True


class TestConcurrentDeliveries:
    """Copies of one delivery handled at the same time apply once."""

    class YieldingStore(InMemoryPersistence):
        async def save_webhook(self, record):
            await asyncio.sleep(0)
            await super().save_webhook(record)

        async def save_transaction(self, record):
            await asyncio.sleep(0)
            await super().save_transaction(record)

    async def test_simultaneous_copies_grant_once(self, webhook_config, signer):
        store = self.YieldingStore()
        processor = WebhookProcessor(store, webhook_config)
        sealed = signer.seal(WebhookPayloadFactory.payment(id="evt_same"))

        results = await asyncio.gather(
            processor.handle_webhook(sealed.body, sealed.headers),
            processor.handle_webhook(sealed.body, sealed.headers),
        )

        assert sorted(r.get("duplicate", False) for r in results) == [False, True]
        assert len(store.transactions) == 1
        assert len(store.grants) == 1
        assert await store.is_webhook_processed("evt_same") is True

    async def test_rejected_delivery_releases_its_claim(self, processor, persistence, signer):
        forged = json.dumps(WebhookPayloadFactory.payment(id="evt_forged"))
        with pytest.raises(WebhookVerificationError):
            await processor.handle_webhook(forged, {"x-axcess-signature": "ab" * 32})

        sealed = signer.seal(WebhookPayloadFactory.payment(id="evt_forged"))
        result = await processor.handle_webhook(sealed.body, sealed.headers)

        assert result["event"] == "payment_success"
        assert len(persistence.grants) == 1

    async def test_key_in_flight_cannot_be_claimed_twice(self, persistence):
        assert await persistence.claim_webhook_key("evt_a", timedelta(hours=1)) is True
        assert await persistence.claim_webhook_key("evt_a", timedelta(hours=1)) is False

        await persistence.release_webhook_key("evt_a")
        assert await persistence.claim_webhook_key("evt_a", timedelta(hours=1)) is True
