from datetime import datetime, timedelta, timezone

import structlog

from src.config import WebhookConfig
from src.errors import WebhookVerificationError
from src.models.webhook import VerifiedWebhook, WebhookRecord
from src.persistence.facade import PersistenceFacade
from src.webhooks.classifier import classify
from src.webhooks.router import EventRouter
from src.webhooks.verifier import WebhookVerifier


class WebhookProcessor:
    """decrypt -> dedupe -> audit -> classify -> route, once per delivery."""

    def __init__(
        self,
        persistence: PersistenceFacade,
        config: WebhookConfig,
        verifier: WebhookVerifier | None = None,
        router: EventRouter | None = None,
    ):
        self.persistence = persistence
        self.config = config
        self.verifier = verifier or WebhookVerifier(config)
        self.router = router or EventRouter(persistence)
        self._logger = structlog.get_logger(__name__).bind(component="webhook_processor")

    def decrypt_and_verify(self, raw_body: bytes | str, headers: dict | None = None) -> VerifiedWebhook:
        return self.verifier.decrypt_and_verify(raw_body, headers)

    async def handle_webhook(self, raw_body: bytes | str, headers: dict | None = None) -> dict:
        """Process one inbound delivery.

        Raises on crypto failures, rejected signatures and persistence
        failures so the transport answers non-2xx and the gateway retries.
        A redelivered key that was already processed is acknowledged
        without touching any record other than the audit log.
        """
        result = self.verifier.decrypt_and_verify(raw_body, headers)
        key = result.idempotency_key
        log = self._logger.bind(idempotency_key=key, verified=result.verified)

        ttl = timedelta(hours=self.config.idempotency_ttl_hours)
        # A key claimed by a concurrent delivery counts as a duplicate.
        claimed = bool(key) and await self.persistence.claim_webhook_key(key, ttl)
        duplicate = bool(key) and not claimed

        try:
            await self.persistence.save_webhook(
                WebhookRecord(
                    payload=result.decrypted_json,
                    verified=result.verified,
                    idempotency_key=key,
                    created_at=datetime.now(timezone.utc),
                    duplicate=duplicate,
                )
            )

            if not result.verified and self.config.reject_unverified:
                log.warning("webhook.rejected_unverified")
                raise WebhookVerificationError("Webhook signature verification failed")

            if duplicate:
                log.info("webhook.duplicate_skipped")
                return {"ok": True, "duplicate": True}

            event = classify(result.decrypted_json)
            log.info("webhook.received", kind=event.kind.value)
            await self.router.handle(event)
        except Exception:
            if claimed:
                await self.persistence.release_webhook_key(key)
            raise

        if claimed:
            await self.persistence.mark_webhook_processed(key, ttl)
        return {"ok": True, "event": event.kind.value}
