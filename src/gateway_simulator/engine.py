import time
import uuid
from datetime import datetime, timezone

import requests

from src.gateway_simulator.logger import DeliveryLogger
from src.gateway_simulator.retry import RetryManager
from src.gateway_simulator.signer import SealedWebhook, WebhookSigner
from src.models.delivery import DeliveryAttempt
from src.webhooks.verifier import extract_idempotency_key


class WebhookDeliveryEngine:
    """Posts encrypted gateway notifications to a receiver, with redelivery."""

    def __init__(
        self,
        signer: WebhookSigner,
        retry_manager: RetryManager,
        logger: DeliveryLogger,
        timeout_seconds: float = 30,
    ):
        self.signer = signer
        self.retry_manager = retry_manager
        self.logger = logger
        self.timeout_seconds = timeout_seconds

    def deliver(
        self,
        payload: dict,
        url: str,
        encrypted: bool = True,
        sealed: SealedWebhook | None = None,
    ) -> DeliveryAttempt:
        """Deliver one notification. ``sealed`` sends pre-built bytes and headers as-is."""
        sealed = sealed or self.signer.seal(payload, encrypted=encrypted)

        start = time.monotonic()
        status_code = None
        error = None
        body = None

        try:
            resp = requests.post(
                url,
                data=sealed.body,
                headers=sealed.headers,
                timeout=self.timeout_seconds,
            )
            status_code = resp.status_code
            try:
                body = resp.json()
            except ValueError:
                body = None
        except requests.exceptions.Timeout:
            error = "timeout"
        except requests.exceptions.ConnectionError:
            error = "connection_error"
        except requests.exceptions.RequestException as e:
            error = str(e)

        elapsed_ms = (time.monotonic() - start) * 1000

        attempt = DeliveryAttempt(
            attempt_id=f"att_{uuid.uuid4().hex[:16]}",
            event_id=extract_idempotency_key(payload),
            url=url,
            status_code=status_code,
            timestamp=datetime.now(timezone.utc),
            response_time_ms=elapsed_ms,
            error=error,
            response_body=body if isinstance(body, dict) else None,
        )
        self.logger.log(attempt)
        return attempt

    def deliver_with_retry(
        self,
        payload: dict,
        url: str,
        delay_factor: float = 1.0,
        encrypted: bool = True,
    ) -> list[DeliveryAttempt]:
        """Deliver until a 2xx, a non-retryable status, or the schedule runs out.

        Args:
            payload: The notification to deliver.
            url: The receiver endpoint URL.
            delay_factor: Multiplier for retry delays (use 0 in tests to skip waits).
            encrypted: Send AES ciphertext (default) or plaintext JSON.
        """
        attempts = []
        retry_count = 0
        # Every redelivery carries the same bytes, like a real gateway retry.
        sealed = self.signer.seal(payload, encrypted=encrypted)

        while True:
            attempt = self.deliver(payload, url, sealed=sealed)
            attempts.append(attempt)

            if attempt.delivered:
                break
            if not self.retry_manager.should_retry(attempt.status_code):
                break
            if not self.retry_manager.has_attempts_remaining(retry_count):
                break

            delay = self.retry_manager.next_delay(retry_count) * delay_factor
            if delay > 0:
                time.sleep(delay)

            retry_count += 1

        return attempts
