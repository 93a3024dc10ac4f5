"""Adapter for the Axcess (OPPWA) card-processing REST API.

Every synchronous outcome is normalized with :mod:`src.gateway.normalizer`
and written to the injected persistence facade the same way webhook
outcomes are, so the application only ever sees pending/success/failed.
"""

import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from urllib.parse import quote

import structlog

from src.config import GatewayConfig
from src.errors import GatewayRequestError, ValidationError
from src.gateway.normalizer import map_result_code_to_ui_message, normalize
from src.gateway.sessions import is_session_valid
from src.gateway.subscriptions import SubscriptionManager
from src.gateway.transport import GatewayResponse, HttpTransport
from src.gateway.validation import require, require_amount
from src.models.payment import NormalizedResult, TransactionRecord, TransactionStatus, UiMessage
from src.models.session import CheckoutSession, SessionStatus
from src.models.token import Card, TokenRecord
from src.models.webhook import NormalizedEvent, VerifiedWebhook
from src.persistence.facade import PersistenceFacade
from src.webhooks.classifier import classify
from src.webhooks.processor import WebhookProcessor

GATEWAY_NAME = "axcess"


@dataclass(frozen=True)
class CheckoutResult:
    checkout_id: str
    redirect_url: str
    session_id: str


@dataclass(frozen=True)
class PaymentOutcome:
    normalized: NormalizedResult
    raw: dict
    record: TransactionRecord


@dataclass(frozen=True)
class RegistrationResult:
    registration_id: str
    masked_pan: str | None = None
    brand: str | None = None
    expiry: str | None = None


def _card_fields(card: Card) -> dict:
    if not isinstance(card, Card):
        raise ValidationError("card must be a Card")
    return {
        "card.number": card.number,
        "card.holder": card.holder,
        "card.expiryMonth": card.expiry_month,
        "card.expiryYear": card.expiry_year,
        "card.cvv": card.cvv,
    }


class AxcessGateway:
    def __init__(
        self,
        persistence: PersistenceFacade,
        config: GatewayConfig,
        transport: HttpTransport | None = None,
    ):
        if persistence is None:
            raise ValidationError("persistence facade is required")
        self.persistence = persistence
        self.config = config
        self.transport = transport or HttpTransport(
            config.base_url, config.bearer_token, config.http_timeout_seconds,
        )
        self.webhooks = WebhookProcessor(persistence, config.webhook)
        self._logger = structlog.get_logger(__name__).bind(
            component="axcess_gateway", environment=config.environment,
        )
        self.subscriptions = SubscriptionManager(self)

    @property
    def entity_id(self) -> str:
        return self.config.entity_id

    def _checkout_url(self, checkout_id: str) -> str:
        return f"{self.config.base_url}/v1/checkouts/{quote(checkout_id, safe='')}/payment"

    def _raise_for_status(self, res: GatewayResponse, action: str) -> None:
        if not res.ok:
            self._logger.error("gateway.request_failed", action=action, status=res.status, raw=res.raw)
            raise GatewayRequestError(f"{action} failed (HTTP {res.status})", status=res.status, raw=res.raw)

    # ------------------------------------------------------------------
    # Hosted checkout
    # ------------------------------------------------------------------

    def is_checkout_session_valid(self, session: CheckoutSession | None, now: datetime | None = None) -> bool:
        return is_session_valid(session, self.config.session.checkout_expiry_minutes, now)

    async def create_checkout_session(
        self,
        user_id: str,
        order_id: str,
        amount,
        currency: str,
        payment_type: str = "DB",
        customer: dict | None = None,
        metadata: dict | None = None,
    ) -> CheckoutResult:
        """Create a hosted checkout, or reuse a pending one for the same order."""
        require(user_id, "user_id")
        require(order_id, "order_id")
        require(currency, "currency")
        require(payment_type, "payment_type")
        amount = require_amount(amount)

        existing = await self.persistence.get_sessions_by("order_id", order_id) or []
        reusable = next((s for s in existing if self.is_checkout_session_valid(s)), None)
        if reusable is not None:
            self._logger.info(
                "checkout.session_reused",
                session_id=reusable.id, order_id=order_id, user_id=user_id,
            )
            return CheckoutResult(
                checkout_id=reusable.checkout_id,
                redirect_url=self._checkout_url(reusable.checkout_id),
                session_id=reusable.id,
            )

        res = await self.transport.request(
            "POST",
            "/v1/checkouts",
            form={
                "entityId": self.entity_id,
                "amount": amount,
                "currency": currency,
                "paymentType": payment_type,
                "merchantTransactionId": order_id,
            },
        )
        if not res.ok or not (res.data or {}).get("id"):
            self._logger.error("checkout.create_failed", status=res.status, raw=res.raw)
            raise GatewayRequestError("Failed to create checkout session", status=res.status, raw=res.raw)

        checkout_id = res.data["id"]
        session = CheckoutSession(
            id=str(uuid.uuid4()),
            order_id=order_id,
            user_id=user_id,
            checkout_id=checkout_id,
            status=SessionStatus.PENDING,
            created_at=datetime.now(timezone.utc),
            amount=amount,
            currency=currency,
            payment_type=payment_type,
            metadata=metadata or {},
            customer=customer or {},
        )
        await self.persistence.save_session(session)
        self._logger.info(
            "checkout.session_created",
            checkout_id=checkout_id, session_id=session.id, order_id=order_id,
        )
        return CheckoutResult(checkout_id, self._checkout_url(checkout_id), session.id)

    async def purge_expired_sessions(self, by: str, value: str) -> int:
        if by not in ("user_id", "order_id"):
            raise ValidationError("by must be 'user_id' or 'order_id'")
        require(value, "value")
        purged = 0
        for session in await self.persistence.get_sessions_by(by, value) or []:
            if not self.is_checkout_session_valid(session):
                await self.persistence.delete_session(session.id)
                purged += 1
        return purged

    async def get_payment_status(self, resource_path: str) -> GatewayResponse:
        require(resource_path, "resource_path")
        res = await self.transport.request("GET", resource_path, params={"entityId": self.entity_id})
        self._raise_for_status(res, "getPaymentStatus")
        return res

    async def handle_redirect_callback(self, resource_path: str, order_id: str, user_id: str) -> dict:
        """Read the checkout outcome after the shopper returns from the widget."""
        require(order_id, "order_id")
        require(user_id, "user_id")
        res = await self.get_payment_status(resource_path)
        record = await self._record_outcome(
            res.data or {}, "checkout", order_id=order_id, user_id=user_id,
        )

        session_status = SessionStatus(record.status.value)
        for session in await self.persistence.get_sessions_by("order_id", order_id) or []:
            if session.checkout_id and record.gateway_txn_id and session.status is SessionStatus.PENDING:
                await self.persistence.save_session(
                    replace(session, status=session_status, updated_at=datetime.now(timezone.utc))
                )

        return {
            "status": record.status.value.upper(),
            "result_code": record.code or "",
            "payload": res.data or {},
        }

    # ------------------------------------------------------------------
    # Server-to-server payments
    # ------------------------------------------------------------------

    async def _record_outcome(
        self, data: dict, label: str, order_id: str | None = None, user_id: str | None = None,
    ) -> TransactionRecord:
        normalized = normalize(data)
        record = TransactionRecord(
            gateway_txn_id=normalized.transaction_id,
            amount=normalized.amount,
            currency=normalized.currency,
            status=normalized.status,
            code=normalized.result_code,
            ui_message=map_result_code_to_ui_message(normalized.result_code).ui_message,
            created_at=datetime.now(timezone.utc),
            raw=data,
            gateway=GATEWAY_NAME,
            type=label,
            order_id=order_id,
            user_id=user_id,
        )
        await self.persistence.save_transaction(record)
        if record.status is TransactionStatus.SUCCESS:
            await self.persistence.grant_access(record)
        elif record.status is TransactionStatus.FAILED:
            await self.persistence.deny_access(record)
        return record

    async def _handle_s2s_response(self, res: GatewayResponse, label: str) -> PaymentOutcome:
        self._raise_for_status(res, f"S2S {label}")
        data = res.data or {}
        record = await self._record_outcome(data, f"s2s_{label}")
        self._logger.info(
            "s2s.completed", label=label, status=record.status.value, code=record.code,
        )
        return PaymentOutcome(normalized=normalize(data), raw=data, record=record)

    def _flatten_three_ds(self, three_ds_params: dict | None) -> dict:
        flat = {f"threeDSecure.{k}": v for k, v in (three_ds_params or {}).items()}
        if not flat.get("threeDSecure.challengeWindowSize") and self.config.three_ds.challenge_window_size:
            flat["threeDSecure.challengeWindowSize"] = self.config.three_ds.challenge_window_size
        return flat

    async def _card_payment(
        self, payment_type: str, label: str, amount, currency: str, payment_brand: str,
        card: Card, three_ds_params: dict | None,
    ) -> PaymentOutcome:
        require(currency, "currency")
        require(payment_brand, "payment_brand")
        form = {
            "entityId": self.entity_id,
            "paymentBrand": payment_brand,
            "paymentType": payment_type,
            "amount": require_amount(amount),
            "currency": currency,
            **_card_fields(card),
            **self._flatten_three_ds(three_ds_params),
        }
        res = await self.transport.request("POST", "/v1/payments", form=form)
        return await self._handle_s2s_response(res, label)

    async def _reference_payment(self, payment_type: str, label: str, payment_id: str, amount=None) -> PaymentOutcome:
        require(payment_id, "payment_id")
        form = {
            "entityId": self.entity_id,
            "paymentType": payment_type,
            "amount": require_amount(amount, required=False),
        }
        res = await self.transport.request("POST", f"/v1/payments/{quote(payment_id, safe='')}", form=form)
        return await self._handle_s2s_response(res, label)

    async def s2s_authorize(self, amount, currency, payment_brand, card: Card, three_ds_params=None) -> PaymentOutcome:
        return await self._card_payment("PA", "authorize", amount, currency, payment_brand, card, three_ds_params)

    async def s2s_debit(self, amount, currency, payment_brand, card: Card, three_ds_params=None) -> PaymentOutcome:
        return await self._card_payment("DB", "debit", amount, currency, payment_brand, card, three_ds_params)

    async def s2s_capture(self, payment_id: str, amount=None) -> PaymentOutcome:
        return await self._reference_payment("CP", "capture", payment_id, amount)

    async def s2s_void(self, payment_id: str) -> PaymentOutcome:
        return await self._reference_payment("RV", "void", payment_id)

    async def s2s_refund(self, payment_id: str, amount=None) -> PaymentOutcome:
        return await self._reference_payment("RF", "refund", payment_id, amount)

    # ------------------------------------------------------------------
    # 3-D Secure
    # ------------------------------------------------------------------

    async def initiate_standalone_3ds(self, amount, currency: str, card: Card, three_ds_params: dict) -> dict:
        require(currency, "currency")
        require(three_ds_params, "three_ds_params")
        form = {
            "entityId": self.entity_id,
            "amount": require_amount(amount),
            "currency": currency,
            **_card_fields(card),
            **self._flatten_three_ds(three_ds_params),
        }
        res = await self.transport.request("POST", "/v1/threeDSecure", form=form)
        self._raise_for_status(res, "initiateStandalone3DS")
        return res.data or {}

    async def continue_3ds_challenge(self, transaction_id: str, pa_res: str | None = None, cres: str | None = None) -> dict:
        require(transaction_id, "transaction_id")
        form = {"entityId": self.entity_id, "paRes": pa_res or None, "cres": cres or None}
        res = await self.transport.request("POST", f"/v1/threeDSecure/{quote(transaction_id, safe='')}", form=form)
        self._raise_for_status(res, "continue3DSChallenge")
        return res.data or {}

    async def request_standalone_exemption(
        self, amount, currency: str, payment_brand: str, exemption_type: str,
        card: Card | None = None, registration_id: str | None = None,
    ) -> dict:
        require(currency, "currency")
        require(payment_brand, "payment_brand")
        require(exemption_type, "exemption_type")
        form = {
            "entityId": self.entity_id,
            "paymentBrand": payment_brand,
            "amount": require_amount(amount),
            "currency": currency,
            "exemptionType": exemption_type,
        }
        if registration_id:
            form["registrationId"] = registration_id
        elif card is not None:
            form.update(_card_fields(card))
        else:
            raise ValidationError("either card or registration_id is required")
        res = await self.transport.request("POST", "/v1/exemptions", form=form)
        self._raise_for_status(res, "requestStandaloneExemption")
        return res.data or {}

    # ------------------------------------------------------------------
    # Card-on-file registration tokens
    # ------------------------------------------------------------------

    async def create_registration_token(
        self, card: Card, payment_brand: str | None = None, user_id: str | None = None,
    ) -> RegistrationResult:
        form = {"entityId": self.entity_id, "paymentBrand": payment_brand, **_card_fields(card)}
        res = await self.transport.request("POST", "/v1/registrations", form=form)
        if not res.ok or not (res.data or {}).get("id"):
            self._logger.error("token.create_failed", status=res.status, raw=res.raw)
            raise GatewayRequestError("Failed to create registration token", status=res.status, raw=res.raw)

        data = res.data
        card_data = data.get("card") or {}
        expiry = None
        if card_data.get("expiryMonth") and card_data.get("expiryYear"):
            expiry = f"{card_data['expiryYear']}-{str(card_data['expiryMonth']).zfill(2)}"
        last4 = card_data.get("last4Digits") or card_data.get("last4") or card.last4

        token = TokenRecord(
            id=data["id"],
            brand=data.get("paymentBrand") or payment_brand,
            expiry=expiry,
            user_id=user_id,
            last4=last4,
            created_at=datetime.now(timezone.utc),
        )
        await self.persistence.save_token(token)
        return RegistrationResult(
            registration_id=token.id,
            masked_pan=f"{card_data['bin']}******{last4}" if card_data.get("bin") else None,
            brand=token.brand,
            expiry=expiry,
        )

    async def _token_payment(self, payment_type: str, label: str, registration_id, amount, currency, three_ds_params):
        require(registration_id, "registration_id")
        require(currency, "currency")
        form = {
            "entityId": self.entity_id,
            "paymentType": payment_type,
            "amount": require_amount(amount),
            "currency": currency,
            **self._flatten_three_ds(three_ds_params),
        }
        res = await self.transport.request(
            "POST", f"/v1/registrations/{quote(registration_id, safe='')}/payments", form=form,
        )
        return await self._handle_s2s_response(res, label)

    async def debit_with_registration_token(self, registration_id: str, amount, currency: str, three_ds_params=None) -> PaymentOutcome:
        return await self._token_payment("DB", "debit_token", registration_id, amount, currency, three_ds_params)

    async def authorize_with_registration_token(self, registration_id: str, amount, currency: str, three_ds_params=None) -> PaymentOutcome:
        return await self._token_payment("PA", "authorize_token", registration_id, amount, currency, three_ds_params)

    async def delete_registration_token(self, registration_id: str) -> bool:
        require(registration_id, "registration_id")
        res = await self.transport.request(
            "DELETE",
            f"/v1/registrations/{quote(registration_id, safe='')}",
            params={"entityId": self.entity_id},
        )
        if res.ok:
            await self.persistence.delete_token(registration_id)
            return True
        self._logger.error("token.delete_failed", registration_id=registration_id, status=res.status)
        return False

    async def list_user_tokens(self, user_id: str) -> list[TokenRecord]:
        return await self.persistence.get_tokens_by_user(user_id) or []

    async def get_tokens_expiring(self, yyyymm: str) -> list[TokenRecord]:
        return await self.persistence.get_tokens_by_expiry(yyyymm) or []

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def get_transaction_details(self, transaction_id: str) -> dict:
        require(transaction_id, "transaction_id")
        res = await self.transport.request(
            "GET",
            f"/v1/payments/{quote(transaction_id, safe='')}",
            params={"entityId": self.entity_id},
        )
        self._raise_for_status(res, "getTransactionDetails")
        data = res.data or {}
        await self.persistence.save_verification(data)
        return data

    async def find_order_history(self, order_id: str) -> dict | None:
        return await self.persistence.get_order_history(order_id)

    # ------------------------------------------------------------------
    # Webhooks and result codes
    # ------------------------------------------------------------------

    def decrypt_and_verify_webhook(self, raw_body: bytes | str, headers: dict | None = None) -> VerifiedWebhook:
        return self.webhooks.decrypt_and_verify(raw_body, headers)

    async def handle_webhook(self, raw_body: bytes | str, headers: dict | None = None) -> dict:
        return await self.webhooks.handle_webhook(raw_body, headers)

    def map_webhook_event(self, payload: dict) -> NormalizedEvent:
        return classify(payload)

    def map_result_code_to_ui_message(self, result_code) -> UiMessage:
        return map_result_code_to_ui_message(result_code)

    def close(self) -> None:
        self.transport.close()
