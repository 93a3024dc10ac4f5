import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from src.models.session import CheckoutSession, SessionStatus
from src.models.token import Card

APPROVED_CODE = "000.100.110"
DECLINED_CODE = "800.100.151"
PENDING_CODE = "100.400.500"


class WebhookPayloadFactory:
    """Builds decrypted gateway notification payloads with sensible defaults."""

    @staticmethod
    def _base(event_type: str, **overrides) -> dict:
        payload = {
            "id": overrides.pop("id", f"evt_{uuid.uuid4().hex[:16]}"),
            "type": event_type,
            "createdAt": datetime.now(timezone.utc).isoformat(),
        }
        payload.update(overrides)
        return payload

    @staticmethod
    def payment(
        event_type: str = "payment.success",
        code: str = APPROVED_CODE,
        description: str = "Request successfully processed",
        **overrides,
    ) -> dict:
        payment = {
            "id": overrides.pop("payment_id", f"pay_{uuid.uuid4().hex[:16]}"),
            "amount": str(overrides.pop("amount", "25.00")),
            "currency": overrides.pop("currency", "USD"),
            "paymentType": overrides.pop("payment_type", "DB"),
            "result": {"code": code, "description": description},
        }
        registration_id = overrides.pop("registration_id", None)
        if registration_id:
            payment["registrationId"] = registration_id
        return WebhookPayloadFactory._base(event_type, payment=payment, **overrides)

    @staticmethod
    def declined(**overrides) -> dict:
        overrides.setdefault("description", "transaction declined (invalid card)")
        return WebhookPayloadFactory.payment("payment.failed", code=DECLINED_CODE, **overrides)

    @staticmethod
    def pending(**overrides) -> dict:
        overrides.setdefault("description", "transaction pending")
        return WebhookPayloadFactory.payment("payment.pending", code=PENDING_CODE, **overrides)

    @staticmethod
    def refund(**overrides) -> dict:
        return WebhookPayloadFactory.payment("payment.refund", **overrides)

    @staticmethod
    def chargeback(**overrides) -> dict:
        overrides.setdefault("description", "chargeback")
        return WebhookPayloadFactory.payment("payment.chargeback", code="000.100.220", **overrides)

    @staticmethod
    def registration(event_type: str = "registration.created", **overrides) -> dict:
        registration_id = overrides.pop("registration_id", f"reg_{uuid.uuid4().hex[:16]}")
        return WebhookPayloadFactory._base(event_type, registrationId=registration_id, **overrides)

    @staticmethod
    def schedule(event_type: str = "schedule.created", **overrides) -> dict:
        schedule = {
            "id": overrides.pop("schedule_id", f"sub_{uuid.uuid4().hex[:16]}"),
            "registrationId": overrides.pop("registration_id", f"reg_{uuid.uuid4().hex[:16]}"),
            "amount": str(overrides.pop("amount", "9.99")),
            "currency": overrides.pop("currency", "USD"),
            "interval": overrides.pop("interval", "P1M"),
        }
        return WebhookPayloadFactory._base(event_type, schedule=schedule, **overrides)

    @staticmethod
    def risk(event_type: str = "risk.flagged", **overrides) -> dict:
        risk = {
            "score": overrides.pop("score", 87),
            "reason": overrides.pop("reason", "velocity"),
            "rules": overrides.pop("rules", ["velocity_24h"]),
        }
        return WebhookPayloadFactory._base(event_type, risk=risk, **overrides)


class SessionFactory:
    """Factory for CheckoutSession instances; ``age_minutes`` backdates creation."""

    @staticmethod
    def create(age_minutes: float = 0, **overrides) -> CheckoutSession:
        defaults = {
            "id": str(uuid.uuid4()),
            "order_id": f"ord_{uuid.uuid4().hex[:8]}",
            "user_id": f"usr_{uuid.uuid4().hex[:8]}",
            "checkout_id": uuid.uuid4().hex.upper(),
            "status": SessionStatus.PENDING,
            "created_at": datetime.now(timezone.utc) - timedelta(minutes=age_minutes),
            "amount": Decimal("25.00"),
            "currency": "USD",
        }
        defaults.update(overrides)
        return CheckoutSession(**defaults)


class CardFactory:
    @staticmethod
    def create(**overrides) -> Card:
        defaults = {
            "number": "4200000000000000",
            "holder": "Jane Jones",
            "expiry_month": "05",
            "expiry_year": "2034",
            "cvv": "123",
        }
        defaults.update(overrides)
        return Card(**defaults)
