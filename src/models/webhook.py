from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum

from src.models.payment import NormalizedTransaction


class EventKind(Enum):
    PAYMENT_SUCCESS = "payment_success"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_PENDING = "payment_pending"
    REFUND = "refund"
    CHARGEBACK = "chargeback"
    REGISTRATION_CREATED = "registration_created"
    REGISTRATION_UPDATED = "registration_updated"
    SCHEDULE_CREATED = "schedule_created"
    SCHEDULE_RESCHEDULED = "schedule_rescheduled"
    SCHEDULE_CANCELED = "schedule_canceled"
    RISK_FLAGGED = "risk_flagged"
    RISK_CLEARED = "risk_cleared"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class WebhookEnvelope:
    body: bytes | str
    headers: dict[str, str]


@dataclass(frozen=True)
class VerifiedWebhook:
    decrypted_json: dict
    idempotency_key: str | None
    verified: bool


@dataclass(frozen=True)
class RegistrationRef:
    registration_id: str | None


@dataclass(frozen=True)
class ScheduleRef:
    schedule_id: str | None
    registration_id: str | None = None
    amount: Decimal | None = None
    currency: str | None = None
    interval: str | None = None
    data: dict = field(default_factory=dict)


@dataclass(frozen=True)
class RiskSignal:
    score: float | None = None
    reason: str | None = None
    rules: tuple[str, ...] | None = None


@dataclass(frozen=True)
class NormalizedEvent:
    kind: EventKind
    raw: dict


@dataclass(frozen=True)
class TransactionEvent(NormalizedEvent):
    transaction: NormalizedTransaction
    # Only set on payment_success when the payment also stored a card.
    registration: RegistrationRef | None = None


@dataclass(frozen=True)
class RegistrationEvent(NormalizedEvent):
    registration: RegistrationRef


@dataclass(frozen=True)
class ScheduleEvent(NormalizedEvent):
    schedule: ScheduleRef | None


@dataclass(frozen=True)
class RiskEvent(NormalizedEvent):
    risk: RiskSignal


@dataclass(frozen=True)
class UnknownEvent(NormalizedEvent):
    pass


@dataclass
class WebhookRecord:
    payload: dict
    verified: bool
    idempotency_key: str | None
    created_at: datetime
    duplicate: bool = False
