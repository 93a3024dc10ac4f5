from .payment import (
    NormalizedResult, NormalizedTransaction, TransactionRecord,
    TransactionStatus, UiMessage,
)
from .webhook import (
    EventKind, NormalizedEvent, RegistrationEvent, RegistrationRef,
    RiskEvent, RiskSignal, ScheduleEvent, ScheduleRef, TransactionEvent,
    UnknownEvent, VerifiedWebhook, WebhookEnvelope, WebhookRecord,
)
from .subscription import (
    DowngradeInstruction, ResumeInstruction, ScheduleRecord, ScheduleStatus,
)
from .session import CheckoutSession, SessionStatus
from .token import Card, TokenRecord
from .delivery import DeliveryAttempt

__all__ = [
    "NormalizedResult", "NormalizedTransaction", "TransactionRecord",
    "TransactionStatus", "UiMessage",
    "EventKind", "NormalizedEvent", "RegistrationEvent", "RegistrationRef",
    "RiskEvent", "RiskSignal", "ScheduleEvent", "ScheduleRef",
    "TransactionEvent", "UnknownEvent", "VerifiedWebhook", "WebhookEnvelope",
    "WebhookRecord",
    "DowngradeInstruction", "ResumeInstruction", "ScheduleRecord", "ScheduleStatus",
    "CheckoutSession", "SessionStatus",
    "Card", "TokenRecord",
    "DeliveryAttempt",
]
