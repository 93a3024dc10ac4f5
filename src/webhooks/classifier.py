"""Maps a decrypted gateway payload onto one normalized event variant.

The event type string is matched by substring in a fixed order, and the
order is the tie-break: ``payment.refund`` is a refund even when its
result code is approved, and a pending payment is reported as
``payment_pending`` rather than falling through to ``unknown``.
"""

from datetime import datetime, timezone

from src.gateway.normalizer import normalize, to_decimal
from src.models.payment import NormalizedTransaction
from src.models.webhook import (
    EventKind,
    NormalizedEvent,
    RegistrationEvent,
    RegistrationRef,
    RiskEvent,
    RiskSignal,
    ScheduleEvent,
    ScheduleRef,
    TransactionEvent,
    UnknownEvent,
)

TRANSACTION_KEYS = ("payment", "transaction", "txn")
DEFAULT_CURRENCY = "USD"


def event_type_of(payload: dict) -> str:
    return str(payload.get("type") or payload.get("eventType") or "").lower()


def extract_transaction(payload: dict) -> NormalizedTransaction:
    """Build the transaction shape from whichever sub-object is present.

    Computed for every payload, transaction-related or not; missing fields
    default to zero/None.
    """
    sub = {}
    for key in TRANSACTION_KEYS:
        if isinstance(payload.get(key), dict):
            sub = payload[key]
            break
    result = normalize(sub, default_currency=DEFAULT_CURRENCY)
    return NormalizedTransaction(
        gateway_txn_id=result.transaction_id,
        amount=result.amount,
        currency=result.currency,
        result_code=result.result_code,
        approved=result.approved,
        pending=result.pending,
        created_at=datetime.now(timezone.utc),
    )


def extract_registration_id(payload: dict) -> str | None:
    if payload.get("registrationId"):
        return str(payload["registrationId"])
    for key in TRANSACTION_KEYS:
        sub = payload.get(key)
        if isinstance(sub, dict) and sub.get("registrationId"):
            return str(sub["registrationId"])
    return None


def extract_schedule(payload: dict) -> ScheduleRef | None:
    data = payload.get("schedule") or payload.get("subscription")
    if not isinstance(data, dict):
        return None
    schedule_id = data.get("scheduleId") or data.get("subscriptionId") or data.get("id")
    amount = data.get("amount")
    return ScheduleRef(
        schedule_id=str(schedule_id) if schedule_id else None,
        registration_id=data.get("registrationId"),
        amount=to_decimal(amount) if amount is not None else None,
        currency=data.get("currency"),
        interval=data.get("interval"),
        data=dict(data),
    )


def extract_risk_signals(payload: dict) -> RiskSignal:
    risk = payload.get("risk") or payload.get("fraud") or {}
    if not isinstance(risk, dict):
        return RiskSignal()
    score = risk.get("score")
    try:
        score = float(score) if score is not None else None
    except (TypeError, ValueError):
        score = None
    rules = risk.get("rules")
    return RiskSignal(
        score=score,
        reason=risk.get("reason") or None,
        rules=tuple(rules) if isinstance(rules, list) else None,
    )


def classify(payload: dict | None) -> NormalizedEvent:
    payload = payload or {}
    t = event_type_of(payload)
    txn = extract_transaction(payload)

    if "refund" in t:
        return TransactionEvent(kind=EventKind.REFUND, raw=payload, transaction=txn)
    if "chargeback" in t:
        return TransactionEvent(kind=EventKind.CHARGEBACK, raw=payload, transaction=txn)

    if "payment" in t:
        if txn.approved:
            registration_id = extract_registration_id(payload)
            return TransactionEvent(
                kind=EventKind.PAYMENT_SUCCESS,
                raw=payload,
                transaction=txn,
                registration=RegistrationRef(registration_id) if registration_id else None,
            )
        if not txn.pending:
            return TransactionEvent(kind=EventKind.PAYMENT_FAILED, raw=payload, transaction=txn)
        return TransactionEvent(kind=EventKind.PAYMENT_PENDING, raw=payload, transaction=txn)

    if "registration" in t:
        registration = RegistrationRef(extract_registration_id(payload))
        if "create" in t:
            return RegistrationEvent(
                kind=EventKind.REGISTRATION_CREATED, raw=payload, registration=registration,
            )
        if "update" in t or "upgrade" in t:
            return RegistrationEvent(
                kind=EventKind.REGISTRATION_UPDATED, raw=payload, registration=registration,
            )

    if "schedule" in t or "subscription" in t:
        schedule = extract_schedule(payload)
        if "cancel" in t:
            kind = EventKind.SCHEDULE_CANCELED
        elif "reschedul" in t:
            kind = EventKind.SCHEDULE_RESCHEDULED
        else:
            kind = EventKind.SCHEDULE_CREATED
        return ScheduleEvent(kind=kind, raw=payload, schedule=schedule)

    if "risk" in t:
        kind = EventKind.RISK_FLAGGED if "flag" in t else EventKind.RISK_CLEARED
        return RiskEvent(kind=kind, raw=payload, risk=extract_risk_signals(payload))

    return UnknownEvent(kind=EventKind.UNKNOWN, raw=payload)
