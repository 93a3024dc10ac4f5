"""Recurring billing on top of registration tokens.

The gateway has no pause or plan-change verbs. Pausing cancels the
schedule and stores a resume instruction; resuming creates a brand new
schedule; an upgrade charges the proration, cancels and re-creates. An
upgrade that fails after the proration charge is logged as incomplete and
is not compensated.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from urllib.parse import quote

import structlog

from src.errors import InvalidScheduleTransition, ValidationError
from src.gateway.validation import require, require_amount
from src.models.subscription import (
    DowngradeInstruction,
    ResumeInstruction,
    ScheduleRecord,
    ScheduleStatus,
    ensure_transition,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RecurringPlan:
    registration_id: str | None
    amount: object
    currency: str
    interval: str  # ISO 8601 period, e.g. P1M
    start_date: str | None = None  # yyyy-MM-dd


@dataclass(frozen=True)
class SubscriptionResult:
    status: str
    schedule_id: str | None = None
    resume_at: str | None = None
    effective_at: str | None = None


def _plan(value) -> RecurringPlan:
    if isinstance(value, RecurringPlan):
        return value
    if isinstance(value, dict):
        return RecurringPlan(
            registration_id=value.get("registration_id"),
            amount=value.get("amount"),
            currency=value.get("currency"),
            interval=value.get("interval"),
            start_date=value.get("start_date"),
        )
    raise ValidationError("recurring plan must be a RecurringPlan or dict")


class SubscriptionManager:
    def __init__(self, gateway):
        self.gateway = gateway

    @property
    def persistence(self):
        return self.gateway.persistence

    async def _current_status(self, schedule_id: str) -> ScheduleStatus | None:
        stored = await self.persistence.get_schedule(schedule_id)
        return stored.status if stored else None

    async def create_from_token(
        self,
        registration_id: str,
        amount,
        currency: str,
        interval: str,
        start_date: str | None = None,
        trial_amount=None,
        trial_length_days: int | None = None,
    ) -> SubscriptionResult:
        require(registration_id, "registration_id")
        require(currency, "currency")
        require(interval, "interval")
        amount = require_amount(amount)

        res = await self.gateway.transport.request(
            "POST",
            "/v1/subscriptions",
            form={
                "entityId": self.gateway.entity_id,
                "registrationId": registration_id,
                "amount": amount,
                "currency": currency,
                "interval": interval,
                "startDate": start_date,
                "trialAmount": trial_amount or None,
                "trialLengthDays": trial_length_days or None,
            },
        )
        self.gateway._raise_for_status(res, "createSubscriptionFromToken")

        stored = await self.persistence.upsert_schedule(
            ScheduleRecord(
                schedule_id=(res.data or {}).get("id"),
                status=ScheduleStatus.ACTIVE,
                registration_id=registration_id,
                amount=amount,
                currency=currency,
                interval=interval,
                start_date=start_date,
                updated_at=datetime.now(timezone.utc),
            )
        )
        schedule_id = (res.data or {}).get("id") or (stored.schedule_id if stored else None)
        logger.info("subscription.created", schedule_id=schedule_id, registration_id=registration_id)
        return SubscriptionResult(status=ScheduleStatus.ACTIVE.value, schedule_id=schedule_id)

    async def _cancel_remote(self, subscription_id: str) -> None:
        res = await self.gateway.transport.request(
            "DELETE",
            f"/v1/subscriptions/{quote(subscription_id, safe='')}",
            params={"entityId": self.gateway.entity_id},
        )
        self.gateway._raise_for_status(res, "cancelSubscription")

    async def cancel(self, subscription_id: str, reason: str | None = None) -> SubscriptionResult:
        if not subscription_id:
            raise ValidationError("subscription_id is required")
        ensure_transition(subscription_id, await self._current_status(subscription_id), ScheduleStatus.CANCELED)

        await self._cancel_remote(subscription_id)
        await self.persistence.upsert_schedule(
            ScheduleRecord(
                schedule_id=subscription_id,
                status=ScheduleStatus.CANCELED,
                reason=reason,
                updated_at=datetime.now(timezone.utc),
            )
        )
        logger.info("subscription.canceled", schedule_id=subscription_id, reason=reason)
        return SubscriptionResult(status=ScheduleStatus.CANCELED.value, schedule_id=subscription_id)

    async def pause(self, subscription_id: str, resume_at: str) -> SubscriptionResult:
        """Cancel now and keep a resume instruction; the cancel is not undoable."""
        if not subscription_id:
            raise ValidationError("subscription_id is required")
        if not resume_at:
            raise ValidationError("resume_at is required")
        ensure_transition(subscription_id, await self._current_status(subscription_id), ScheduleStatus.PAUSED)

        await self._cancel_remote(subscription_id)
        await self.persistence.save_resume_instruction(
            ResumeInstruction(subscription_id=subscription_id, resume_at=resume_at)
        )
        await self.persistence.upsert_schedule(
            ScheduleRecord(
                schedule_id=subscription_id,
                status=ScheduleStatus.PAUSED,
                reason="pause",
                updated_at=datetime.now(timezone.utc),
            )
        )
        logger.info("subscription.paused", schedule_id=subscription_id, resume_at=resume_at)
        return SubscriptionResult(status="paused", schedule_id=subscription_id, resume_at=resume_at)

    async def resume(self, user_id: str, registration_id: str, recurring) -> SubscriptionResult:
        """Start a new schedule from the stored token. Indistinguishable from create."""
        if not user_id:
            raise ValidationError("user_id is required")
        plan = _plan(recurring)
        created = await self.create_from_token(
            registration_id=registration_id,
            amount=plan.amount,
            currency=plan.currency,
            interval=plan.interval,
            start_date=plan.start_date,
        )
        return SubscriptionResult(status="resumed", schedule_id=created.schedule_id)

    async def upgrade(self, subscription_id: str, proration_charge, new_recurring) -> SubscriptionResult:
        if not subscription_id:
            raise ValidationError("subscription_id is required")
        plan = _plan(new_recurring)
        if not plan.registration_id:
            raise ValidationError("upgrade requires new_recurring.registration_id for the proration charge")
        proration = require_amount(proration_charge, "proration_charge")
        # Only a live schedule can be upgraded; checked before anything is charged.
        current = await self._current_status(subscription_id)
        if current in (ScheduleStatus.CANCELED, ScheduleStatus.PAUSED):
            raise InvalidScheduleTransition(subscription_id, current, ScheduleStatus.CANCELED)

        charge = await self.gateway.debit_with_registration_token(
            registration_id=plan.registration_id,
            amount=proration,
            currency=plan.currency,
        )
        try:
            await self.cancel(subscription_id, reason="upgrade")
            created = await self.create_from_token(
                registration_id=plan.registration_id,
                amount=plan.amount,
                currency=plan.currency,
                interval=plan.interval,
                start_date=plan.start_date,
            )
        except Exception as exc:
            logger.error(
                "subscription.upgrade_incomplete",
                schedule_id=subscription_id,
                proration_txn_id=charge.record.gateway_txn_id,
                error=str(exc),
            )
            raise
        return SubscriptionResult(status="upgrade_scheduled", schedule_id=created.schedule_id)

    async def downgrade(self, subscription_id: str, effective_at: str, new_recurring) -> SubscriptionResult:
        """Record the change for the next period; nothing is sent to the gateway."""
        if not subscription_id:
            raise ValidationError("subscription_id is required")
        if not effective_at:
            raise ValidationError("effective_at is required")
        plan = _plan(new_recurring)
        await self.persistence.save_downgrade_instruction(
            DowngradeInstruction(
                subscription_id=subscription_id,
                effective_at=effective_at,
                new_recurring=asdict(plan),
            )
        )
        return SubscriptionResult(status="downgrade_scheduled", effective_at=effective_at)
