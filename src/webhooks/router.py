from datetime import datetime, timezone
from typing import Awaitable, Callable

import structlog

from src.gateway.normalizer import map_result_code_to_ui_message
from src.models.payment import TransactionRecord, TransactionStatus, is_stale_status
from src.models.subscription import ScheduleRecord, ScheduleStatus, can_transition
from src.models.token import TokenRecord
from src.models.webhook import EventKind, NormalizedEvent, TransactionEvent
from src.persistence.facade import PersistenceFacade

EventHandler = Callable[[NormalizedEvent], Awaitable[None]]

SCHEDULE_STATUS_BY_KIND = {
    EventKind.SCHEDULE_CREATED: ScheduleStatus.ACTIVE,
    EventKind.SCHEDULE_RESCHEDULED: ScheduleStatus.RESCHEDULED,
    EventKind.SCHEDULE_CANCELED: ScheduleStatus.CANCELED,
}


class EventRouter:
    """Applies a normalized webhook event to the persistence facade.

    Persistence errors propagate unchanged: the caller answers non-2xx and
    the gateway redelivers. Updates made before the failing call are not
    rolled back.
    """

    def __init__(self, persistence: PersistenceFacade):
        self.persistence = persistence
        self._logger = structlog.get_logger(__name__).bind(component="event_router")
        self._handlers: dict[EventKind, EventHandler] = {
            EventKind.PAYMENT_SUCCESS: self.on_payment_success,
            EventKind.PAYMENT_FAILED: self.on_payment_failed,
            EventKind.PAYMENT_PENDING: self.on_payment_pending,
            EventKind.REFUND: self.on_refund,
            EventKind.CHARGEBACK: self.on_chargeback,
            EventKind.REGISTRATION_CREATED: self.on_registration_created,
            EventKind.REGISTRATION_UPDATED: self.on_registration_updated,
            EventKind.SCHEDULE_CREATED: self.on_schedule_event,
            EventKind.SCHEDULE_RESCHEDULED: self.on_schedule_event,
            EventKind.SCHEDULE_CANCELED: self.on_schedule_event,
            EventKind.RISK_FLAGGED: self.on_risk_event,
            EventKind.RISK_CLEARED: self.on_risk_event,
        }

    @property
    def supported_events(self) -> list[EventKind]:
        return list(self._handlers)

    async def handle(self, event: NormalizedEvent) -> None:
        handler = self._handlers.get(event.kind)
        if handler is None:
            raw = event.raw or {}
            self._logger.info(
                "webhook.unmapped",
                sample=raw.get("type") or raw.get("eventType"),
            )
            return
        try:
            await handler(event)
        except Exception as exc:
            self._logger.error("webhook.routing_failed", kind=event.kind.value, error=str(exc))
            raise

    # transactions

    async def _record_transaction(
        self, event: TransactionEvent, status: TransactionStatus,
    ) -> TransactionRecord | None:
        txn = event.transaction
        if txn.gateway_txn_id:
            existing = await self.persistence.get_transaction(txn.gateway_txn_id)
            if existing is not None and is_stale_status(existing.status, status):
                self._logger.warning(
                    "transaction.stale_status_ignored",
                    gateway_txn_id=txn.gateway_txn_id,
                    stored=existing.status.value,
                    incoming=status.value,
                )
                return None

        record = TransactionRecord(
            gateway_txn_id=txn.gateway_txn_id,
            amount=txn.amount,
            currency=txn.currency,
            status=status,
            code=txn.result_code,
            ui_message=map_result_code_to_ui_message(txn.result_code).ui_message,
            created_at=txn.created_at,
            raw=event.raw,
            gateway=txn.gateway,
            type=f"webhook_{event.kind.value}",
        )
        await self.persistence.save_transaction(record)
        return record

    async def on_payment_success(self, event: TransactionEvent) -> None:
        record = await self._record_transaction(event, TransactionStatus.SUCCESS)
        if record is None:
            return
        if event.registration and event.registration.registration_id:
            await self.persistence.save_token(
                TokenRecord(
                    id=event.registration.registration_id,
                    created_at=datetime.now(timezone.utc),
                )
            )
        await self.persistence.grant_access(record)

    async def on_payment_failed(self, event: TransactionEvent) -> None:
        record = await self._record_transaction(event, TransactionStatus.FAILED)
        if record is not None:
            await self.persistence.deny_access(record)

    async def on_payment_pending(self, event: TransactionEvent) -> None:
        # Entitlements wait for the terminal webhook.
        await self._record_transaction(event, TransactionStatus.PENDING)

    async def on_refund(self, event: TransactionEvent) -> None:
        record = await self._record_transaction(event, TransactionStatus.REFUNDED)
        if record is not None:
            await self.persistence.deny_access(record)

    async def on_chargeback(self, event: TransactionEvent) -> None:
        record = await self._record_transaction(event, TransactionStatus.CHARGEBACK)
        if record is not None:
            await self.persistence.deny_access(record)

    # tokens

    async def on_registration_created(self, event) -> None:
        registration_id = event.registration.registration_id
        if not registration_id:
            self._logger.warning("registration.missing_id", kind=event.kind.value)
            return
        await self.persistence.save_token(
            TokenRecord(id=registration_id, created_at=datetime.now(timezone.utc))
        )

    async def on_registration_updated(self, event) -> None:
        registration_id = event.registration.registration_id
        if not registration_id:
            self._logger.warning("registration.missing_id", kind=event.kind.value)
            return
        await self.persistence.update_token(
            TokenRecord(id=registration_id, updated_at=datetime.now(timezone.utc))
        )

    # schedules

    async def on_schedule_event(self, event) -> None:
        target = SCHEDULE_STATUS_BY_KIND[event.kind]
        ref = event.schedule
        schedule_id = ref.schedule_id if ref else None

        current = None
        if schedule_id:
            stored = await self.persistence.get_schedule(schedule_id)
            current = stored.status if stored else None
        if not can_transition(current, target):
            self._logger.warning(
                "schedule.transition_ignored",
                schedule_id=schedule_id,
                current=current.value if current else None,
                target=target.value,
            )
            return

        await self.persistence.upsert_schedule(
            ScheduleRecord(
                schedule_id=schedule_id,
                status=target,
                registration_id=ref.registration_id if ref else None,
                amount=ref.amount if ref else None,
                currency=ref.currency if ref else None,
                interval=ref.interval if ref else None,
                updated_at=datetime.now(timezone.utc),
            )
        )

    # risk

    async def on_risk_event(self, event) -> None:
        # Observability only; entitlements are not gated on risk yet.
        risk = event.risk
        self._logger.info(
            f"risk.{'flagged' if event.kind is EventKind.RISK_FLAGGED else 'cleared'}",
            score=risk.score,
            reason=risk.reason,
            rules=list(risk.rules) if risk.rules else None,
        )
