import itertools
import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from src.models.payment import TransactionRecord
from src.models.session import CheckoutSession
from src.models.subscription import DowngradeInstruction, ResumeInstruction, ScheduleRecord
from src.models.token import TokenRecord
from src.models.webhook import WebhookRecord
from src.persistence.facade import PersistenceFacade


class InMemoryPersistence(PersistenceFacade):
    """Thread-safe in-process store, used by the local receiver and the tests."""

    def __init__(self):
        self._lock = threading.Lock()
        self.sessions: list[CheckoutSession] = []
        self.transactions: list[TransactionRecord] = []
        self.grants: list[TransactionRecord] = []
        self.denials: list[TransactionRecord] = []
        self.tokens: dict[str, TokenRecord] = {}
        self.schedules: dict[str, ScheduleRecord] = {}
        self.resume_instructions: list[ResumeInstruction] = []
        self.downgrade_instructions: list[DowngradeInstruction] = []
        self.webhooks: list[WebhookRecord] = []
        self.verifications: list[dict] = []
        self._processed_keys: dict[str, datetime] = {}
        self._claimed_keys: set[str] = set()
        self._schedule_seq = itertools.count(1)

    # sessions
    async def save_session(self, session: CheckoutSession) -> None:
        with self._lock:
            for i, existing in enumerate(self.sessions):
                if existing.id == session.id:
                    self.sessions[i] = session
                    return
            self.sessions.append(session)

    async def get_sessions_by(self, field: str, value: str) -> list[CheckoutSession]:
        with self._lock:
            return [s for s in self.sessions if getattr(s, field, None) == value]

    async def delete_session(self, session_id: str) -> None:
        with self._lock:
            self.sessions = [s for s in self.sessions if s.id != session_id]

    # transactions
    async def save_transaction(self, record: TransactionRecord) -> None:
        with self._lock:
            self.transactions.append(record)

    async def get_transaction(self, gateway_txn_id: str) -> TransactionRecord | None:
        with self._lock:
            for record in reversed(self.transactions):
                if record.gateway_txn_id == gateway_txn_id:
                    return record
            return None

    # entitlements
    async def grant_access(self, record: TransactionRecord) -> None:
        with self._lock:
            self.grants.append(record)

    async def deny_access(self, record: TransactionRecord) -> None:
        with self._lock:
            self.denials.append(record)

    # tokens
    async def save_token(self, token: TokenRecord) -> None:
        with self._lock:
            self.tokens[token.id] = token

    async def update_token(self, token: TokenRecord) -> None:
        with self._lock:
            existing = self.tokens.get(token.id)
            if existing is None:
                self.tokens[token.id] = token
                return
            changes = {
                name: value
                for name, value in vars(token).items()
                if value is not None and name != "id"
            }
            self.tokens[token.id] = replace(existing, **changes)

    async def delete_token(self, registration_id: str) -> None:
        with self._lock:
            self.tokens.pop(registration_id, None)

    async def get_tokens_by_user(self, user_id: str) -> list[TokenRecord]:
        with self._lock:
            return [t for t in self.tokens.values() if t.user_id == user_id]

    async def get_tokens_by_expiry(self, yyyymm: str) -> list[TokenRecord]:
        with self._lock:
            return [t for t in self.tokens.values() if (t.expiry or "").startswith(yyyymm)]

    # schedules
    def _next_schedule_id(self) -> str:
        # Caller holds the lock. Skips ids already taken by gateway-assigned schedules.
        while True:
            candidate = f"S-{next(self._schedule_seq)}"
            if candidate not in self.schedules:
                return candidate

    async def upsert_schedule(self, schedule: ScheduleRecord) -> ScheduleRecord:
        with self._lock:
            schedule_id = schedule.schedule_id or self._next_schedule_id()
            stored = replace(schedule, schedule_id=schedule_id)
            existing = self.schedules.get(schedule_id)
            if existing is not None:
                changes = {
                    name: value
                    for name, value in vars(stored).items()
                    if value is not None
                }
                stored = replace(existing, **changes)
            self.schedules[schedule_id] = stored
            return stored

    async def get_schedule(self, schedule_id: str) -> ScheduleRecord | None:
        with self._lock:
            return self.schedules.get(schedule_id)

    async def save_resume_instruction(self, instruction: ResumeInstruction) -> None:
        with self._lock:
            self.resume_instructions.append(instruction)

    async def save_downgrade_instruction(self, instruction: DowngradeInstruction) -> None:
        with self._lock:
            self.downgrade_instructions.append(instruction)

    # webhooks & verification
    async def save_webhook(self, record: WebhookRecord) -> None:
        with self._lock:
            self.webhooks.append(record)

    def _is_processed(self, idempotency_key: str) -> bool:
        expires_at = self._processed_keys.get(idempotency_key)
        if expires_at is None:
            return False
        if expires_at <= datetime.now(timezone.utc):
            del self._processed_keys[idempotency_key]
            return False
        return True

    async def is_webhook_processed(self, idempotency_key: str) -> bool:
        with self._lock:
            return self._is_processed(idempotency_key)

    async def mark_webhook_processed(self, idempotency_key: str, ttl: timedelta) -> None:
        with self._lock:
            self._processed_keys[idempotency_key] = datetime.now(timezone.utc) + ttl
            self._claimed_keys.discard(idempotency_key)

    async def claim_webhook_key(self, idempotency_key: str, ttl: timedelta) -> bool:
        with self._lock:
            if idempotency_key in self._claimed_keys or self._is_processed(idempotency_key):
                return False
            self._claimed_keys.add(idempotency_key)
            return True

    async def release_webhook_key(self, idempotency_key: str) -> None:
        with self._lock:
            self._claimed_keys.discard(idempotency_key)

    async def save_verification(self, data: dict) -> None:
        with self._lock:
            self.verifications.append(data)

    async def get_order_history(self, order_id: str) -> dict:
        with self._lock:
            return {
                "sessions": [s for s in self.sessions if s.order_id == order_id],
                "transactions": [t for t in self.transactions if t.order_id == order_id],
            }
