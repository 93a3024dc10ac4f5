"""Persistence capability interface.

Storage is owned by the host application. Every method has a no-op
default so an application can implement only what it stores; a missing
method behaves as if the call succeeded and returned nothing.
"""

from datetime import timedelta

from src.models.payment import TransactionRecord
from src.models.session import CheckoutSession
from src.models.subscription import DowngradeInstruction, ResumeInstruction, ScheduleRecord
from src.models.token import TokenRecord
from src.models.webhook import WebhookRecord


class PersistenceFacade:
    # sessions
    async def save_session(self, session: CheckoutSession) -> None:
        return None

    async def get_sessions_by(self, field: str, value: str) -> list[CheckoutSession]:
        return []

    async def delete_session(self, session_id: str) -> None:
        return None

    # transactions
    async def save_transaction(self, record: TransactionRecord) -> None:
        return None

    async def get_transaction(self, gateway_txn_id: str) -> TransactionRecord | None:
        return None

    # entitlements
    async def grant_access(self, record: TransactionRecord) -> None:
        return None

    async def deny_access(self, record: TransactionRecord) -> None:
        return None

    # tokens
    async def save_token(self, token: TokenRecord) -> None:
        return None

    async def update_token(self, token: TokenRecord) -> None:
        return None

    async def delete_token(self, registration_id: str) -> None:
        return None

    async def get_tokens_by_user(self, user_id: str) -> list[TokenRecord]:
        return []

    async def get_tokens_by_expiry(self, yyyymm: str) -> list[TokenRecord]:
        return []

    # schedules
    async def upsert_schedule(self, schedule: ScheduleRecord) -> ScheduleRecord | None:
        return None

    async def get_schedule(self, schedule_id: str) -> ScheduleRecord | None:
        return None

    async def save_resume_instruction(self, instruction: ResumeInstruction) -> None:
        return None

    async def save_downgrade_instruction(self, instruction: DowngradeInstruction) -> None:
        return None

    # webhooks & verification
    async def save_webhook(self, record: WebhookRecord) -> None:
        return None

    async def is_webhook_processed(self, idempotency_key: str) -> bool:
        return False

    async def mark_webhook_processed(self, idempotency_key: str, ttl: timedelta) -> None:
        return None

    async def claim_webhook_key(self, idempotency_key: str, ttl: timedelta) -> bool:
        """Reserve a key for processing; False when processed or already claimed.

        Stores that can reserve atomically should override this. The default
        only consults ``is_webhook_processed``.
        """
        return not await self.is_webhook_processed(idempotency_key)

    async def release_webhook_key(self, idempotency_key: str) -> None:
        return None

    async def save_verification(self, data: dict) -> None:
        return None

    async def get_order_history(self, order_id: str) -> dict | None:
        return None

