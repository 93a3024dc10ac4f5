from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum


class TransactionStatus(Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    REFUNDED = "refunded"
    CHARGEBACK = "chargeback"


# A stored transaction only moves to a higher rank. Statuses sharing a rank
# are terminal with respect to each other.
STATUS_RANK = {
    TransactionStatus.PENDING: 0,
    TransactionStatus.SUCCESS: 1,
    TransactionStatus.FAILED: 1,
    TransactionStatus.REFUNDED: 2,
    TransactionStatus.CHARGEBACK: 2,
}


def is_stale_status(stored: TransactionStatus, incoming: TransactionStatus) -> bool:
    """True when writing ``incoming`` over ``stored`` would move the ledger sideways or back."""
    if incoming is stored:
        return False
    return STATUS_RANK[incoming] <= STATUS_RANK[stored]


@dataclass(frozen=True)
class NormalizedResult:
    """Gateway response reduced to the fields the adapter acts on."""

    transaction_id: str | None
    amount: Decimal
    currency: str
    result_code: str | None
    description: str
    approved: bool
    pending: bool

    @property
    def status(self) -> TransactionStatus:
        if self.approved:
            return TransactionStatus.SUCCESS
        if self.pending:
            return TransactionStatus.PENDING
        return TransactionStatus.FAILED


@dataclass(frozen=True)
class UiMessage:
    code: str
    ui_message: str


@dataclass(frozen=True)
class NormalizedTransaction:
    gateway_txn_id: str | None
    amount: Decimal
    currency: str
    result_code: str | None
    approved: bool
    pending: bool
    created_at: datetime
    gateway: str = "axcess"


@dataclass
class TransactionRecord:
    gateway_txn_id: str | None
    amount: Decimal
    currency: str | None
    status: TransactionStatus
    code: str | None
    ui_message: str
    created_at: datetime
    raw: dict = field(default_factory=dict)
    gateway: str = "axcess"
    type: str | None = None
    order_id: str | None = None
    user_id: str | None = None
