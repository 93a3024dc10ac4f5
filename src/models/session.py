from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum


class SessionStatus(Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class CheckoutSession:
    id: str
    order_id: str
    user_id: str
    checkout_id: str
    status: SessionStatus
    created_at: datetime
    amount: Decimal | None = None
    currency: str | None = None
    payment_type: str = "DB"
    gateway: str = "axcess"
    metadata: dict = field(default_factory=dict)
    customer: dict = field(default_factory=dict)
    updated_at: datetime | None = None
