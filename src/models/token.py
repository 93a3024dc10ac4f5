from dataclasses import dataclass
from datetime import datetime


@dataclass
class TokenRecord:
    id: str
    brand: str | None = None
    expiry: str | None = None  # YYYY-MM
    user_id: str | None = None
    last4: str | None = None
    gateway: str = "axcess"
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class Card:
    number: str
    holder: str
    expiry_month: str
    expiry_year: str
    cvv: str | None = None

    @property
    def last4(self) -> str:
        return self.number[-4:]
