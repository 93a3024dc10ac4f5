from dataclasses import dataclass
from datetime import datetime


@dataclass
class DeliveryAttempt:
    """One POST of a webhook from the simulated gateway to a receiver."""

    attempt_id: str
    event_id: str | None
    url: str
    status_code: int | None
    timestamp: datetime
    response_time_ms: float
    error: str | None = None
    response_body: dict | None = None

    @property
    def delivered(self) -> bool:
        return self.status_code is not None and 200 <= self.status_code < 300
