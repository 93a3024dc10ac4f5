import threading

import structlog

from src.models.delivery import DeliveryAttempt

logger = structlog.get_logger(__name__)


class DeliveryLogger:
    """Thread-safe record of every delivery attempt the simulator made."""

    def __init__(self):
        self._attempts: list[DeliveryAttempt] = []
        self._lock = threading.Lock()

    def log(self, attempt: DeliveryAttempt) -> None:
        with self._lock:
            self._attempts.append(attempt)
        logger.info(
            "simulator.delivery_attempt",
            event_id=attempt.event_id,
            status_code=attempt.status_code,
            error=attempt.error,
            response_time_ms=round(attempt.response_time_ms, 2),
        )

    def get_attempts(self, event_id: str | None = None) -> list[DeliveryAttempt]:
        with self._lock:
            if event_id is None:
                return list(self._attempts)
            return [a for a in self._attempts if a.event_id == event_id]

    def get_failed_attempts(self) -> list[DeliveryAttempt]:
        with self._lock:
            return [a for a in self._attempts if not a.delivered]

    def clear(self) -> None:
        with self._lock:
            self._attempts.clear()
