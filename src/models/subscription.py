from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum

from src.errors import InvalidScheduleTransition


class ScheduleStatus(Enum):
    ACTIVE = "active"
    CANCELED = "canceled"
    RESCHEDULED = "rescheduled"
    PAUSED = "paused-instruction-pending"


# Key None is a schedule the store has not seen yet. Resuming never reopens
# a schedule id; it creates a new one.
_VALID_TRANSITIONS = {
    None: {
        ScheduleStatus.ACTIVE,
        ScheduleStatus.RESCHEDULED,
        ScheduleStatus.CANCELED,
        ScheduleStatus.PAUSED,
    },
    ScheduleStatus.ACTIVE: {
        ScheduleStatus.ACTIVE,
        ScheduleStatus.RESCHEDULED,
        ScheduleStatus.CANCELED,
        ScheduleStatus.PAUSED,
    },
    ScheduleStatus.RESCHEDULED: {
        ScheduleStatus.ACTIVE,
        ScheduleStatus.RESCHEDULED,
        ScheduleStatus.CANCELED,
        ScheduleStatus.PAUSED,
    },
    ScheduleStatus.PAUSED: {ScheduleStatus.PAUSED, ScheduleStatus.CANCELED},
    ScheduleStatus.CANCELED: {ScheduleStatus.CANCELED},
}


def can_transition(current: ScheduleStatus | None, target: ScheduleStatus) -> bool:
    return target in _VALID_TRANSITIONS[current]


def ensure_transition(schedule_id: str, current: ScheduleStatus | None, target: ScheduleStatus) -> None:
    if not can_transition(current, target):
        raise InvalidScheduleTransition(schedule_id, current, target)


@dataclass
class ScheduleRecord:
    schedule_id: str | None
    status: ScheduleStatus
    registration_id: str | None = None
    amount: Decimal | None = None
    currency: str | None = None
    interval: str | None = None
    start_date: str | None = None
    reason: str | None = None
    updated_at: datetime | None = None


@dataclass
class ResumeInstruction:
    subscription_id: str
    resume_at: str


@dataclass
class DowngradeInstruction:
    subscription_id: str
    effective_at: str
    new_recurring: dict = field(default_factory=dict)
    status: str = "pending"
