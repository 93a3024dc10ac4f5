from datetime import datetime, timedelta, timezone

from src.models.session import CheckoutSession, SessionStatus


def is_session_valid(
    session: CheckoutSession | None,
    ttl_minutes: int,
    now: datetime | None = None,
) -> bool:
    """A checkout session is reusable while pending and younger than the TTL."""
    if session is None or session.status is not SessionStatus.PENDING or session.created_at is None:
        return False
    now = now or datetime.now(timezone.utc)
    return now - session.created_at < timedelta(minutes=ttl_minutes)
