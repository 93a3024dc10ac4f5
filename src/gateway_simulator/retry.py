class RetryManager:
    """Redelivery policy of the simulated gateway.

    Any non-2xx answer is redelivered, so a receiver signals "try again"
    simply by failing. ``no_retry_codes`` narrows that for tests that need
    a terminal rejection.
    """

    DEFAULT_SCHEDULE = [30, 300, 1800, 7200]  # 30s, 5m, 30m, 2h

    def __init__(
        self,
        schedule: list[int] | None = None,
        max_retries: int | None = None,
        no_retry_codes: set[int] | None = None,
    ):
        self.schedule = schedule or self.DEFAULT_SCHEDULE
        self.max_retries = max_retries if max_retries is not None else len(self.schedule)
        self.no_retry_codes = set(no_retry_codes or ())

    def should_retry(self, status_code: int | None) -> bool:
        if status_code is None:
            return True
        if 200 <= status_code < 300:
            return False
        return status_code not in self.no_retry_codes

    def next_delay(self, attempt: int) -> float:
        """Seconds to wait before retry number ``attempt`` (0-indexed)."""
        if attempt >= len(self.schedule):
            return float(self.schedule[-1])
        return float(self.schedule[attempt])

    def has_attempts_remaining(self, attempt: int) -> bool:
        return attempt < self.max_retries
