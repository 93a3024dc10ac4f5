class GatewayError(Exception):
    """Base class for every error raised by the gateway adapter."""


class ConfigurationError(GatewayError):
    pass


class ValidationError(GatewayError, ValueError):
    pass


class GatewayRequestError(GatewayError):
    """The remote API answered with a non-2xx status or could not be reached."""

    def __init__(self, message: str, status: int | None = None, raw: str | None = None):
        super().__init__(message)
        self.status = status
        self.raw = raw


class WebhookError(GatewayError):
    pass


class WebhookCryptoError(WebhookError):
    pass


class WebhookVerificationError(WebhookError):
    pass


class InvalidScheduleTransition(GatewayError):
    def __init__(self, schedule_id: str, current, target):
        super().__init__(f"Schedule {schedule_id}: cannot move from {current} to {target}")
        self.schedule_id = schedule_id
        self.current = current
        self.target = target
