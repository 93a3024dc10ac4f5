import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

from dotenv import load_dotenv

from src.errors import ConfigurationError

DEFAULT_IV_HEADER = "x-axcess-iv"
DEFAULT_SIGNATURE_HEADER = "x-axcess-signature"
DEFAULT_CHECKOUT_EXPIRY_MINUTES = 25
DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0


def _env_str(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip()
    return value if value else default


def _env_bool(name: str, default: bool = False) -> bool:
    value = _env_str(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    value = _env_str(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")


def _env_float(name: str, default: float) -> float:
    value = _env_str(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {value!r}")


@dataclass
class WebhookConfig:
    """Webhook decryption, verification and deduplication settings.

    ``secret_key`` may be base64, hex, or any string; see
    :func:`src.utils.crypto.coerce_key` for how it becomes an AES-256 key.
    Unsigned deliveries count as verified unless ``require_signature`` is set.
    """

    secret_key: str | None = None
    iv_header_name: str = DEFAULT_IV_HEADER
    sig_header_name: str = DEFAULT_SIGNATURE_HEADER
    idempotency_ttl_hours: int = 48
    reject_unverified: bool = True
    require_signature: bool = False


@dataclass
class SessionConfig:
    checkout_expiry_minutes: int = DEFAULT_CHECKOUT_EXPIRY_MINUTES

    def __post_init__(self):
        if self.checkout_expiry_minutes <= 0:
            raise ConfigurationError("checkout_expiry_minutes must be positive")


@dataclass
class ThreeDSConfig:
    challenge_window_size: str = "05"
    attempt_exemption: bool = False


@dataclass
class GatewayConfig:
    environment: str
    base_url: str
    entity_id: str
    bearer_token: str
    webhook: WebhookConfig = field(default_factory=WebhookConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    three_ds: ThreeDSConfig = field(default_factory=ThreeDSConfig)
    http_timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS
    default_currency: str = "USD"

    def __post_init__(self):
        for name in ("environment", "base_url", "entity_id", "bearer_token"):
            if not getattr(self, name):
                raise ConfigurationError(f"GatewayConfig.{name} is required")
        parsed = urlparse(self.base_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError(f"GatewayConfig.base_url is not a valid URL: {self.base_url!r}")
        self.base_url = self.base_url.rstrip("/")

    @classmethod
    def from_env(cls, load_dotenv_file: bool = True) -> "GatewayConfig":
        """Build a config from ``AXCESS_*`` environment variables.

        A local ``.env`` is read first but never overrides the process env.
        """
        if load_dotenv_file:
            load_dotenv(override=False)

        webhook = WebhookConfig(
            secret_key=_env_str("AXCESS_WEBHOOK_SECRET"),
            iv_header_name=_env_str("AXCESS_WEBHOOK_IV_HEADER", DEFAULT_IV_HEADER),
            sig_header_name=_env_str("AXCESS_WEBHOOK_SIGNATURE_HEADER", DEFAULT_SIGNATURE_HEADER),
            idempotency_ttl_hours=_env_int("AXCESS_WEBHOOK_IDEMPOTENCY_TTL_HOURS", 48),
            reject_unverified=_env_bool("AXCESS_WEBHOOK_REJECT_UNVERIFIED", True),
            require_signature=_env_bool("AXCESS_WEBHOOK_REQUIRE_SIGNATURE", False),
        )
        return cls(
            environment=_env_str("AXCESS_ENVIRONMENT", "test"),
            base_url=_env_str("AXCESS_BASE_URL", ""),
            entity_id=_env_str("AXCESS_ENTITY_ID", ""),
            bearer_token=_env_str("AXCESS_BEARER_TOKEN", ""),
            webhook=webhook,
            session=SessionConfig(
                checkout_expiry_minutes=_env_int(
                    "AXCESS_CHECKOUT_EXPIRY_MINUTES", DEFAULT_CHECKOUT_EXPIRY_MINUTES
                ),
            ),
            three_ds=ThreeDSConfig(
                challenge_window_size=_env_str("AXCESS_3DS_CHALLENGE_WINDOW_SIZE", "05"),
                attempt_exemption=_env_bool("AXCESS_3DS_ATTEMPT_EXEMPTION", False),
            ),
            http_timeout_seconds=_env_float("AXCESS_HTTP_TIMEOUT_SECONDS", DEFAULT_HTTP_TIMEOUT_SECONDS),
            default_currency=_env_str("AXCESS_DEFAULT_CURRENCY", "USD"),
        )
