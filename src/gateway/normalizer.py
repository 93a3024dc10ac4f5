"""Gateway result normalization.

Result codes are dot-delimited strings owned by the gateway
(``000.100.110``, ``800.400.100`` ...). Everything the adapter decides
about an outcome goes through :func:`normalize` and
:func:`map_result_code_to_ui_message`.
"""

import re
from decimal import Decimal, InvalidOperation

from src.models.payment import NormalizedResult, UiMessage

APPROVED_PREFIX = "000."

ID_FIELDS = ("id", "transactionId", "ndc", "paymentId")
CODE_FIELDS = ("resultCode", "code")
DESCRIPTION_FIELDS = ("resultDescription", "description")

_PENDING_RE = re.compile("pending", re.IGNORECASE)

FALLBACK_UI_MESSAGE = "Payment failed. Please try another card or contact support."

# First matching prefix wins, so longer prefixes are kept ahead of any
# shorter prefix they could share a start with.
UI_MESSAGE_RULES: tuple[tuple[str, str], ...] = tuple(
    sorted(
        (
            ("200.300.", "Payment declined by the issuer."),
            ("100.396.", "3-D Secure authentication failed or was canceled."),
            ("800.400.", "Invalid card data. Please check the number and expiry."),
            (APPROVED_PREFIX, "Payment approved."),
            ("700.", "Payment expired or timed out."),
        ),
        key=lambda rule: len(rule[0]),
        reverse=True,
    )
)


def _first(data: dict, names: tuple[str, ...]):
    for name in names:
        value = data.get(name)
        if value not in (None, ""):
            return value
    return None


def to_decimal(value, default: Decimal = Decimal("0")) -> Decimal:
    if value in (None, ""):
        return default
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default
    return result if result.is_finite() else default


def is_approved(result_code) -> bool:
    return str(result_code or "").startswith(APPROVED_PREFIX)


def is_pending(description) -> bool:
    return bool(_PENDING_RE.search(str(description or "")))


def normalize(data: dict | None, default_currency: str | None = None) -> NormalizedResult:
    """Reduce a gateway payment/transaction object to a :class:`NormalizedResult`.

    ``approved`` and ``pending`` are exclusive: an approved code wins over a
    pending description.
    """
    data = data or {}
    result = data.get("result") if isinstance(data.get("result"), dict) else {}
    card = data.get("card") if isinstance(data.get("card"), dict) else {}

    result_code = result.get("code") or _first(data, CODE_FIELDS)
    description = result.get("description") or _first(data, DESCRIPTION_FIELDS) or ""
    transaction_id = _first(data, ID_FIELDS)
    approved = is_approved(result_code)

    return NormalizedResult(
        transaction_id=str(transaction_id) if transaction_id is not None else None,
        amount=to_decimal(data.get("amount") or card.get("amount")),
        currency=data.get("currency") or card.get("currency") or default_currency,
        result_code=str(result_code) if result_code is not None else None,
        description=str(description),
        approved=approved,
        pending=not approved and is_pending(description),
    )


def map_result_code_to_ui_message(result_code) -> UiMessage:
    """Message safe to show an end user. Total over all inputs."""
    code = "" if result_code is None else str(result_code)
    stripped = code.strip()
    for prefix, message in UI_MESSAGE_RULES:
        if stripped.startswith(prefix):
            return UiMessage(code=code, ui_message=message)
    return UiMessage(code=code, ui_message=FALLBACK_UI_MESSAGE)
