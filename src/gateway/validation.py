from decimal import Decimal

from src.errors import ValidationError
from src.gateway.normalizer import to_decimal


def require(value, name: str):
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{name} is required")
    return value


def require_amount(value, name: str = "amount", required: bool = True) -> Decimal | None:
    if value is None and not required:
        return None
    require(value, name)
    amount = to_decimal(value, default=None)
    if amount is None or amount < 0:
        raise ValidationError(f"{name} must be a non-negative number, got {value!r}")
    return amount
