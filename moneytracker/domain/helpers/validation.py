import math
from typing import Optional

from moneytracker.domain.models import UNKNOWN_CATEGORY, Currency, TransactionKind

SUPPORTED_CURRENCIES = {c.value for c in Currency}
RESERVED_CATEGORY_NAMES = {UNKNOWN_CATEGORY}


def validate_currency(currency) -> str:
    """Returns the upper-case code; same rule as parse_currency in rates."""
    code = getattr(currency, "value", currency)
    if isinstance(code, str):
        code = code.strip().upper()
    if not isinstance(code, str) or code not in SUPPORTED_CURRENCIES:
        raise ValueError(f"Unsupported currency: {currency!r}")
    return code


def validate_amount(amount) -> float:
    if isinstance(amount, bool):
        raise ValueError("Amount must be a number")
    try:
        amount = float(amount)
    except (TypeError, ValueError, OverflowError):
        raise ValueError("Amount must be a number")
    if not math.isfinite(amount):
        raise ValueError("Amount must be finite")
    return amount


def validate_kind(kind) -> Optional[TransactionKind]:
    if kind is None or kind == "":
        return None
    try:
        return TransactionKind(kind)
    except ValueError:
        raise ValueError("Invalid transaction kind")


def validate_category_name(category) -> str:
    name = str(category or "").strip()
    if not name:
        raise ValueError("Category must be provided")
    return name


def validate_new_category_name(category) -> str:
    """Names for category definitions; the unknown bucket name is reserved."""
    name = validate_category_name(category)
    if name in RESERVED_CATEGORY_NAMES:
        raise ValueError(f"Category name is reserved: {name}")
    return name


def validate_rate(rate) -> Optional[float]:
    """None and "" mean no rate; anything else must be a positive number."""
    if rate is None or rate == "":
        return None
    try:
        rate = float(rate)
    except (TypeError, ValueError, OverflowError):
        raise ValueError("Exchange rate must be a number")
    if not math.isfinite(rate) or rate <= 0:
        raise ValueError("Exchange rate must be positive")
    return rate


def signed_by_kind(amount: float, kind: Optional[TransactionKind]) -> float:
    """Income is stored positive, expense negative; untagged keeps its sign."""
    if kind == TransactionKind.INCOME:
        return abs(amount)
    if kind == TransactionKind.EXPENSE:
        return -abs(amount)
    return amount
