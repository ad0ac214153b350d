import math
from datetime import datetime, timezone
from typing import Iterable, Optional

from moneytracker.domain.errors import InvalidCurrency, InvalidRate, RateUnavailable
from moneytracker.domain.models import Currency, ExchangeRate


def parse_currency(value) -> Currency:
    if isinstance(value, Currency):
        return value
    try:
        return Currency(str(value).strip().upper())
    except ValueError:
        raise InvalidCurrency(f"Unsupported currency: {value}")


def as_utc(moment: datetime) -> datetime:
    """Naive timestamps are treated as UTC so they compare with aware ones."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _latest(
    rates: Iterable[ExchangeRate],
    from_currency: Currency,
    to_currency: Currency,
    as_of: datetime,
) -> Optional[ExchangeRate]:
    latest = None
    for r in rates:
        if r.from_currency != from_currency or r.to_currency != to_currency:
            continue
        effective_at = as_utc(r.effective_at)
        if effective_at > as_of:
            continue
        # Ties on effective_at resolve to the later id so the pick is stable
        if latest is None or (effective_at, r.id or 0) > (
            as_utc(latest.effective_at),
            latest.id or 0,
        ):
            latest = r
    return latest


def _checked(record: ExchangeRate) -> float:
    rate = record.rate
    if not isinstance(rate, (int, float)) or not math.isfinite(rate) or rate <= 0:
        raise InvalidRate(
            f"Stored rate {record.from_currency.value}->{record.to_currency.value} "
            f"is invalid: {rate!r}"
        )
    return float(rate)


def resolve_rate(
    rates: Iterable[ExchangeRate],
    from_currency,
    to_currency,
    as_of: Optional[datetime] = None,
) -> float:
    """
    Returns how many units of to_currency one unit of from_currency is worth.
    The latest direct record effective at as_of wins; otherwise the reciprocal
    of the latest inverse record is used.
    """
    from_currency = parse_currency(from_currency)
    to_currency = parse_currency(to_currency)
    if from_currency == to_currency:
        return 1
    as_of = as_utc(as_of or datetime.now(timezone.utc))
    rates = list(rates)

    direct = _latest(rates, from_currency, to_currency, as_of)
    if direct is not None:
        return _checked(direct)

    inverse = _latest(rates, to_currency, from_currency, as_of)
    if inverse is not None:
        return 1 / _checked(inverse)

    raise RateUnavailable(from_currency, to_currency, as_of)


def convert(
    amount: float,
    from_currency,
    to_currency,
    rates: Iterable[ExchangeRate],
    as_of: Optional[datetime] = None,
) -> float:
    if parse_currency(from_currency) == parse_currency(to_currency):
        return amount
    return amount * resolve_rate(rates, from_currency, to_currency, as_of)
