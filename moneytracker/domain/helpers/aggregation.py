import logging
import math
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from moneytracker.domain.errors import InvalidCurrency, MalformedRecord
from moneytracker.domain.helpers.rates import as_utc, parse_currency, resolve_rate
from moneytracker.domain.models import (
    UNKNOWN_CATEGORY,
    Category,
    Currency,
    DailyTotal,
    DateWindow,
    Diagnostic,
    ExchangeRate,
    LedgerSummary,
    MonthlyTotal,
    Transaction,
    TransactionKind,
)

logger = logging.getLogger(__name__)

PERIODS = ("week", "month", "year")


def classify(transaction: Transaction) -> Tuple[TransactionKind, float]:
    """
    Normalizes income/expense into a (kind, magnitude) pair.
    An explicit kind tag wins over the sign of the amount.
    """
    amount = transaction.amount
    if isinstance(amount, bool):
        raise MalformedRecord(f"Amount is not a number: {amount!r}")
    try:
        finite = math.isfinite(amount)
    except TypeError:
        raise MalformedRecord(f"Amount is not a number: {amount!r}")
    if not finite:
        raise MalformedRecord(f"Amount is not finite: {amount!r}")

    if transaction.kind is not None:
        try:
            kind = TransactionKind(transaction.kind)
        except ValueError:
            raise MalformedRecord(f"Unknown transaction kind: {transaction.kind!r}")
        return kind, abs(amount)
    if amount < 0:
        return TransactionKind.EXPENSE, abs(amount)
    return TransactionKind.INCOME, abs(amount)


def signed_amount(kind: TransactionKind, magnitude: float) -> float:
    return -magnitude if kind == TransactionKind.EXPENSE else magnitude


def _as_window(window) -> DateWindow:
    if isinstance(window, DateWindow):
        return window
    start, end = window
    return DateWindow(start, end)


def _validated(
    transaction: Transaction,
) -> Tuple[Currency, TransactionKind, float]:
    try:
        currency = parse_currency(transaction.currency)
    except InvalidCurrency as e:
        raise MalformedRecord(str(e))
    kind, magnitude = classify(transaction)
    return currency, kind, magnitude


def _rate_factors(
    currencies: Iterable[Currency],
    target: Currency,
    rates: Sequence[ExchangeRate],
    as_of: datetime,
) -> Dict[Currency, float]:
    # One rate per source currency, so the whole report shares a valuation
    factors = {}
    for currency in sorted(set(currencies), key=lambda c: c.value):
        if currency != target:
            factors[currency] = resolve_rate(rates, currency, target, as_of)
    return factors


def aggregate(
    transactions: Iterable[Transaction],
    categories: Iterable[Category],
    rates: Iterable[ExchangeRate],
    window,
    target_currency,
    as_of: datetime,
) -> LedgerSummary:
    """
    Folds a transaction snapshot into totals expressed in target_currency.

    Every amount is converted at the rate resolved at as_of, never at the
    rate recorded on the transaction. Records with an unsupported currency or
    a non-finite amount are skipped and reported in the diagnostics list.
    Raises InvalidDateRange, InvalidCurrency, RateUnavailable or InvalidRate.
    """
    window = _as_window(window)
    target = parse_currency(target_currency)
    as_of = as_utc(as_of)
    rates = list(rates)
    # The unknown bucket name never counts as a real category
    known_categories = {c.name for c in categories} - {UNKNOWN_CATEGORY}

    diagnostics: List[Diagnostic] = []
    entries = []
    for t in transactions:
        if not isinstance(t.date, date):
            diagnostics.append(
                Diagnostic(t.id, "malformed_record", f"Invalid date: {t.date!r}")
            )
            continue
        if t.date not in window:
            continue
        try:
            currency, kind, magnitude = _validated(t)
        except MalformedRecord as e:
            diagnostics.append(Diagnostic(t.id, "malformed_record", str(e)))
            continue
        entries.append((t, currency, kind, magnitude))

    factors = _rate_factors((e[1] for e in entries), target, rates, as_of)

    total_income = 0.0
    total_expense = 0.0
    by_category: Dict[str, float] = defaultdict(float)
    income_by_category: Dict[str, float] = defaultdict(float)
    by_currency: Dict[str, float] = defaultdict(float)
    category_counts: Dict[str, int] = defaultdict(int)
    daily: Dict[date, List[float]] = {day: [0.0, 0.0] for day in window.days()}

    for t, currency, kind, magnitude in entries:
        converted = magnitude * factors[currency] if currency in factors else magnitude
        bucket = t.category if t.category in known_categories else UNKNOWN_CATEGORY
        if bucket == UNKNOWN_CATEGORY:
            diagnostics.append(
                Diagnostic(
                    t.id,
                    "unknown_category",
                    f"Category {t.category!r} does not match any known category",
                )
            )

        by_currency[currency.value] += signed_amount(kind, magnitude)
        category_counts[bucket] += 1
        if kind == TransactionKind.EXPENSE:
            total_expense += converted
            by_category[bucket] += converted
            daily[t.date][1] += converted
        else:
            total_income += converted
            income_by_category[bucket] += converted
            daily[t.date][0] += converted

    daily_series = [
        DailyTotal(day=day, income=income, expense=expense, net=income - expense)
        for day, (income, expense) in sorted(daily.items())
    ]

    if diagnostics:
        logger.debug("Aggregation produced %d diagnostics", len(diagnostics))

    return LedgerSummary(
        currency=target,
        window=window,
        as_of=as_of,
        total_income=total_income,
        total_expense=total_expense,
        net=total_income - total_expense,
        by_category=_ranked(by_category),
        income_by_category=_ranked(income_by_category),
        daily_series=daily_series,
        by_currency=dict(sorted(by_currency.items())),
        transaction_count=len(entries),
        category_counts=dict(sorted(category_counts.items())),
        diagnostics=diagnostics,
    )


def _ranked(totals: Dict[str, float]) -> Dict[str, float]:
    """Orders buckets by descending total, ties broken by name."""
    return dict(sorted(totals.items(), key=lambda item: (-item[1], item[0])))


def balance(
    transactions: Iterable[Transaction],
    rates: Iterable[ExchangeRate],
    target_currency,
    as_of: datetime,
) -> Tuple[float, List[Diagnostic]]:
    """Net of every valid transaction, converted at the rate in effect at as_of."""
    target = parse_currency(target_currency)
    as_of = as_utc(as_of)
    rates = list(rates)

    diagnostics: List[Diagnostic] = []
    entries = []
    for t in transactions:
        try:
            entries.append(_validated(t))
        except MalformedRecord as e:
            diagnostics.append(Diagnostic(t.id, "malformed_record", str(e)))

    factors = _rate_factors((e[0] for e in entries), target, rates, as_of)
    total = 0.0
    for currency, kind, magnitude in entries:
        converted = magnitude * factors[currency] if currency in factors else magnitude
        total += signed_amount(kind, converted)
    return total, diagnostics


def _next_month(first: date) -> date:
    if first.month == 12:
        return first.replace(year=first.year + 1, month=1)
    return first.replace(month=first.month + 1)


def trend_window(today: date, months: int = 12) -> DateWindow:
    """The `months` calendar months ending with the month containing today."""
    end = _next_month(today.replace(day=1))
    start = today.replace(day=1)
    for _ in range(months - 1):
        start = (start - timedelta(days=1)).replace(day=1)
    return DateWindow(start, end)


def monthly_series(
    transactions: Iterable[Transaction],
    rates: Iterable[ExchangeRate],
    target_currency,
    as_of: datetime,
    today: Optional[date] = None,
    months: int = 12,
) -> List[MonthlyTotal]:
    """
    Zero-filled income/expense per calendar month over trend_window, valued
    at as_of like aggregate. Malformed records are left out; aggregate is
    the place that reports them.
    """
    target = parse_currency(target_currency)
    as_of = as_utc(as_of)
    window = trend_window(today or as_of.date(), months)
    rates = list(rates)

    entries = []
    for t in transactions:
        if not isinstance(t.date, date) or t.date not in window:
            continue
        try:
            entries.append((t.date, *_validated(t)))
        except MalformedRecord:
            continue

    factors = _rate_factors((e[1] for e in entries), target, rates, as_of)
    totals: Dict[date, List[float]] = {}
    month = window.start
    while month < window.end:
        totals[month] = [0.0, 0.0]
        month = _next_month(month)

    for day, currency, kind, magnitude in entries:
        converted = magnitude * factors[currency] if currency in factors else magnitude
        index = 1 if kind == TransactionKind.EXPENSE else 0
        totals[day.replace(day=1)][index] += converted

    return [
        MonthlyTotal(month=month, income=income, expense=expense, net=income - expense)
        for month, (income, expense) in totals.items()
    ]


def period_window(period: str, today: date) -> DateWindow:
    """
    week: the 7 days ending today; month and year: the calendar period
    containing today.
    """
    if period == "week":
        return DateWindow(today - timedelta(days=6), today + timedelta(days=1))
    if period == "month":
        start = today.replace(day=1)
        return DateWindow(start, _next_month(start))
    if period == "year":
        start = date(today.year, 1, 1)
        return DateWindow(start, date(today.year + 1, 1, 1))
    raise ValueError(f"Unknown period: {period}. Expected one of {', '.join(PERIODS)}")


def window_from_bounds(
    start: Optional[date], end: Optional[date], period: Optional[str], today: date
) -> DateWindow:
    """Explicit bounds win over a named period; end is exclusive."""
    if start is not None and end is not None:
        return DateWindow(start, end)
    if start is not None or end is not None:
        raise ValueError("Both start and end must be given for a custom window.")
    return period_window(period or "month", today)
