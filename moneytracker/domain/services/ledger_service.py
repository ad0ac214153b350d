import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from moneytracker.config import settings
from moneytracker.data.repositories.category_repository import (
    get_category_by_name,
    list_categories_by_kind,
)
from moneytracker.data.repositories.currency_repository import get_latest_rates
from moneytracker.data.repositories.transaction_repository import (
    list_transactions as repo_list_transactions,
)
from moneytracker.data.repositories.transaction_repository import (
    list_transactions_in_window,
)
from moneytracker.data.store import (
    CATEGORIES,
    EXCHANGE_RATES,
    TRANSACTIONS,
    delete_record,
    get_record,
    insert_record,
    list_records,
    update_record,
)
from moneytracker.domain.errors import RateUnavailable
from moneytracker.domain.helpers.aggregation import (
    aggregate,
    balance,
    monthly_series,
    trend_window,
    window_from_bounds,
)
from moneytracker.domain.helpers.rates import convert, parse_currency, resolve_rate
from moneytracker.domain.helpers.timeutil import local_date
from moneytracker.domain.helpers.validation import (
    signed_by_kind,
    validate_amount,
    validate_category_name,
    validate_new_category_name,
    validate_currency,
    validate_kind,
    validate_rate,
)
from moneytracker.domain.models import (
    Category,
    Currency,
    ExchangeRate,
    LedgerSummary,
    Transaction,
)

logger = logging.getLogger(__name__)

FALLBACK_EFFECTIVE_AT = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _current_rate_snapshot(db: Session) -> Optional[float]:
    """The CNY->MOP rate in effect now, recorded on new transactions."""
    try:
        return resolve_rate(list_records(db, EXCHANGE_RATES), Currency.CNY, Currency.MOP)
    except RateUnavailable:
        return None


# --- Transactions ---


def list_transactions(db: Session, currency: str | None = None) -> List[Transaction]:
    if currency is not None:
        currency = validate_currency(currency)
    return repo_list_transactions(db, currency)


def get_transaction(db: Session, transaction_id: int) -> Transaction | None:
    return get_record(db, TRANSACTIONS, transaction_id)


def create_transaction(
    db: Session,
    amount,
    currency,
    category: str,
    date: date,
    description: str = "",
    kind=None,
    recorded_rate=None,
) -> Transaction:
    kind = validate_kind(kind)
    transaction = Transaction(
        amount=signed_by_kind(validate_amount(amount), kind),
        currency=validate_currency(currency),
        category=validate_category_name(category),
        date=date,
        description=(description or "").strip(),
        recorded_rate=validate_rate(recorded_rate),
        kind=kind,
    )
    if transaction.recorded_rate is None:
        transaction.recorded_rate = _current_rate_snapshot(db)

    transaction_id = insert_record(db, TRANSACTIONS, transaction)
    logger.info(
        "Added transaction %s: %s %s (%s)",
        transaction_id,
        transaction.amount,
        transaction.currency,
        transaction.category,
    )
    return get_record(db, TRANSACTIONS, transaction_id)


def update_transaction(
    db: Session, transaction_id: int, patch: Dict[str, Any]
) -> Transaction | None:
    current = get_record(db, TRANSACTIONS, transaction_id)
    if current is None:
        return None

    patch = dict(patch)
    for field_name in ("amount", "currency", "category", "date"):
        if field_name in patch and patch[field_name] is None:
            raise ValueError(f"{field_name} cannot be empty")
    if "currency" in patch:
        patch["currency"] = validate_currency(patch["currency"])
    if "category" in patch:
        patch["category"] = validate_category_name(patch["category"])
    if "recorded_rate" in patch:
        patch["recorded_rate"] = validate_rate(patch["recorded_rate"])
    if "description" in patch:
        patch["description"] = (patch["description"] or "").strip()
    if "amount" in patch or "kind" in patch:
        kind = validate_kind(patch["kind"]) if "kind" in patch else current.kind
        amount = validate_amount(patch.get("amount", current.amount))
        patch["kind"] = kind
        patch["amount"] = signed_by_kind(amount, kind)

    updated = update_record(db, TRANSACTIONS, transaction_id, patch)
    logger.info("Updated transaction %s: %s", transaction_id, sorted(patch))
    return updated


def delete_transaction(db: Session, transaction_id: int) -> bool:
    deleted = delete_record(db, TRANSACTIONS, transaction_id)
    if deleted:
        logger.info("Deleted transaction %s", transaction_id)
    return deleted


# --- Categories ---


def list_categories(db: Session, kind: str | None = None) -> List[Category]:
    if kind:
        return list_categories_by_kind(db, validate_kind(kind))
    return list_records(db, CATEGORIES)


def add_category(db: Session, name: str, kind) -> Category:
    name = validate_new_category_name(name)
    kind = validate_kind(kind)
    if kind is None:
        raise ValueError("Category kind must be 'income' or 'expense'")
    if get_category_by_name(db, name):
        raise ValueError(f"Category already exists: {name}")
    category_id = insert_record(db, CATEGORIES, Category(name=name, kind=kind))
    logger.info("Added %s category %r", kind.value, name)
    return get_record(db, CATEGORIES, category_id)


def delete_category(db: Session, category_id: int) -> bool:
    """
    Removes a category. Transactions keep the old name and are reported
    under the unknown bucket by the statistics.
    """
    category = get_record(db, CATEGORIES, category_id)
    if category is None:
        return False
    delete_record(db, CATEGORIES, category_id)
    orphaned = sum(1 for t in repo_list_transactions(db) if t.category == category.name)
    logger.info(
        "Deleted category %r; %d transactions keep the stale name",
        category.name,
        orphaned,
    )
    return True


# --- Exchange rates ---


def add_exchange_rate(
    db: Session,
    from_currency,
    to_currency,
    rate,
    effective_at: datetime | None = None,
) -> ExchangeRate:
    from_code = validate_currency(from_currency)
    to_code = validate_currency(to_currency)
    if from_code == to_code:
        raise ValueError("Exchange rate currencies must differ")
    if rate is None:
        raise ValueError("Exchange rate must be provided")
    record = ExchangeRate(
        from_currency=from_code,
        to_currency=to_code,
        rate=validate_rate(rate),
        effective_at=effective_at or _now(),
    )
    rate_id = insert_record(db, EXCHANGE_RATES, record)
    logger.info("Recorded rate 1 %s = %s %s", from_code, record.rate, to_code)
    return get_record(db, EXCHANGE_RATES, rate_id)


def list_latest_rates(db: Session, limit: int = 5) -> List[ExchangeRate]:
    return get_latest_rates(db, limit)


def current_rate(
    db: Session, from_currency, to_currency, as_of: datetime | None = None
) -> float:
    return resolve_rate(
        list_records(db, EXCHANGE_RATES), from_currency, to_currency, as_of or _now()
    )


def convert_amount(
    db: Session,
    amount,
    from_currency,
    to_currency,
    as_of: datetime | None = None,
) -> float:
    return convert(
        validate_amount(amount),
        from_currency,
        to_currency,
        list_records(db, EXCHANGE_RATES),
        as_of or _now(),
    )


# --- Statistics ---


def _fallback_rates(fallback_rate: float | None) -> List[ExchangeRate]:
    rate = fallback_rate if fallback_rate is not None else settings.FALLBACK_CNY_MOP_RATE
    if rate is None:
        return []
    return [
        ExchangeRate(
            from_currency=Currency.CNY,
            to_currency=Currency.MOP,
            rate=rate,
            effective_at=FALLBACK_EFFECTIVE_AT,
        )
    ]


def ledger_summary(
    db: Session,
    currency: str | None = None,
    period: str | None = None,
    start: date | None = None,
    end: date | None = None,
    as_of: datetime | None = None,
    fallback_rate: float | None = None,
) -> LedgerSummary:
    """
    Statistics for a window: an explicit [start, end) range, or a named
    period (week, month, year) around the as_of date. The summary also
    carries the 12-month trend ending with the as_of month.
    """
    as_of = as_of or _now()
    today = local_date(as_of)
    target = parse_currency(currency or settings.DEFAULT_CURRENCY)
    window = window_from_bounds(start, end, period, today)
    trend = trend_window(today)

    transactions = list_transactions_in_window(db, window.start, window.end)
    trend_transactions = list_transactions_in_window(db, trend.start, trend.end)
    categories = list_records(db, CATEGORIES)
    rates = list_records(db, EXCHANGE_RATES)

    def summarize(rate_snapshot):
        summary = aggregate(transactions, categories, rate_snapshot, window, target, as_of)
        summary.monthly_series = monthly_series(
            trend_transactions, rate_snapshot, target, as_of, today
        )
        return summary

    try:
        summary = summarize(rates)
    except RateUnavailable:
        fallback = _fallback_rates(fallback_rate)
        if not fallback:
            raise
        logger.warning(
            "No stored CNY/MOP rate; using configured fallback rate %s",
            fallback[0].rate,
        )
        summary = summarize(rates + fallback)
        summary.fallback_rate_used = True

    if summary.diagnostics:
        logger.warning(
            "Summary %s..%s skipped or flagged %d records",
            window.start,
            window.end,
            len(summary.diagnostics),
        )
    return summary


def ledger_balance(
    db: Session,
    currency: str | None = None,
    as_of: datetime | None = None,
    fallback_rate: float | None = None,
) -> Dict[str, Any]:
    as_of = as_of or _now()
    target = parse_currency(currency or settings.DEFAULT_CURRENCY)
    transactions = repo_list_transactions(db)
    rates = list_records(db, EXCHANGE_RATES)

    fallback_used = False
    try:
        total, diagnostics = balance(transactions, rates, target, as_of)
    except RateUnavailable:
        fallback = _fallback_rates(fallback_rate)
        if not fallback:
            raise
        logger.warning(
            "No stored CNY/MOP rate; using configured fallback rate %s",
            fallback[0].rate,
        )
        total, diagnostics = balance(transactions, rates + fallback, target, as_of)
        fallback_used = True

    return {
        "currency": target.value,
        "balance": total,
        "as_of": as_of,
        "diagnostics": diagnostics,
        "fallback_rate_used": fallback_used,
    }
