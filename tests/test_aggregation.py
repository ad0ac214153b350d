from datetime import date, datetime, timezone

import pytest

from moneytracker.domain.errors import (
    InvalidCurrency,
    InvalidDateRange,
    MalformedRecord,
    RateUnavailable,
)
from moneytracker.domain.helpers.aggregation import (
    aggregate,
    balance,
    classify,
    monthly_series,
    period_window,
    trend_window,
    window_from_bounds,
)
from moneytracker.domain.models import (
    UNKNOWN_CATEGORY,
    Category,
    DailyTotal,
    DateWindow,
    ExchangeRate,
    MonthlyTotal,
    Transaction,
    TransactionKind,
)

AS_OF = datetime(2025, 2, 15, tzinfo=timezone.utc)
JANUARY = DateWindow(date(2025, 1, 1), date(2025, 2, 1))

CATEGORIES = [
    Category(name="food", kind=TransactionKind.EXPENSE, id=1),
    Category(name="salary", kind=TransactionKind.INCOME, id=2),
    Category(name="rent", kind=TransactionKind.EXPENSE, id=3),
    Category(name="其他", kind=TransactionKind.EXPENSE, id=4),
]
CNY_MOP = ExchangeRate(
    from_currency="CNY",
    to_currency="MOP",
    rate=1.25,
    effective_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    id=1,
)


def tx(id, amount, currency, category, day, **kwargs):
    return Transaction(
        id=id, amount=amount, currency=currency, category=category, date=day, **kwargs
    )


def test_classify_uses_sign_without_kind():
    assert classify(tx(1, -100, "CNY", "food", date(2025, 1, 1))) == (
        TransactionKind.EXPENSE,
        100,
    )
    assert classify(tx(2, 200, "CNY", "salary", date(2025, 1, 1))) == (
        TransactionKind.INCOME,
        200,
    )
    assert classify(tx(3, 0, "CNY", "salary", date(2025, 1, 1))) == (
        TransactionKind.INCOME,
        0,
    )


def test_classify_trusts_explicit_kind_over_sign():
    positive_expense = tx(1, 80, "MOP", "food", date(2025, 1, 1), kind="expense")
    negative_income = tx(2, -50, "MOP", "salary", date(2025, 1, 1), kind="income")

    assert classify(positive_expense) == (TransactionKind.EXPENSE, 80)
    assert classify(negative_income) == (TransactionKind.INCOME, 50)


@pytest.mark.parametrize("amount", [float("nan"), float("inf"), "12", None])
def test_classify_rejects_non_finite_amounts(amount):
    with pytest.raises(MalformedRecord):
        classify(tx(1, amount, "CNY", "food", date(2025, 1, 1)))


def test_end_to_end_january_example():
    transactions = [
        tx(1, -100, "CNY", "food", date(2025, 1, 5)),
        tx(2, 200, "CNY", "salary", date(2025, 1, 10)),
    ]

    summary = aggregate(transactions, CATEGORIES, [], JANUARY, "CNY", AS_OF)

    assert summary.total_expense == 100
    assert summary.total_income == 200
    assert summary.net == 100
    assert summary.by_category == {"food": 100}
    assert summary.income_by_category == {"salary": 200}
    assert summary.transaction_count == 2
    assert summary.diagnostics == []
    assert len(summary.daily_series) == 31
    assert summary.daily_series[4] == DailyTotal(date(2025, 1, 5), 0.0, 100.0, -100.0)
    assert summary.daily_series[9] == DailyTotal(date(2025, 1, 10), 200.0, 0.0, 200.0)
    quiet_days = [
        d for d in summary.daily_series if d.day not in (date(2025, 1, 5), date(2025, 1, 10))
    ]
    assert len(quiet_days) == 29
    assert all(d.income == 0 and d.expense == 0 and d.net == 0 for d in quiet_days)


def test_daily_series_is_zero_filled_for_whole_window():
    window = DateWindow(date(2025, 3, 1), date(2025, 3, 8))
    transactions = [
        tx(1, -10, "CNY", "food", date(2025, 3, 2)),
        tx(2, -20, "CNY", "food", date(2025, 3, 6)),
    ]

    summary = aggregate(transactions, CATEGORIES, [], window, "CNY", AS_OF)

    assert [d.day for d in summary.daily_series] == window.days()
    assert len(summary.daily_series) == 7
    assert sum(1 for d in summary.daily_series if d.expense == 0) == 5


def test_window_is_half_open_on_calendar_dates():
    transactions = [
        tx(1, -1, "CNY", "food", date(2024, 12, 31)),
        tx(2, -2, "CNY", "food", date(2025, 1, 1)),
        tx(3, -4, "CNY", "food", date(2025, 1, 31)),
        tx(4, -8, "CNY", "food", date(2025, 2, 1)),
        tx(5, -16, "CNY", "food", datetime(2025, 1, 31, 23, 59)),
    ]

    summary = aggregate(transactions, CATEGORIES, [], JANUARY, "CNY", AS_OF)

    assert summary.total_expense == 22
    assert summary.transaction_count == 3


def test_category_ranking_is_by_magnitude_then_name():
    transactions = [
        tx(1, -50, "CNY", "rent", date(2025, 1, 2)),
        tx(2, -50, "CNY", "food", date(2025, 1, 3)),
        tx(3, -80, "CNY", "其他", date(2025, 1, 4)),
    ]

    first = aggregate(transactions, CATEGORIES, [], JANUARY, "CNY", AS_OF)
    second = aggregate(transactions, CATEGORIES, [], JANUARY, "CNY", AS_OF)

    assert list(first.by_category) == ["其他", "food", "rent"]
    assert first == second
    assert list(first.by_category.items()) == list(second.by_category.items())


def test_unknown_category_is_kept_apart_from_other():
    transactions = [
        tx(1, -30, "CNY", "其他", date(2025, 1, 2)),
        tx(2, -50, "CNY", "deleted category", date(2025, 1, 3)),
    ]

    summary = aggregate(transactions, CATEGORIES, [], JANUARY, "CNY", AS_OF)

    assert summary.by_category == {UNKNOWN_CATEGORY: 50, "其他": 30}
    assert [(d.record_id, d.kind) for d in summary.diagnostics] == [
        (2, "unknown_category")
    ]


def test_amounts_are_converted_at_as_of_rate_not_recorded_rate():
    transactions = [
        tx(1, -100, "CNY", "food", date(2025, 1, 5), recorded_rate=5.0),
        tx(2, -50, "MOP", "food", date(2025, 1, 6), recorded_rate=0.5),
        tx(3, 400, "CNY", "salary", date(2025, 1, 7)),
    ]

    summary = aggregate(transactions, CATEGORIES, [CNY_MOP], JANUARY, "MOP", AS_OF)

    assert summary.total_expense == pytest.approx(175)
    assert summary.total_income == pytest.approx(500)
    assert summary.net == pytest.approx(325)
    assert summary.by_category["food"] == pytest.approx(175)
    assert summary.by_currency == {"CNY": 300, "MOP": -50}


def test_inverse_rate_used_for_reporting_in_cny():
    transactions = [tx(1, -125, "MOP", "food", date(2025, 1, 5))]

    summary = aggregate(transactions, CATEGORIES, [CNY_MOP], JANUARY, "CNY", AS_OF)

    assert summary.total_expense == pytest.approx(100)


def test_missing_rate_for_needed_pair_fails_whole_aggregation():
    transactions = [
        tx(1, -100, "CNY", "food", date(2025, 1, 5)),
        tx(2, 200, "MOP", "salary", date(2025, 1, 10)),
    ]

    with pytest.raises(RateUnavailable):
        aggregate(transactions, CATEGORIES, [], JANUARY, "CNY", AS_OF)


def test_unneeded_missing_rate_does_not_fail():
    transactions = [
        tx(1, -100, "CNY", "food", date(2025, 1, 5)),
        tx(2, 200, "MOP", "salary", date(2025, 3, 10)),
    ]

    summary = aggregate(transactions, CATEGORIES, [], JANUARY, "CNY", AS_OF)

    assert summary.total_expense == 100
    assert summary.total_income == 0


def test_malformed_records_are_reported_not_thrown():
    transactions = [
        tx(1, -100, "CNY", "food", date(2025, 1, 5)),
        tx(2, -40, "USD", "food", date(2025, 1, 6)),
        tx(3, float("nan"), "CNY", "food", date(2025, 1, 7)),
        tx(4, float("inf"), "MOP", "food", date(2025, 1, 8)),
    ]

    summary = aggregate(transactions, CATEGORIES, [], JANUARY, "CNY", AS_OF)

    assert summary.total_expense == 100
    assert summary.transaction_count == 1
    assert [(d.record_id, d.kind) for d in summary.diagnostics] == [
        (2, "malformed_record"),
        (3, "malformed_record"),
        (4, "malformed_record"),
    ]


def test_invalid_window_is_rejected_before_processing():
    with pytest.raises(InvalidDateRange):
        DateWindow(date(2025, 1, 2), date(2025, 1, 2))
    with pytest.raises(InvalidDateRange):
        aggregate([], CATEGORIES, [], (date(2025, 2, 1), date(2025, 1, 1)), "CNY", AS_OF)


def test_invalid_target_currency_is_rejected():
    with pytest.raises(InvalidCurrency):
        aggregate([], CATEGORIES, [], JANUARY, "USD", AS_OF)


def test_empty_ledger_gives_zero_totals():
    summary = aggregate([], [], [], JANUARY, "MOP", AS_OF)

    assert summary.total_income == 0
    assert summary.total_expense == 0
    assert summary.by_category == {}
    assert len(summary.daily_series) == 31


def test_balance_converts_every_transaction():
    transactions = [
        tx(1, 200, "CNY", "salary", date(2024, 5, 1)),
        tx(2, -50, "MOP", "food", date(2025, 1, 1)),
        tx(3, -1, "USD", "food", date(2025, 1, 1)),
    ]

    total, diagnostics = balance(transactions, [CNY_MOP], "CNY", AS_OF)

    assert total == pytest.approx(160)
    assert [d.record_id for d in diagnostics] == [3]


def test_period_windows():
    assert period_window("week", date(2025, 1, 3)) == DateWindow(
        date(2024, 12, 28), date(2025, 1, 4)
    )
    assert period_window("month", date(2025, 12, 15)) == DateWindow(
        date(2025, 12, 1), date(2026, 1, 1)
    )
    assert period_window("month", date(2024, 2, 29)) == DateWindow(
        date(2024, 2, 1), date(2024, 3, 1)
    )
    assert period_window("year", date(2025, 6, 1)) == DateWindow(
        date(2025, 1, 1), date(2026, 1, 1)
    )
    with pytest.raises(ValueError):
        period_window("decade", date(2025, 6, 1))


def test_window_from_bounds_prefers_explicit_range():
    today = date(2025, 6, 1)

    assert window_from_bounds(date(2025, 1, 1), date(2025, 1, 8), "year", today) == (
        DateWindow(date(2025, 1, 1), date(2025, 1, 8))
    )
    assert window_from_bounds(None, None, None, today) == period_window("month", today)
    with pytest.raises(ValueError):
        window_from_bounds(date(2025, 1, 1), None, None, today)


def test_category_named_like_unknown_bucket_is_not_a_real_category():
    categories = CATEGORIES + [
        Category(name=UNKNOWN_CATEGORY, kind=TransactionKind.EXPENSE, id=9)
    ]
    transactions = [
        tx(1, -30, "CNY", UNKNOWN_CATEGORY, date(2025, 1, 2)),
        tx(2, -20, "CNY", "gone", date(2025, 1, 3)),
        tx(3, -10, "CNY", "food", date(2025, 1, 4)),
    ]

    summary = aggregate(transactions, categories, [], JANUARY, "CNY", AS_OF)

    assert summary.by_category == {UNKNOWN_CATEGORY: 50, "food": 10}
    assert [(d.record_id, d.kind) for d in summary.diagnostics] == [
        (1, "unknown_category"),
        (2, "unknown_category"),
    ]


def test_category_counts_include_income_and_unknown():
    transactions = [
        tx(1, -10, "CNY", "food", date(2025, 1, 2)),
        tx(2, -15, "CNY", "food", date(2025, 1, 3)),
        tx(3, 300, "CNY", "salary", date(2025, 1, 4)),
        tx(4, -1, "CNY", "gone", date(2025, 1, 5)),
        tx(5, -99, "CNY", "food", date(2025, 2, 5)),
    ]

    summary = aggregate(transactions, CATEGORIES, [], JANUARY, "CNY", AS_OF)

    assert summary.category_counts == {UNKNOWN_CATEGORY: 1, "food": 2, "salary": 1}


def test_trend_window_covers_twelve_months_ending_this_month():
    assert trend_window(date(2025, 2, 15)) == DateWindow(
        date(2024, 3, 1), date(2025, 3, 1)
    )
    assert trend_window(date(2025, 12, 31)) == DateWindow(
        date(2025, 1, 1), date(2026, 1, 1)
    )
    assert trend_window(date(2025, 6, 1), months=1) == DateWindow(
        date(2025, 6, 1), date(2025, 7, 1)
    )


def test_monthly_series_is_zero_filled_and_converted_at_as_of():
    transactions = [
        tx(1, -100, "CNY", "food", date(2024, 3, 1), recorded_rate=9.0),
        tx(2, 50, "MOP", "salary", date(2025, 2, 14)),
        tx(3, -7, "MOP", "food", date(2024, 2, 29)),
        tx(4, -1, "USD", "food", date(2024, 6, 1)),
        tx(5, -3, "MOP", "food", date(2025, 3, 1)),
    ]

    series = monthly_series(transactions, [CNY_MOP], "MOP", AS_OF)

    assert len(series) == 12
    assert series[0] == MonthlyTotal(date(2024, 3, 1), 0.0, 125.0, -125.0)
    assert series[-1] == MonthlyTotal(date(2025, 2, 1), 50.0, 0.0, 50.0)
    assert all(m.income == 0 and m.expense == 0 for m in series[1:-1])
    assert [m.month.month for m in series] == [3, 4, 5, 6, 7, 8, 9, 10, 11, 12, 1, 2]


def test_monthly_series_needs_rates_for_months_outside_the_report_window():
    transactions = [tx(1, -100, "CNY", "food", date(2024, 7, 1))]

    with pytest.raises(RateUnavailable):
        monthly_series(transactions, [], "MOP", AS_OF)
    assert monthly_series(transactions, [], "CNY", AS_OF)[4].expense == 100
