from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional

from moneytracker.domain.errors import InvalidDateRange

DEFAULT_DESCRIPTION = "无描述"
DEFAULT_CATEGORY = "其他"
UNKNOWN_CATEGORY = "__unknown__"


class Currency(Enum):
    CNY = "CNY"
    MOP = "MOP"


class TransactionKind(Enum):
    INCOME = "income"
    EXPENSE = "expense"


@dataclass
class Transaction:
    amount: float
    # Kept as given; the aggregator reports unsupported values as diagnostics
    currency: str
    category: str
    date: date
    description: str = DEFAULT_DESCRIPTION
    recorded_rate: Optional[float] = None
    kind: Optional[TransactionKind] = None
    id: Optional[int] = None

    def __post_init__(self):
        if isinstance(self.date, datetime):
            self.date = self.date.date()
        if isinstance(self.currency, Currency):
            self.currency = self.currency.value
        if isinstance(self.kind, str):
            self.kind = TransactionKind(self.kind)
        if not self.description:
            self.description = DEFAULT_DESCRIPTION


@dataclass
class Category:
    name: str
    kind: TransactionKind
    id: Optional[int] = None

    def __post_init__(self):
        if isinstance(self.kind, str):
            self.kind = TransactionKind(self.kind)


@dataclass
class ExchangeRate:
    from_currency: Currency
    to_currency: Currency
    rate: float
    effective_at: datetime
    id: Optional[int] = None

    def __post_init__(self):
        self.from_currency = Currency(self.from_currency)
        self.to_currency = Currency(self.to_currency)
        if self.from_currency == self.to_currency:
            raise ValueError("Exchange rate currencies must differ.")


@dataclass(frozen=True)
class DateWindow:
    """Half-open calendar date range [start, end)."""

    start: date
    end: date

    def __post_init__(self):
        if self.start >= self.end:
            raise InvalidDateRange(
                f"Window start {self.start} must be before end {self.end}"
            )

    def __contains__(self, day: date) -> bool:
        return self.start <= day < self.end

    def days(self) -> List[date]:
        count = (self.end - self.start).days
        return [self.start + timedelta(days=i) for i in range(count)]


@dataclass(frozen=True)
class DailyTotal:
    day: date
    income: float
    expense: float
    net: float


@dataclass(frozen=True)
class MonthlyTotal:
    month: date  # first day of the month
    income: float
    expense: float
    net: float


@dataclass(frozen=True)
class Diagnostic:
    record_id: Optional[int]
    kind: str  # "malformed_record" or "unknown_category"
    message: str


@dataclass
class LedgerSummary:
    currency: Currency
    window: DateWindow
    as_of: datetime
    total_income: float
    total_expense: float
    net: float
    by_category: Dict[str, float]
    income_by_category: Dict[str, float]
    daily_series: List[DailyTotal]
    by_currency: Dict[str, float]
    transaction_count: int
    category_counts: Dict[str, int] = field(default_factory=dict)
    monthly_series: List[MonthlyTotal] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    fallback_rate_used: bool = False
