import datetime as dt
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from moneytracker.domain.models import (
    DailyTotal,
    Diagnostic,
    LedgerSummary,
    MonthlyTotal,
)
from moneytracker.domain.services.ledger_service import ledger_balance, ledger_summary
from moneytracker.presentation.deps import get_db


class DailyTotalResponse(BaseModel):
    day: dt.date
    income: float
    expense: float
    net: float

    @staticmethod
    def from_domain(d: DailyTotal) -> "DailyTotalResponse":
        return DailyTotalResponse(
            day=d.day, income=d.income, expense=d.expense, net=d.net
        )


class MonthlyTotalResponse(BaseModel):
    month: str  # YYYY-MM
    income: float
    expense: float
    net: float

    @staticmethod
    def from_domain(m: MonthlyTotal) -> "MonthlyTotalResponse":
        return MonthlyTotalResponse(
            month=m.month.strftime("%Y-%m"),
            income=m.income,
            expense=m.expense,
            net=m.net,
        )


class DiagnosticResponse(BaseModel):
    record_id: Optional[int] = None
    kind: str
    message: str

    @staticmethod
    def from_domain(d: Diagnostic) -> "DiagnosticResponse":
        return DiagnosticResponse(record_id=d.record_id, kind=d.kind, message=d.message)


class SummaryResponse(BaseModel):
    currency: str
    start: dt.date
    end: dt.date
    as_of: dt.datetime
    total_income: float
    total_expense: float
    net: float
    # Dicts keep the ranking order of the summary
    by_category: Dict[str, float]
    income_by_category: Dict[str, float]
    by_currency: Dict[str, float]
    daily_series: List[DailyTotalResponse]
    monthly_series: List[MonthlyTotalResponse]
    transaction_count: int
    category_counts: Dict[str, int]
    diagnostics: List[DiagnosticResponse]
    fallback_rate_used: bool = False

    @staticmethod
    def from_domain(s: LedgerSummary) -> "SummaryResponse":
        return SummaryResponse(
            currency=s.currency.value,
            start=s.window.start,
            end=s.window.end,
            as_of=s.as_of,
            total_income=s.total_income,
            total_expense=s.total_expense,
            net=s.net,
            by_category=s.by_category,
            income_by_category=s.income_by_category,
            by_currency=s.by_currency,
            daily_series=[DailyTotalResponse.from_domain(d) for d in s.daily_series],
            monthly_series=[MonthlyTotalResponse.from_domain(m) for m in s.monthly_series],
            transaction_count=s.transaction_count,
            category_counts=s.category_counts,
            diagnostics=[DiagnosticResponse.from_domain(d) for d in s.diagnostics],
            fallback_rate_used=s.fallback_rate_used,
        )


class BalanceResponse(BaseModel):
    currency: str
    balance: float
    as_of: dt.datetime
    diagnostics: List[DiagnosticResponse]
    fallback_rate_used: bool = False


router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("/summary", response_model=SummaryResponse)
def get_summary(
    db: Session = Depends(get_db),
    currency: Optional[str] = None,
    period: Optional[str] = Query(None, description="week, month or year"),
    start: Optional[dt.date] = Query(None, description="First day, inclusive"),
    end: Optional[dt.date] = Query(None, description="Last day, exclusive"),
    as_of: Optional[dt.datetime] = Query(
        None, description="Timestamp whose exchange rates value the report"
    ),
):
    try:
        summary = ledger_summary(
            db, currency=currency, period=period, start=start, end=end, as_of=as_of
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return SummaryResponse.from_domain(summary)


@router.get("/balance", response_model=BalanceResponse)
def get_balance(
    db: Session = Depends(get_db),
    currency: Optional[str] = None,
    as_of: Optional[dt.datetime] = None,
):
    try:
        result = ledger_balance(db, currency=currency, as_of=as_of)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return BalanceResponse(
        currency=result["currency"],
        balance=result["balance"],
        as_of=result["as_of"],
        diagnostics=[DiagnosticResponse.from_domain(d) for d in result["diagnostics"]],
        fallback_rate_used=result["fallback_rate_used"],
    )
