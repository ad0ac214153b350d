from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from moneytracker.domain.models import Category, ExchangeRate
from moneytracker.domain.services.ledger_service import (
    add_category,
    add_exchange_rate,
    convert_amount,
    current_rate,
    delete_category,
    list_categories,
    list_latest_rates,
)
from moneytracker.presentation.deps import get_db


# --- Category models ---
class CategoryResponse(BaseModel):
    id: int
    name: str
    kind: str

    @staticmethod
    def from_domain(c: Category) -> "CategoryResponse":
        return CategoryResponse(id=c.id, name=c.name, kind=c.kind.value)


class CategoryRequest(BaseModel):
    name: str
    kind: str = Field(..., description="'income' or 'expense'")


# --- Exchange rate models ---
class ExchangeRateResponse(BaseModel):
    id: int
    from_currency: str
    to_currency: str
    rate: float
    effective_at: datetime

    @staticmethod
    def from_domain(r: ExchangeRate) -> "ExchangeRateResponse":
        return ExchangeRateResponse(
            id=r.id,
            from_currency=r.from_currency.value,
            to_currency=r.to_currency.value,
            rate=r.rate,
            effective_at=r.effective_at,
        )


class ExchangeRateRequest(BaseModel):
    from_currency: str = "CNY"
    to_currency: str = "MOP"
    rate: float
    effective_at: Optional[datetime] = None


category_router = APIRouter(prefix="/api/categories", tags=["categories"])
rate_router = APIRouter(prefix="/api/rates", tags=["rates"])


@category_router.get("", response_model=List[CategoryResponse])
def get_categories(
    db: Session = Depends(get_db),
    kind: Optional[str] = Query(None, description="'income' or 'expense'"),
):
    try:
        categories = list_categories(db, kind)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return [CategoryResponse.from_domain(c) for c in categories]


@category_router.post("", response_model=CategoryResponse)
def add_category_endpoint(req: CategoryRequest, db: Session = Depends(get_db)):
    try:
        category = add_category(db, req.name, req.kind)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return CategoryResponse.from_domain(category)


@category_router.delete("/{category_id}")
def delete_category_endpoint(category_id: int, db: Session = Depends(get_db)):
    if not delete_category(db, category_id):
        raise HTTPException(status_code=404, detail="Category not found")
    return {"deleted": 1}


@rate_router.get("", response_model=List[ExchangeRateResponse])
def get_latest_rates(
    db: Session = Depends(get_db),
    limit: int = Query(5, ge=1, le=100),
):
    return [ExchangeRateResponse.from_domain(r) for r in list_latest_rates(db, limit)]


@rate_router.post("", response_model=ExchangeRateResponse)
def add_exchange_rate_endpoint(req: ExchangeRateRequest, db: Session = Depends(get_db)):
    try:
        rate = add_exchange_rate(
            db, req.from_currency, req.to_currency, req.rate, req.effective_at
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ExchangeRateResponse.from_domain(rate)


@rate_router.get("/current")
def get_current_rate(
    db: Session = Depends(get_db),
    from_currency: str = Query("CNY", alias="from"),
    to_currency: str = Query("MOP", alias="to"),
    as_of: Optional[datetime] = None,
):
    try:
        rate = current_rate(db, from_currency, to_currency, as_of)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"from": from_currency, "to": to_currency, "rate": rate}


@rate_router.get("/convert")
def convert_amount_endpoint(
    amount: float,
    db: Session = Depends(get_db),
    from_currency: str = Query(..., alias="from"),
    to_currency: str = Query(..., alias="to"),
    as_of: Optional[datetime] = None,
):
    try:
        converted = convert_amount(db, amount, from_currency, to_currency, as_of)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "amount": amount,
        "from": from_currency,
        "to": to_currency,
        "converted": converted,
    }
