import datetime as dt
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from moneytracker.domain.models import Transaction
from moneytracker.domain.services.ledger_service import (
    create_transaction,
    delete_transaction,
    get_transaction,
    list_transactions,
    update_transaction,
)
from moneytracker.presentation.deps import get_db


class TransactionResponse(BaseModel):
    id: int
    amount: float
    currency: str
    category: str
    description: str
    date: dt.date
    recorded_rate: Optional[float] = None
    kind: Optional[str] = None

    @staticmethod
    def from_domain(t: Transaction) -> "TransactionResponse":
        return TransactionResponse(
            id=t.id,
            amount=t.amount,
            currency=t.currency,
            category=t.category,
            description=t.description,
            date=t.date,
            recorded_rate=t.recorded_rate,
            kind=t.kind.value if t.kind else None,
        )


class SubmitTransactionRequest(BaseModel):
    amount: float
    currency: str
    category: str
    date: dt.date
    description: Optional[str] = ""
    kind: Optional[str] = None
    recorded_rate: Optional[float] = None


class UpdateTransactionRequest(BaseModel):
    amount: Optional[float] = None
    currency: Optional[str] = None
    category: Optional[str] = None
    date: Optional[dt.date] = None
    description: Optional[str] = None
    kind: Optional[str] = None
    recorded_rate: Optional[float] = None


router = APIRouter(prefix="/api/transactions", tags=["transactions"])


@router.get("", response_model=List[TransactionResponse])
def get_all_transactions_endpoint(
    db: Session = Depends(get_db),
    currency: Optional[str] = Query(None, description="CNY or MOP; all when omitted"),
) -> List[TransactionResponse]:
    try:
        transactions = list_transactions(db, currency)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return [TransactionResponse.from_domain(t) for t in transactions]


@router.post("", response_model=TransactionResponse)
def submit_transaction(req: SubmitTransactionRequest, db: Session = Depends(get_db)):
    try:
        transaction = create_transaction(
            db,
            amount=req.amount,
            currency=req.currency,
            category=req.category,
            date=req.date,
            description=req.description,
            kind=req.kind,
            recorded_rate=req.recorded_rate,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return TransactionResponse.from_domain(transaction)


@router.get("/{transaction_id}", response_model=TransactionResponse)
def get_transaction_endpoint(transaction_id: int, db: Session = Depends(get_db)):
    transaction = get_transaction(db, transaction_id)
    if transaction is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return TransactionResponse.from_domain(transaction)


@router.patch("/{transaction_id}", response_model=TransactionResponse)
def update_transaction_endpoint(
    transaction_id: int,
    req: UpdateTransactionRequest,
    db: Session = Depends(get_db),
):
    patch = req.model_dump(exclude_unset=True)
    try:
        transaction = update_transaction(db, transaction_id, patch)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if transaction is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return TransactionResponse.from_domain(transaction)


@router.delete("/{transaction_id}")
def delete_transaction_endpoint(transaction_id: int, db: Session = Depends(get_db)):
    if not delete_transaction(db, transaction_id):
        raise HTTPException(status_code=404, detail="Transaction not found")
    return {"deleted": 1}
