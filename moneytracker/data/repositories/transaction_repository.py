from datetime import date
from typing import List

from sqlalchemy import Column, Date
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Float, Integer, String

from moneytracker.data.base import Base
from moneytracker.domain.models import (
    DEFAULT_DESCRIPTION,
    Currency,
    Transaction,
    TransactionKind,
)


class TransactionORM(Base):
    __tablename__ = "transactions"
    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    amount = Column(Float, nullable=False)
    currency = Column(String, nullable=False, index=True)
    category = Column(String, nullable=False, index=True)
    description = Column(String, default=DEFAULT_DESCRIPTION)
    date = Column(Date, nullable=False, index=True)
    recorded_rate = Column(Float, nullable=True)
    kind = Column(SAEnum(TransactionKind), nullable=True)


def transaction_to_domain(row: TransactionORM) -> Transaction:
    return Transaction(
        id=row.id,
        amount=row.amount,
        currency=row.currency,
        category=row.category,
        description=row.description,
        date=row.date,
        recorded_rate=row.recorded_rate,
        kind=row.kind,
    )


def transaction_to_row(t: Transaction) -> dict:
    return {
        "amount": t.amount,
        "currency": t.currency,
        "category": t.category,
        "description": t.description,
        "date": t.date,
        "recorded_rate": t.recorded_rate,
        "kind": t.kind,
    }


def list_transactions(db, currency: str | None = None) -> List[Transaction]:
    """Newest first; ties keep insertion order reversed."""
    query = db.query(TransactionORM)
    if currency in (c.value for c in Currency):
        query = query.filter(TransactionORM.currency == currency)
    rows = query.order_by(TransactionORM.date.desc(), TransactionORM.id.desc()).all()
    return [transaction_to_domain(r) for r in rows]


def list_transactions_in_window(db, start: date, end: date) -> List[Transaction]:
    rows = (
        db.query(TransactionORM)
        .filter(TransactionORM.date >= start, TransactionORM.date < end)
        .order_by(TransactionORM.date.asc(), TransactionORM.id.asc())
        .all()
    )
    return [transaction_to_domain(r) for r in rows]
