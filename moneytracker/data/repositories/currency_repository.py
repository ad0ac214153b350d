from datetime import timezone
from typing import List

from sqlalchemy import Column, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Float, Integer

from moneytracker.data.base import Base
from moneytracker.domain.helpers.rates import as_utc
from moneytracker.domain.models import Currency, ExchangeRate


class ExchangeRateORM(Base):
    __tablename__ = "exchange_rates"
    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    from_currency = Column(SAEnum(Currency), nullable=False)
    to_currency = Column(SAEnum(Currency), nullable=False)
    rate = Column(Float, nullable=False)  # 1 from_currency = rate to_currency
    effective_at = Column(DateTime, nullable=False, index=True)  # naive UTC


def rate_to_domain(row: ExchangeRateORM) -> ExchangeRate:
    return ExchangeRate(
        id=row.id,
        from_currency=row.from_currency,
        to_currency=row.to_currency,
        rate=row.rate,
        effective_at=row.effective_at.replace(tzinfo=timezone.utc),
    )


def rate_to_row(r: ExchangeRate) -> dict:
    return {
        "from_currency": r.from_currency,
        "to_currency": r.to_currency,
        "rate": r.rate,
        "effective_at": as_utc(r.effective_at).replace(tzinfo=None),
    }


def get_latest_rates(db, limit: int = 5) -> List[ExchangeRate]:
    rows = (
        db.query(ExchangeRateORM)
        .order_by(ExchangeRateORM.effective_at.desc(), ExchangeRateORM.id.desc())
        .limit(limit)
        .all()
    )
    return [rate_to_domain(r) for r in rows]
