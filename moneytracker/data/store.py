"""
Generic record store over the three ledger collections.

Records cross this boundary as domain dataclasses. Every committed mutation
re-delivers the fresh list of the touched collection to its subscribers.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List

from moneytracker.data.base import Base, engine
from moneytracker.data.repositories.category_repository import (
    CategoryORM,
    category_to_domain,
    category_to_row,
)
from moneytracker.data.repositories.currency_repository import (
    ExchangeRateORM,
    rate_to_domain,
    rate_to_row,
)
from moneytracker.data.repositories.transaction_repository import (
    TransactionORM,
    transaction_to_domain,
    transaction_to_row,
)

logger = logging.getLogger(__name__)

TRANSACTIONS = "transactions"
CATEGORIES = "categories"
EXCHANGE_RATES = "exchangeRates"


@dataclass(frozen=True)
class _Collection:
    orm: Any
    to_domain: Callable
    to_row: Callable


COLLECTIONS: Dict[str, _Collection] = {
    TRANSACTIONS: _Collection(TransactionORM, transaction_to_domain, transaction_to_row),
    CATEGORIES: _Collection(CategoryORM, category_to_domain, category_to_row),
    EXCHANGE_RATES: _Collection(ExchangeRateORM, rate_to_domain, rate_to_row),
}

_subscribers: Dict[str, List[Callable[[list], None]]] = {
    name: [] for name in COLLECTIONS
}


def create_tables():
    Base.metadata.create_all(bind=engine)


def _collection(name: str) -> _Collection:
    try:
        return COLLECTIONS[name]
    except KeyError:
        raise KeyError(f"Unknown collection: {name}")


def subscribe(collection: str, callback: Callable[[list], None]) -> Callable[[], None]:
    """
    Registers callback to receive the full record list of collection after
    every mutation. Returns a function that removes the subscription.
    """
    _collection(collection)
    _subscribers[collection].append(callback)

    def unsubscribe():
        if callback in _subscribers[collection]:
            _subscribers[collection].remove(callback)

    return unsubscribe


def _notify(db, collection: str) -> None:
    callbacks = list(_subscribers[collection])
    if not callbacks:
        return
    records = list_records(db, collection)
    for callback in callbacks:
        try:
            callback(records)
        except Exception:
            logger.exception("Subscriber of %s failed", collection)


def list_records(db, collection: str) -> list:
    c = _collection(collection)
    rows = db.query(c.orm).order_by(c.orm.id.asc()).all()
    return [c.to_domain(r) for r in rows]


def get_record(db, collection: str, record_id: int):
    c = _collection(collection)
    row = db.query(c.orm).filter(c.orm.id == record_id).first()
    return c.to_domain(row) if row else None


def insert_record(db, collection: str, record) -> int:
    c = _collection(collection)
    row = c.orm(**c.to_row(record))
    db.add(row)
    db.commit()
    db.refresh(row)
    _notify(db, collection)
    return row.id


def insert_records(db, collection: str, records: list) -> int:
    c = _collection(collection)
    for record in records:
        db.add(c.orm(**c.to_row(record)))
    db.commit()
    _notify(db, collection)
    return len(records)


def update_record(db, collection: str, record_id: int, patch: Dict[str, Any]):
    """
    Applies patch (domain field names) to a record. Returns the updated
    record, or None when no record has that id.
    """
    if "id" in patch:
        raise ValueError("Record id is immutable")
    c = _collection(collection)
    row = db.query(c.orm).filter(c.orm.id == record_id).first()
    if not row:
        return None
    # replace() re-runs the dataclass validation on the patched record
    updated = replace(c.to_domain(row), **patch)
    for column, value in c.to_row(updated).items():
        setattr(row, column, value)
    db.commit()
    db.refresh(row)
    _notify(db, collection)
    return c.to_domain(row)


def delete_record(db, collection: str, record_id: int) -> bool:
    c = _collection(collection)
    deleted = (
        db.query(c.orm)
        .filter(c.orm.id == record_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    if deleted:
        _notify(db, collection)
    return bool(deleted)


def clear_collection(db, collection: str) -> int:
    c = _collection(collection)
    deleted = db.query(c.orm).delete(synchronize_session=False)
    db.commit()
    _notify(db, collection)
    return deleted
