from typing import List

from sqlalchemy import Column
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Integer, String

from moneytracker.data.base import Base
from moneytracker.domain.models import Category, TransactionKind

DEFAULT_CATEGORIES = [
    ("食物", TransactionKind.EXPENSE),
    ("交通", TransactionKind.EXPENSE),
    ("住房", TransactionKind.EXPENSE),
    ("娱乐", TransactionKind.EXPENSE),
    ("医疗", TransactionKind.EXPENSE),
    ("教育", TransactionKind.EXPENSE),
    ("购物", TransactionKind.EXPENSE),
    ("生活用品", TransactionKind.EXPENSE),
    ("工资", TransactionKind.INCOME),
    ("投资", TransactionKind.INCOME),
    ("奖金", TransactionKind.INCOME),
    ("其他收入", TransactionKind.INCOME),
]


class CategoryORM(Base):
    __tablename__ = "categories"
    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    name = Column(String, nullable=False, index=True)
    kind = Column(SAEnum(TransactionKind), nullable=False)


def category_to_domain(row: CategoryORM) -> Category:
    return Category(id=row.id, name=row.name, kind=row.kind)


def category_to_row(c: Category) -> dict:
    return {"name": c.name, "kind": c.kind}


def get_category_by_name(db, name: str) -> Category | None:
    row = db.query(CategoryORM).filter(CategoryORM.name == name).first()
    return category_to_domain(row) if row else None


def list_categories_by_kind(db, kind: TransactionKind) -> List[Category]:
    rows = (
        db.query(CategoryORM)
        .filter(CategoryORM.kind == kind)
        .order_by(CategoryORM.id.asc())
        .all()
    )
    return [category_to_domain(r) for r in rows]


def seed_default_categories(db) -> int:
    """Adds the default categories to an empty store. Returns rows added."""
    if db.query(CategoryORM).count() > 0:
        return 0
    for name, kind in DEFAULT_CATEGORIES:
        db.add(CategoryORM(name=name, kind=kind))
    db.commit()
    return len(DEFAULT_CATEGORIES)
