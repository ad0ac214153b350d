import os

# Configure before any moneytracker module reads the environment
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SEED_DEFAULT_CATEGORIES"] = "false"
os.environ["LEDGER_TIMEZONE"] = "Asia/Macau"
os.environ["DEFAULT_CURRENCY"] = "MOP"
os.environ.pop("FALLBACK_CNY_MOP_RATE", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from moneytracker.data.base import Base, SessionLocal, engine  # noqa: E402
from moneytracker.data.store import create_tables  # noqa: E402


@pytest.fixture(autouse=True)
def tables():
    create_tables()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    from moneytracker.main import app

    with TestClient(app) as c:
        yield c
