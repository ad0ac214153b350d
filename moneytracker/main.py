import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from moneytracker.config import settings
from moneytracker.data.base import SessionLocal
from moneytracker.data.repositories.category_repository import seed_default_categories
from moneytracker.data.store import create_tables
from moneytracker.logging_config import setup_logging
from moneytracker.presentation.settings_api import category_router, rate_router
from moneytracker.presentation.stats_api import router as stats_router
from moneytracker.presentation.transactions_api import router as transactions_router
from moneytracker.presentation.transfer_api import router as transfer_router

setup_logging()
logger = logging.getLogger(__name__)


def init_database():
    create_tables()
    if not settings.SEED_DEFAULT_CATEGORIES:
        return
    db = SessionLocal()
    try:
        added = seed_default_categories(db)
    finally:
        db.close()
    if added:
        logger.info("Seeded %d default categories", added)


app = FastAPI(title="Money Tracker API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(transactions_router)
app.include_router(category_router)
app.include_router(rate_router)
app.include_router(stats_router)
app.include_router(transfer_router)

# Ensure tables exist at startup
init_database()
