import os

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str):
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return float(value)


class Settings:
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./moneytracker.db")
    CORS_ORIGINS = [
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", "").split(",")
        if origin.strip()
    ]
    DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "MOP")
    # Policy rate (1 CNY = X MOP), only applied when no CNY/MOP rate is stored
    FALLBACK_CNY_MOP_RATE = _env_float("FALLBACK_CNY_MOP_RATE")
    SEED_DEFAULT_CATEGORIES = _env_bool("SEED_DEFAULT_CATEGORIES", True)
    # Calendar dates of timestamps (imports, "today") are taken in this zone
    TIMEZONE = os.getenv("LEDGER_TIMEZONE", "Asia/Macau")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE = os.getenv("LOG_FILE")


settings = Settings()
