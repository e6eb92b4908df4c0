# posinvoice/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # JSON file the key-value store is flushed to; unset keeps data in memory
    DATA_FILE = os.environ.get("POS_DATA_FILE") or None

    LOG_DIR = os.environ.get("POS_LOG_DIR", "data/logs")
    LOG_LEVEL = os.environ.get("POS_LOG_LEVEL", "INFO")

    # Products below this stock count as "low stock" on dashboards
    LOW_STOCK_THRESHOLD = float(os.environ.get("POS_LOW_STOCK_THRESHOLD", "10"))

    # Optional static bearer token; when unset the API is open
    API_KEY = os.environ.get("POS_API_KEY") or None

    CORS_ORIGINS = [o.strip() for o in os.environ.get("POS_CORS_ORIGINS", "*").split(",") if o.strip()]

    SEED_SAMPLE_PRODUCTS = _env_bool("POS_SEED_SAMPLE_PRODUCTS")

    SHOP_NAME = os.environ.get("POS_SHOP_NAME", "JR Invoice Maker")

    # used when running `python -m posinvoice.main`
    PORT = int(os.environ.get("POS_PORT", "8085"))
