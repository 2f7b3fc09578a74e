# storefront/config.py
import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _get_env(key: str, default: str = "") -> str:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def _get_bool(key: str, default: bool = False) -> bool:
    value = _get_env(key)
    if not value:
        return default
    return value.lower() in ("1", "true", "yes", "on")


def _get_timeout(key: str) -> Optional[float]:
    value = _get_env(key)
    return float(value) if value else None


@dataclass(frozen=True)
class Settings:
    backend_url: str
    backend_anon_key: str
    backend_jwt_secret: str
    backend_timeout: Optional[float]
    cart_storage_key: str
    recently_viewed_key: str
    shipping_fee: Decimal
    currency_sign: str
    checkout_revalidate_stock: bool
    log_level: str


def load_settings() -> Settings:
    return Settings(
        backend_url=_get_env("BACKEND_URL", "http://localhost:54321").rstrip("/"),
        backend_anon_key=_get_env("BACKEND_ANON_KEY"),
        backend_jwt_secret=_get_env("BACKEND_JWT_SECRET"),
        backend_timeout=_get_timeout("BACKEND_TIMEOUT"),
        cart_storage_key=_get_env("CART_STORAGE_KEY", "eshop_cart"),
        recently_viewed_key=_get_env("RECENTLY_VIEWED_KEY", "eshop_recently_viewed"),
        shipping_fee=Decimal(_get_env("SHIPPING_FEE", "5.99")),
        currency_sign=_get_env("CURRENCY_SIGN", "€"),
        checkout_revalidate_stock=_get_bool("CHECKOUT_REVALIDATE_STOCK"),
        log_level=_get_env("LOG_LEVEL", "INFO").upper(),
    )


settings = load_settings()
